"""
Tests for MySQL administration

aiomysql.connect is patched; statements are recorded on a mock cursor.
"""

import string
from unittest.mock import AsyncMock, MagicMock, patch

import aiomysql
import pytest

from containerflow.core.exceptions import MySQLNotReadyError, PreconditionError
from containerflow.credentials.store import CredentialStore
from containerflow.mysql.client import (
    PASSWORD_ALPHABET,
    MySQLAdmin,
    generate_random_password,
    project_db_identifier,
)


def _connection(cursor: MagicMock) -> MagicMock:
    conn = MagicMock()
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=cursor)
    cm.__aexit__ = AsyncMock(return_value=False)
    conn.cursor.return_value = cm
    return conn


@pytest.fixture
def cursor():
    cur = MagicMock()
    cur.execute = AsyncMock()
    return cur


@pytest.fixture
def tunnel():
    manager = MagicMock()
    manager.ensure_mysql_tunnel = AsyncMock(return_value=("127.0.0.1", 23751))
    return manager


@pytest.fixture
def admin(tunnel, settings):
    credentials = CredentialStore()
    credentials.set_root_password("pw123")
    return MySQLAdmin(tunnel, credentials, settings)


def _statements(cursor: MagicMock) -> list[str]:
    return [call.args[0] for call in cursor.execute.await_args_list]


class TestHelpers:
    """Tests for password and identifier helpers"""

    def test_generated_password(self):
        password = generate_random_password()

        assert len(password) == 16
        assert set(password) <= set(PASSWORD_ALPHABET)

    def test_generated_passwords_differ(self):
        assert generate_random_password(24) != generate_random_password(24)

    def test_alphabet(self):
        assert set(string.ascii_letters + string.digits) <= set(PASSWORD_ALPHABET)

    def test_project_db_identifier(self):
        assert project_db_identifier("blog") == "wp_blog"
        assert project_db_identifier("my-site.com") == "wp_my_site_com"


class TestConnectionOptions:
    async def test_requires_root_password(self, tunnel, settings):
        admin = MySQLAdmin(tunnel, CredentialStore(), settings)

        with pytest.raises(PreconditionError):
            await admin.connection_options()

        tunnel.ensure_mysql_tunnel.assert_not_awaited()

    async def test_uses_tunnel_endpoint(self, admin):
        options = await admin.connection_options()

        assert options == {"host": "127.0.0.1", "port": 23751, "user": "root", "password": "pw123"}


class TestWaitReady:
    """Tests for MySQLAdmin.wait_ready"""

    async def test_retries_until_connected(self, admin, cursor):
        conn = _connection(cursor)
        connect = AsyncMock(side_effect=[OSError("refused"), aiomysql.OperationalError(2003, "gone"), conn])

        with patch("aiomysql.connect", connect):
            await admin.wait_ready(retries=5, delay=0)

        assert connect.await_count == 3
        conn.close.assert_called_once()

    async def test_gives_up_after_retries(self, admin):
        connect = AsyncMock(side_effect=OSError("Connection refused"))

        with patch("aiomysql.connect", connect):
            with pytest.raises(MySQLNotReadyError) as exc_info:
                await admin.wait_ready(retries=3, delay=0)

        assert connect.await_count == 3
        assert exc_info.value.attempts == 3
        assert "Connection refused" in exc_info.value.message


class TestMetricsUser:
    async def test_ensure_metrics_user(self, admin, cursor):
        """Test that the user is created, its password reset and grants applied"""
        with patch("aiomysql.connect", AsyncMock(return_value=_connection(cursor))):
            dsn = await admin.ensure_metrics_user("metrics", "s3cret")

        statements = _statements(cursor)
        assert statements[0].startswith("CREATE USER IF NOT EXISTS `metrics`")
        assert statements[1].startswith("ALTER USER `metrics`")
        assert statements[2] == "GRANT PROCESS, REPLICATION CLIENT, SELECT ON *.* TO `metrics`@'%'"
        assert statements[3] == "FLUSH PRIVILEGES"
        assert cursor.execute.await_args_list[0].args[1] == ("s3cret",)
        assert dsn == "metrics:s3cret@(mysql:3306)/"

    async def test_rejects_unsafe_identifier(self, admin):
        with pytest.raises(ValueError):
            await admin.ensure_metrics_user("metrics`; DROP DATABASE x; --", "pw")


class TestProjectDatabase:
    """Tests for per-project database management"""

    async def test_create_database_with_user(self, admin, cursor):
        """Test statement order and the login self-test as the new user"""
        connect = AsyncMock(return_value=_connection(cursor))

        with patch("aiomysql.connect", connect):
            await admin.create_database_with_user("wp_blog", "wp_blog", "wpsecret")

        statements = _statements(cursor)
        assert statements[0] == "DROP USER IF EXISTS `wp_blog`@'%'"
        assert "CHARACTER SET utf8mb4" in statements[1]
        assert statements[2].startswith("CREATE USER `wp_blog`")
        assert statements[3] == "GRANT ALL PRIVILEGES ON `wp_blog`.* TO `wp_blog`@'%'"
        assert statements[-1] == "SELECT 1"

        self_test = connect.await_args_list[-1].kwargs
        assert self_test["user"] == "wp_blog"
        assert self_test["password"] == "wpsecret"
        assert self_test["db"] == "wp_blog"

    async def test_delete_continues_past_failed_drop(self, admin, cursor):
        """Test that FLUSH PRIVILEGES runs even when a DROP fails"""
        cursor.execute.side_effect = [aiomysql.OperationalError(1396, "Operation DROP failed"), None, None]
        conn = _connection(cursor)

        with patch("aiomysql.connect", AsyncMock(return_value=conn)):
            await admin.delete_database_and_user("wp_blog", "wp_blog")

        assert _statements(cursor) == [
            "DROP DATABASE IF EXISTS `wp_blog`",
            "DROP USER IF EXISTS `wp_blog`@'%'",
            "FLUSH PRIVILEGES",
        ]
        conn.close.assert_called_once()
