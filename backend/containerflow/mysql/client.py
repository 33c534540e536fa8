"""
MySQL administration over the SSH-forwarded port

Uses the root credential from the credential store. All statements run on
short-lived connections; nothing is pooled across setup steps.
"""

import asyncio
import logging
import re
import secrets
import string

import aiomysql

from containerflow.core.config import Settings, get_settings
from containerflow.core.exceptions import MySQLNotReadyError, PreconditionError
from containerflow.credentials.models import build_dsn
from containerflow.credentials.store import CredentialStore
from containerflow.tunnel.manager import TunnelManager

logger = logging.getLogger(__name__)

PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*"
_IDENTIFIER = re.compile(r"^[A-Za-z0-9_]+$")


def generate_random_password(length: int = 16) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def project_db_identifier(project: str) -> str:
    """Database and user name for a WordPress project: wp_ + name with non-alphanumerics as _"""
    return "wp_" + re.sub(r"[^a-zA-Z0-9]", "_", project)


def _check_identifier(value: str) -> str:
    if not _IDENTIFIER.match(value):
        raise ValueError(f"Invalid MySQL identifier: {value!r}")
    return value


class MySQLAdmin:
    """Administrative statements against the managed MySQL container."""

    def __init__(
        self,
        tunnel: TunnelManager,
        credentials: CredentialStore,
        settings: Settings | None = None,
    ):
        self.tunnel = tunnel
        self.credentials = credentials
        self.settings = settings or get_settings()

    async def connection_options(self) -> dict:
        """
        Root connection options through the MySQL tunnel

        Raises:
            PreconditionError: If the root password is unknown or the tunnel cannot be opened
            NotConnectedError: If there is no SSH session
        """
        password = self.credentials.root_password
        if not password:
            raise PreconditionError(
                "MySQL root password not set",
                recovery_hint="Set the root password before running setup",
            )
        host, port = await self.tunnel.ensure_mysql_tunnel()
        return {"host": host, "port": port, "user": "root", "password": password}

    async def _connect(self, options: dict) -> aiomysql.Connection:
        return await aiomysql.connect(autocommit=True, **options)

    async def _execute(self, statements: list[tuple[str, tuple | None]]) -> None:
        conn = await self._connect(await self.connection_options())
        try:
            async with conn.cursor() as cur:
                for sql, args in statements:
                    await cur.execute(sql, args)
        finally:
            conn.close()

    async def wait_ready(self, retries: int | None = None, delay: float | None = None) -> None:
        """
        Poll until MySQL accepts a root connection.

        Raises:
            MySQLNotReadyError: If every attempt failed
        """
        retries = retries if retries is not None else self.settings.mysql_ready_retries
        delay = delay if delay is not None else self.settings.mysql_ready_delay
        options = await self.connection_options()

        last_error = ""
        for attempt in range(1, retries + 1):
            try:
                conn = await self._connect(options)
            except (OSError, aiomysql.Error) as e:
                last_error = str(e)
                logger.info(f"[MySQL] Not ready yet (attempt {attempt}/{retries}), retrying in {delay}s")
                if attempt < retries:
                    await asyncio.sleep(delay)
                continue
            conn.close()
            logger.info("[MySQL] Ready")
            return

        raise MySQLNotReadyError(retries, last_error)

    async def ensure_metrics_user(self, user: str, password: str) -> str:
        """
        Create or refresh the low-privilege user used by mysqld-exporter.

        The password is always reset so an existing user matches the one
        the exporter is configured with.

        Returns:
            DATA_SOURCE_NAME for the exporter
        """
        user = _check_identifier(user)
        await self._execute(
            [
                (f"CREATE USER IF NOT EXISTS `{user}`@'%%' IDENTIFIED BY %s", (password,)),
                (f"ALTER USER `{user}`@'%%' IDENTIFIED BY %s", (password,)),
                (f"GRANT PROCESS, REPLICATION CLIENT, SELECT ON *.* TO `{user}`@'%'", None),
                ("FLUSH PRIVILEGES", None),
            ]
        )
        logger.info(f"[MySQL] Metrics user '{user}' ensured")
        return build_dsn(user, password)

    async def create_database_with_user(self, db_name: str, db_user: str, db_password: str) -> None:
        """
        Create a utf8mb4 database and a user owning it, then log in as that user.

        Any previous user with the same name is dropped first so the new
        password always applies.
        """
        db_name = _check_identifier(db_name)
        db_user = _check_identifier(db_user)
        logger.info(f"[MySQL] Creating database '{db_name}' and user '{db_user}'")

        await self._execute(
            [
                (f"DROP USER IF EXISTS `{db_user}`@'%'", None),
                (
                    f"CREATE DATABASE IF NOT EXISTS `{db_name}` "
                    "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci",
                    None,
                ),
                (f"CREATE USER `{db_user}`@'%%' IDENTIFIED BY %s", (db_password,)),
                (f"GRANT ALL PRIVILEGES ON `{db_name}`.* TO `{db_user}`@'%'", None),
                ("FLUSH PRIVILEGES", None),
            ]
        )

        options = await self.connection_options()
        conn = await self._connect(
            {**options, "user": db_user, "password": db_password, "db": db_name}
        )
        try:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
        finally:
            conn.close()
        logger.info(f"[MySQL] Database '{db_name}' ready, login verified for '{db_user}'")

    async def delete_database_and_user(self, db_name: str, db_user: str) -> None:
        """Drop a database and its user. Each DROP failure is logged; FLUSH always runs."""
        db_name = _check_identifier(db_name)
        db_user = _check_identifier(db_user)

        conn = await self._connect(await self.connection_options())
        try:
            async with conn.cursor() as cur:
                for sql in (
                    f"DROP DATABASE IF EXISTS `{db_name}`",
                    f"DROP USER IF EXISTS `{db_user}`@'%'",
                ):
                    try:
                        await cur.execute(sql)
                    except aiomysql.Error as e:
                        logger.warning(f"[MySQL] {sql} failed: {e}")
                await cur.execute("FLUSH PRIVILEGES")
        finally:
            conn.close()
        logger.info(f"[MySQL] Deleted database '{db_name}' and user '{db_user}'")
