"""
Tests for the SSH tunnel manager

asyncssh, the local listener and the Docker client are mocked; no network
connections are made.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import asyncssh
import pytest
from docker.errors import DockerException

from containerflow.core.config import Settings
from containerflow.core.exceptions import NotConnectedError, PreconditionError, TunnelError
from containerflow.tunnel.manager import TunnelManager, _pipe
from containerflow.tunnel.models import SSHConfig

CONFIG = SSHConfig(host="vps.example.org", port=22, username="root", password="secret")


@pytest.fixture
def ssh_conn():
    conn = MagicMock()
    conn.forward_local_port = AsyncMock(return_value=MagicMock())
    conn.wait_closed = AsyncMock()
    return conn


@pytest.fixture
def patched(ssh_conn):
    """Patch asyncssh.connect, the local listener and the Docker client"""
    docker_client = MagicMock()
    with patch("asyncssh.connect", AsyncMock(return_value=ssh_conn)) as connect, patch(
        "asyncio.start_server", AsyncMock(return_value=MagicMock())
    ) as start_server, patch.object(TunnelManager, "_build_docker_client", return_value=docker_client):
        yield {"connect": connect, "start_server": start_server, "client": docker_client}


class TestDisconnected:
    """Test a manager that never connected"""

    def test_not_connected_initially(self):
        manager = TunnelManager(Settings())

        assert manager.is_connected() is False
        assert manager.state().connected is False

    def test_get_client_raises(self):
        manager = TunnelManager(Settings())

        with pytest.raises(NotConnectedError):
            manager.get_client()

    async def test_disconnect_is_idempotent(self):
        """Test that disconnect can be called any number of times"""
        manager = TunnelManager(Settings())

        await manager.disconnect()
        await manager.disconnect()

        assert manager.is_connected() is False

    async def test_ensure_mysql_tunnel_requires_session(self):
        manager = TunnelManager(Settings())

        with pytest.raises(NotConnectedError):
            await manager.ensure_mysql_tunnel()


class TestConnect:
    """Tests for TunnelManager.connect"""

    async def test_connect_opens_bridge_and_forward(self, patched, ssh_conn):
        settings = Settings(docker_local_port=24750, mysql_local_port=24751)
        manager = TunnelManager(settings)

        await manager.connect(CONFIG)

        assert manager.is_connected() is True
        assert manager.get_client() is patched["client"]
        kwargs = patched["connect"].await_args.kwargs
        assert kwargs["host"] == "vps.example.org"
        assert kwargs["username"] == "root"
        assert kwargs["password"] == "secret"
        assert patched["start_server"].await_args.args[1:] == ("127.0.0.1", 24750)
        ssh_conn.forward_local_port.assert_awaited_once_with(
            "127.0.0.1", 24751, settings.remote_mysql_host, settings.remote_mysql_port
        )
        state = manager.state()
        assert state.docker_endpoint == "tcp://127.0.0.1:24750"
        assert state.mysql_endpoint == "127.0.0.1:24751"

    async def test_concurrent_connects_share_one_session(self, patched):
        """Test that connect is single-flight"""
        manager = TunnelManager(Settings())

        await asyncio.gather(manager.connect(CONFIG), manager.connect(CONFIG))

        assert patched["connect"].await_count == 1

    async def test_ssh_failure_raises_tunnel_error(self, patched):
        patched["connect"].side_effect = asyncssh.PermissionDenied("bad password")
        manager = TunnelManager(Settings())

        with pytest.raises(TunnelError):
            await manager.connect(CONFIG)

        assert manager.is_connected() is False

    async def test_listener_failure_closes_ssh(self, patched, ssh_conn):
        """Test that a busy local port closes the SSH session again"""
        patched["start_server"].side_effect = OSError(98, "Address already in use")
        manager = TunnelManager(Settings())

        with pytest.raises(TunnelError):
            await manager.connect(CONFIG)

        ssh_conn.close.assert_called_once()
        assert manager.is_connected() is False

    async def test_docker_client_failure_tears_down(self, patched, ssh_conn):
        manager = TunnelManager(Settings())

        with patch.object(TunnelManager, "_build_docker_client", side_effect=DockerException("version negotiation failed")):
            with pytest.raises(TunnelError):
                await manager.connect(CONFIG)

        assert manager.is_connected() is False
        ssh_conn.close.assert_called()

    async def test_mysql_forward_failure_is_not_fatal(self, patched, ssh_conn):
        """Test that connect succeeds without the MySQL forward"""
        ssh_conn.forward_local_port.side_effect = OSError("port in use")
        manager = TunnelManager(Settings())

        await manager.connect(CONFIG)

        assert manager.is_connected() is True
        assert manager.state().mysql_endpoint is None

    async def test_ensure_mysql_tunnel_retries_on_demand(self, patched, ssh_conn):
        """Test that a missing forward is opened by ensure_mysql_tunnel"""
        ssh_conn.forward_local_port.side_effect = [OSError("port in use"), MagicMock()]
        manager = TunnelManager(Settings(mysql_local_port=24751))
        await manager.connect(CONFIG)

        endpoint = await manager.ensure_mysql_tunnel()

        assert endpoint == ("127.0.0.1", 24751)
        assert ssh_conn.forward_local_port.await_count == 2

    async def test_ensure_mysql_tunnel_failure(self, patched, ssh_conn):
        ssh_conn.forward_local_port.side_effect = OSError("port in use")
        manager = TunnelManager(Settings())
        await manager.connect(CONFIG)

        with pytest.raises(PreconditionError):
            await manager.ensure_mysql_tunnel()

    async def test_disconnect_closes_everything(self, patched, ssh_conn):
        manager = TunnelManager(Settings())
        await manager.connect(CONFIG)
        server = patched["start_server"].return_value

        await manager.disconnect()

        assert manager.is_connected() is False
        server.close.assert_called_once()
        patched["client"].close.assert_called_once()
        ssh_conn.close.assert_called_once()
        with pytest.raises(NotConnectedError):
            manager.get_client()


class TestPipe:
    """Tests for the byte pump between the local socket and the remote process"""

    async def test_copies_until_eof_then_half_closes(self):
        reader = asyncio.StreamReader()
        reader.feed_data(b"GET /_ping HTTP/1.1\r\n\r\n")
        reader.feed_eof()
        writer = MagicMock()
        writer.drain = AsyncMock()
        writer.can_write_eof.return_value = True

        await _pipe(reader, writer)

        written = b"".join(call.args[0] for call in writer.write.call_args_list)
        assert written == b"GET /_ping HTTP/1.1\r\n\r\n"
        writer.write_eof.assert_called_once()

    async def test_connection_reset_still_half_closes(self):
        reader = MagicMock()
        reader.read = AsyncMock(side_effect=ConnectionResetError())
        writer = MagicMock()
        writer.can_write_eof.return_value = True

        await _pipe(reader, writer)

        writer.write_eof.assert_called_once()


def _local_stream(request: bytes):
    reader = asyncio.StreamReader()
    reader.feed_data(request)
    reader.feed_eof()
    writer = MagicMock()
    writer.drain = AsyncMock()
    writer.can_write_eof.return_value = True
    return reader, writer


def _remote_process(response: bytes):
    process = MagicMock()
    process.stdin = MagicMock()
    process.stdin.drain = AsyncMock()
    process.stdin.can_write_eof.return_value = True
    process.stdout = asyncio.StreamReader()
    process.stdout.feed_data(response)
    process.stdout.feed_eof()
    return process


def _written(writer) -> bytes:
    return b"".join(call.args[0] for call in writer.write.call_args_list)


class TestDockerConnectionHandler:
    """Tests for the per-connection socat bridge"""

    async def test_bridges_both_directions(self, patched, ssh_conn):
        """Test that request and response bytes cross the remote socat process"""
        process = _remote_process(b"HTTP/1.1 200 OK\r\n\r\nOK")
        ssh_conn.create_process = AsyncMock(return_value=process)
        manager = TunnelManager(Settings(remote_docker_socket="/run/docker.sock"))
        await manager.connect(CONFIG)
        reader, writer = _local_stream(b"GET /_ping HTTP/1.1\r\n\r\n")

        await manager._handle_docker_connection(reader, writer)

        ssh_conn.create_process.assert_awaited_once_with("socat - UNIX-CONNECT:/run/docker.sock", encoding=None)
        assert _written(process.stdin) == b"GET /_ping HTTP/1.1\r\n\r\n"
        assert _written(writer) == b"HTTP/1.1 200 OK\r\n\r\nOK"
        process.close.assert_called_once()
        writer.close.assert_called_once()

    async def test_one_process_per_connection(self, patched, ssh_conn):
        processes = [_remote_process(b"a"), _remote_process(b"b")]
        ssh_conn.create_process = AsyncMock(side_effect=processes)
        manager = TunnelManager(Settings())
        await manager.connect(CONFIG)
        first = _local_stream(b"1")
        second = _local_stream(b"2")

        await asyncio.gather(
            manager._handle_docker_connection(*first),
            manager._handle_docker_connection(*second),
        )

        assert ssh_conn.create_process.await_count == 2
        assert sorted([_written(first[1]), _written(second[1])]) == [b"a", b"b"]
        for process in processes:
            process.close.assert_called_once()

    async def test_without_session_closes_connection(self):
        """Test that a connection accepted after teardown is closed immediately"""
        manager = TunnelManager(Settings())
        reader, writer = _local_stream(b"GET /_ping HTTP/1.1\r\n\r\n")

        await manager._handle_docker_connection(reader, writer)

        writer.close.assert_called_once()
        writer.write.assert_not_called()

    async def test_process_start_failure_closes_connection(self, patched, ssh_conn):
        ssh_conn.create_process = AsyncMock(side_effect=asyncssh.ChannelOpenError(2, "open failed"))
        manager = TunnelManager(Settings())
        await manager.connect(CONFIG)
        reader, writer = _local_stream(b"GET /_ping HTTP/1.1\r\n\r\n")

        await manager._handle_docker_connection(reader, writer)

        writer.close.assert_called_once()
        writer.write.assert_not_called()
