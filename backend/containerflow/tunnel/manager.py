"""
Tunnel Manager - SSH session bridging the remote Docker socket

Owns one SSH session, a local TCP listener that proxies every accepted
connection to the remote Docker UNIX socket through a remote `socat`
process, the Docker API client bound to that listener, and a best-effort
port forward to the remote MySQL server.
"""

import asyncio
import logging

import asyncssh
import docker
from docker.errors import DockerException

from containerflow.core.config import Settings, get_settings
from containerflow.core.exceptions import NotConnectedError, PreconditionError, TunnelError
from containerflow.tunnel.models import SSHConfig, TunnelState

logger = logging.getLogger(__name__)

LOCALHOST = "127.0.0.1"
CHUNK_SIZE = 65536


async def _pipe(reader, writer) -> None:
    """Copy bytes from reader to writer until EOF, then half-close the writer."""
    try:
        while True:
            data = await reader.read(CHUNK_SIZE)
            if not data:
                break
            writer.write(data)
            await writer.drain()
    except (ConnectionError, asyncssh.Error) as e:
        logger.debug(f"[Tunnel] Pipe closed: {e}")
    finally:
        try:
            if writer.can_write_eof():
                writer.write_eof()
        except (OSError, asyncssh.Error) as e:
            logger.debug(f"[Tunnel] write_eof failed: {e}")


class TunnelManager:
    """
    Manages the SSH tunnel to the remote Docker host.

    connect() is single-flight: concurrent callers wait on the same lock and
    the second one finds the session already open. disconnect() clears every
    handle in one step so is_connected() never reports a half-torn tunnel.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._lock = asyncio.Lock()
        self._ssh: asyncssh.SSHClientConnection | None = None
        self._server: asyncio.AbstractServer | None = None
        self._mysql_listener: asyncssh.SSHListener | None = None
        self._client: docker.APIClient | None = None
        self._connected = False
        self._host: str | None = None

    async def connect(self, config: SSHConfig) -> None:
        """
        Open the SSH session, the Docker socket bridge and the MySQL forward.

        Raises:
            TunnelError: If the SSH session, local listener or Docker client fails
        """
        async with self._lock:
            if self._ssh is not None:
                logger.info(f"[Tunnel] Already connected to {self._host}, reusing session")
                return

            logger.info(f"[Tunnel] Connecting to {config.username}@{config.host}:{config.port}")
            try:
                ssh = await asyncssh.connect(
                    host=config.host,
                    port=config.port,
                    username=config.username,
                    password=config.password or None,
                    known_hosts=None,
                    connect_timeout=self.settings.ssh_connect_timeout,
                )
            except (OSError, asyncssh.Error) as e:
                raise TunnelError(f"SSH connection to {config.host}:{config.port} failed: {e}") from e

            try:
                server = await asyncio.start_server(
                    self._handle_docker_connection, LOCALHOST, self.settings.docker_local_port
                )
            except OSError as e:
                ssh.close()
                raise TunnelError(
                    f"Could not listen on {LOCALHOST}:{self.settings.docker_local_port}: {e}",
                    recovery_hint="Another process may be using the local tunnel port",
                ) from e

            self._ssh = ssh
            self._server = server
            self._host = config.host
            logger.info(
                f"[Tunnel] Docker socket bridged to tcp://{LOCALHOST}:{self.settings.docker_local_port}"
            )

            try:
                client = await asyncio.to_thread(self._build_docker_client)
            except DockerException as e:
                await self._teardown()
                raise TunnelError(f"Docker API unreachable through tunnel: {e}") from e

            self._client = client
            self._connected = True

            try:
                await self._open_mysql_tunnel()
            except (OSError, asyncssh.Error) as e:
                logger.warning(f"[Tunnel] MySQL tunnel unavailable, continuing without it: {e}")

            logger.info(f"[Tunnel] Connected to {config.host}")

    def _build_docker_client(self) -> docker.APIClient:
        # Version negotiation performs a request, so this runs off the event loop
        return docker.APIClient(
            base_url=f"tcp://{LOCALHOST}:{self.settings.docker_local_port}",
            version=self.settings.docker_api_version,
            timeout=self.settings.docker_timeout,
        )

    async def _handle_docker_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Bridge one local TCP connection to a fresh remote socat process."""
        ssh = self._ssh
        if ssh is None:
            writer.close()
            return

        command = f"socat - UNIX-CONNECT:{self.settings.remote_docker_socket}"
        try:
            process = await ssh.create_process(command, encoding=None)
        except (OSError, asyncssh.Error) as e:
            logger.error(f"[Tunnel] Failed to start remote bridge: {e}")
            writer.close()
            return

        try:
            await asyncio.gather(
                _pipe(reader, process.stdin),
                _pipe(process.stdout, writer),
            )
        finally:
            process.close()
            writer.close()

    async def _open_mysql_tunnel(self) -> None:
        if self._ssh is None:
            raise NotConnectedError("SSH session not established")
        self._mysql_listener = await self._ssh.forward_local_port(
            LOCALHOST,
            self.settings.mysql_local_port,
            self.settings.remote_mysql_host,
            self.settings.remote_mysql_port,
        )
        logger.info(
            f"[Tunnel] MySQL forwarded to {LOCALHOST}:{self.settings.mysql_local_port}"
        )

    async def ensure_mysql_tunnel(self) -> tuple[str, int]:
        """
        Make sure the MySQL forward is open, opening it on demand.

        Returns:
            (host, port) of the local MySQL endpoint

        Raises:
            NotConnectedError: If there is no SSH session
            PreconditionError: If the forward cannot be opened
        """
        if self._ssh is None:
            raise NotConnectedError("SSH session not established")
        if self._mysql_listener is None:
            try:
                await self._open_mysql_tunnel()
            except (OSError, asyncssh.Error) as e:
                raise PreconditionError(
                    f"MySQL tunnel is required but could not be established: {e}"
                ) from e
        return self.mysql_endpoint()

    def mysql_endpoint(self) -> tuple[str, int]:
        return LOCALHOST, self.settings.mysql_local_port

    def get_client(self) -> docker.APIClient:
        """
        Get the Docker API client bound to the tunnel

        Raises:
            NotConnectedError: If the tunnel is not up
        """
        if self._client is None:
            raise NotConnectedError()
        return self._client

    def is_connected(self) -> bool:
        return self._ssh is not None and self._client is not None and self._connected

    def state(self) -> TunnelState:
        if not self.is_connected():
            return TunnelState(connected=False)
        host, port = self.mysql_endpoint()
        return TunnelState(
            connected=True,
            host=self._host,
            docker_endpoint=f"tcp://{LOCALHOST}:{self.settings.docker_local_port}",
            mysql_endpoint=f"{host}:{port}" if self._mysql_listener is not None else None,
        )

    async def disconnect(self) -> None:
        """Tear down the tunnel. Safe to call when already disconnected."""
        async with self._lock:
            await self._teardown()

    async def _teardown(self) -> None:
        server, listener, ssh, client = self._server, self._mysql_listener, self._ssh, self._client
        self._server = None
        self._mysql_listener = None
        self._ssh = None
        self._client = None
        self._connected = False
        self._host = None

        if server is not None:
            server.close()
        if client is not None:
            try:
                client.close()
            except OSError as e:
                logger.debug(f"[Tunnel] Docker client close failed: {e}")
        if listener is not None:
            try:
                listener.close()
            except (OSError, asyncssh.Error) as e:
                logger.debug(f"[Tunnel] MySQL listener close failed: {e}")
        if ssh is not None:
            try:
                ssh.close()
                await ssh.wait_closed()
            except (OSError, asyncssh.Error) as e:
                logger.debug(f"[Tunnel] SSH close failed: {e}")
            logger.info("[Tunnel] Disconnected")


# Global tunnel manager instance
_manager: TunnelManager | None = None


def get_tunnel_manager() -> TunnelManager:
    """Get the global tunnel manager instance"""
    global _manager
    if _manager is None:
        _manager = TunnelManager()
    return _manager
