"""
ContainerFlow service facade

The single entry point used by the desktop shell. Every method returns plain
data (dicts, lists, strings, booleans); no Docker or SSH handles cross this
boundary.
"""

import logging
from collections.abc import AsyncIterator

from containerflow.containers.operations import ContainerOperations
from containerflow.containers.specs import ContainerSpec
from containerflow.core.config import Settings, get_settings
from containerflow.credentials.store import CredentialStore, get_credential_store
from containerflow.mysql.client import MySQLAdmin
from containerflow.networks.operations import NetworkOperations
from containerflow.preferences.store import AppConfig, PreferenceStore, get_preference_store
from containerflow.reconcile.engine import SetupEngine
from containerflow.reconcile.models import GrafanaAuth, ProgressCallback, SetupOptions
from containerflow.tunnel.manager import TunnelManager, get_tunnel_manager
from containerflow.tunnel.models import SSHConfig
from containerflow.wordpress.projects import WordPressProjects

logger = logging.getLogger(__name__)


def _as_spec(spec: ContainerSpec | dict) -> ContainerSpec:
    return spec if isinstance(spec, ContainerSpec) else ContainerSpec(**spec)


class ContainerFlowService:
    """
    Wires the tunnel, credential cache, operations, setup engine and
    WordPress lifecycle into one object.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        tunnel: TunnelManager | None = None,
        credentials: CredentialStore | None = None,
        preferences: PreferenceStore | None = None,
    ):
        self.settings = settings or get_settings()
        self.tunnel = tunnel or TunnelManager(self.settings)
        self.credentials = credentials or CredentialStore()
        self._preferences = preferences

        self.containers = ContainerOperations(self.tunnel.get_client)
        self.networks = NetworkOperations(self.tunnel.get_client)
        self.mysql = MySQLAdmin(self.tunnel, self.credentials, self.settings)
        self.engine = SetupEngine(
            self.containers, self.networks, self.credentials, self.mysql, self.settings
        )
        self.wordpress = WordPressProjects(
            self.containers, self.networks, self.mysql, self.credentials, self.settings
        )

    @property
    def preferences(self) -> PreferenceStore:
        if self._preferences is None:
            self._preferences = get_preference_store()
        return self._preferences

    # Connection

    async def connect(self, config: SSHConfig | dict) -> None:
        if isinstance(config, dict):
            config = SSHConfig(**config)
        await self.tunnel.connect(config)

    async def is_connected(self) -> bool:
        return self.tunnel.is_connected()

    async def disconnect(self) -> None:
        """Close the tunnel and drop the secrets discovered on that host"""
        await self.tunnel.disconnect()
        self.credentials.reset()

    def tunnel_state(self) -> dict:
        state = self.tunnel.state()
        return {
            "connected": state.connected,
            "host": state.host,
            "docker_endpoint": state.docker_endpoint,
            "mysql_endpoint": state.mysql_endpoint,
        }

    # Containers

    async def create_container(self, spec: ContainerSpec | dict) -> dict:
        return await self.containers.create(_as_spec(spec))

    async def start_container(self, container_id: str) -> None:
        await self.containers.start(container_id)

    async def stop_container(self, container_id: str, timeout: int = 10) -> None:
        await self.containers.stop(container_id, timeout=timeout)

    async def remove_container(self, container_id: str, remove_volumes: bool = False, force: bool = False) -> None:
        await self.containers.remove(container_id, remove_volumes=remove_volumes, force=force)

    async def get_container(self, container_id: str) -> dict:
        return await self.containers.get_by_id(container_id)

    async def get_container_by_name(self, name: str) -> dict | None:
        return await self.containers.get_by_name(name)

    async def list_containers(self, all: bool = True) -> list[dict]:
        return await self.containers.list_containers(all=all)

    async def get_container_logs(self, container_id: str, **options) -> str:
        return await self.containers.get_logs(container_id, **options)

    async def update_container(
        self, container_id: str, spec: ContainerSpec | dict, preserve_volumes: bool = True
    ) -> dict:
        return await self.containers.update(container_id, _as_spec(spec), preserve_volumes)

    async def get_container_networks(self, container_id: str) -> list[str]:
        return await self.containers.get_networks(container_id)

    async def pull_image(self, image: str) -> None:
        await self.containers.pull_image(image)

    # Networks

    async def create_network(self, name: str, driver: str = "bridge") -> dict:
        return await self.networks.create(name, driver=driver)

    async def list_networks(self, name: str | None = None) -> list[dict]:
        return await self.networks.list_networks(name)

    async def inspect_network(self, network: str) -> dict:
        return await self.networks.inspect(network)

    async def connect_to_network(self, network: str, container: str) -> None:
        await self.networks.connect(network, container)

    async def disconnect_from_network(self, network: str, container: str, force: bool = False) -> None:
        await self.networks.disconnect(network, container, force=force)

    async def remove_network(self, network: str, force: bool = False) -> None:
        await self.networks.remove(network, force=force)

    async def prune_networks(self) -> dict:
        return await self.networks.prune()

    async def find_network(self, name: str, exact: bool = True) -> list[dict]:
        return await self.networks.find_by_name(name, exact=exact)

    async def get_network_containers(self, network: str) -> list[dict]:
        return await self.networks.get_network_containers(network)

    # Setup

    def _options(self, force: bool, grafana_auth: dict | GrafanaAuth | None) -> SetupOptions:
        if isinstance(grafana_auth, dict):
            grafana_auth = GrafanaAuth(**grafana_auth)
        return SetupOptions(force=force, grafana_auth=grafana_auth)

    async def run_setup(
        self,
        force: bool = False,
        progress: ProgressCallback | None = None,
        grafana_auth: dict | GrafanaAuth | None = None,
    ) -> bool:
        return await self.engine.run(self._options(force, grafana_auth), progress)

    async def stream_setup(
        self, force: bool = False, grafana_auth: dict | GrafanaAuth | None = None
    ) -> AsyncIterator[dict]:
        async for event in self.engine.stream(self._options(force, grafana_auth)):
            yield event.to_dict()

    # WordPress

    async def wordpress_create(self, name: str, domain: str | None = None) -> dict:
        return await self.wordpress.create(name, domain)

    async def wordpress_clone(self, source: dict | str) -> dict:
        """Clone from inspect information or a container id"""
        if isinstance(source, str):
            source = await self.containers.get_by_id(source)
        return await self.wordpress.clone(source)

    async def wordpress_delete(self, name: str) -> dict:
        return await self.wordpress.delete(name)

    async def wordpress_change_url(self, container: dict | str, new_url: str) -> dict:
        if isinstance(container, str):
            container = await self.containers.get_by_id(container)
        return await self.wordpress.change_url(container, new_url)

    async def list_projects(self) -> list[dict]:
        return await self.wordpress.list_projects()

    # Credentials

    def credentials_status(self) -> dict:
        return self.credentials.status()

    def set_root_password(self, password: str) -> None:
        self.credentials.set_root_password(password)
        logger.info("[Credentials] MySQL root password set")

    async def discover_credentials(self) -> dict:
        await self.credentials.discover_from_containers(self.containers)
        return self.credentials.status()

    # Preferences

    def get_preferences(self) -> dict:
        return self.preferences.get().to_dict()

    def save_preferences(self, data: dict) -> None:
        self.preferences.save(AppConfig.from_dict(data))


# Global service instance
_service: ContainerFlowService | None = None


def get_service() -> ContainerFlowService:
    """Get the global service instance, built on the process-wide tunnel and credential cache"""
    global _service
    if _service is None:
        _service = ContainerFlowService(
            tunnel=get_tunnel_manager(),
            credentials=get_credential_store(),
        )
    return _service
