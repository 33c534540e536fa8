"""
Network Operations - wrappers around Docker network calls
"""

import asyncio
import logging

import docker
from docker.errors import APIError

from containerflow.containers.operations import ClientProvider

logger = logging.getLogger(__name__)


class NetworkOperations:
    """Async wrappers for the bridge network the stack lives on."""

    def __init__(self, client_provider: ClientProvider):
        self._client_provider = client_provider

    def _api(self) -> docker.APIClient:
        return self._client_provider()

    async def create(self, name: str, driver: str = "bridge") -> dict:
        api = self._api()
        result = await asyncio.to_thread(api.create_network, name, driver=driver)
        logger.info(f"[Network] Created {name} ({driver})")
        return {"id": result["Id"], "name": name}

    async def list_networks(self, name: str | None = None) -> list[dict]:
        """
        List networks.

        Args:
            name: Daemon-side name filter (substring match)
        """
        api = self._api()
        return await asyncio.to_thread(api.networks, names=[name] if name else None)

    async def inspect(self, network: str) -> dict:
        api = self._api()
        return await asyncio.to_thread(api.inspect_network, network)

    async def connect(self, network: str, container: str) -> None:
        api = self._api()
        await asyncio.to_thread(api.connect_container_to_network, container, network)

    async def disconnect(self, network: str, container: str, force: bool = False) -> None:
        api = self._api()
        await asyncio.to_thread(
            api.disconnect_container_from_network, container, network, force=force
        )

    async def remove(self, network: str, force: bool = False) -> None:
        """
        Remove a network.

        With force, every attached container is disconnected first. A failed
        disconnect is logged and the remaining containers are still processed.
        """
        if force:
            for container in await self.get_network_containers(network):
                try:
                    await self.disconnect(network, container["id"], force=True)
                except APIError as e:
                    logger.warning(f"[Network] Could not disconnect {container['name']} from {network}: {e}")

        api = self._api()
        await asyncio.to_thread(api.remove_network, network)
        logger.info(f"[Network] Removed {network}")

    async def prune(self) -> dict:
        api = self._api()
        result = await asyncio.to_thread(api.prune_networks)
        deleted = result.get("NetworksDeleted") or []
        logger.info(f"[Network] Pruned {len(deleted)} networks")
        return {"deleted": deleted}

    async def find_by_name(self, name: str, exact: bool = True) -> list[dict]:
        """Networks whose name equals (or, with exact=False, contains) name"""
        networks = await self.list_networks(name)
        if exact:
            return [n for n in networks if n.get("Name") == name]
        return [n for n in networks if name in (n.get("Name") or "")]

    async def get_network_containers(self, network: str) -> list[dict]:
        """Containers attached to a network: [{"id", "name", "ipv4"}]"""
        info = await self.inspect(network)
        return [
            {
                "id": container_id,
                "name": details.get("Name", ""),
                "ipv4": details.get("IPv4Address", ""),
            }
            for container_id, details in (info.get("Containers") or {}).items()
        ]
