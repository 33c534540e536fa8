"""
Container Operations - single-container primitives over the Docker API

docker-py is synchronous, so every call is dispatched with asyncio.to_thread.
The event loop must stay free: it also serves the tunnel listener that the
Docker client's HTTP requests go through.
"""

import asyncio
import logging
from collections.abc import Callable

import docker
from docker.errors import APIError, ImageNotFound, NotFound
from docker.utils import parse_repository_tag

from containerflow.containers.specs import ContainerSpec, mount_to_bind
from containerflow.core.exceptions import ImagePullError

logger = logging.getLogger(__name__)

ClientProvider = Callable[[], docker.APIClient]


def is_missing_image_error(exc: BaseException) -> bool:
    """
    True if a create failure was caused by the image not being present locally.

    This is the only error classification that drives a recovery path.
    """
    if isinstance(exc, ImageNotFound):
        return True
    if isinstance(exc, APIError) and exc.status_code == 404:
        message = f"{exc.explanation or ''} {exc}".lower()
        return "no such image" in message
    return False


def _port_tuple(port: str) -> tuple[str, str]:
    number, _, proto = port.partition("/")
    return number, proto or "tcp"


def create_kwargs(api: docker.APIClient, spec: ContainerSpec) -> dict:
    """Translate a ContainerSpec into APIClient.create_container keyword arguments."""
    host_config = api.create_host_config(
        binds=spec.binds or None,
        port_bindings=spec.port_bindings or None,
        restart_policy={"Name": spec.restart_policy, "MaximumRetryCount": 0}
        if spec.restart_policy
        else None,
        privileged=spec.privileged,
        network_mode=spec.network_mode,
    )
    return {
        "image": spec.image,
        "name": spec.name,
        "command": spec.command,
        "entrypoint": spec.entrypoint,
        "environment": spec.env or None,
        "labels": spec.labels or None,
        "ports": [_port_tuple(p) for p in spec.exposed_ports] or None,
        "host_config": host_config,
    }


class ContainerOperations:
    """
    Thin async wrappers around container lifecycle calls.

    Every call resolves the client through client_provider, which raises
    NotConnectedError when no tunnel is up.
    """

    def __init__(self, client_provider: ClientProvider):
        self._client_provider = client_provider

    def _api(self) -> docker.APIClient:
        return self._client_provider()

    async def create(self, spec: ContainerSpec) -> dict:
        """
        Create a container, pulling its image once if it is missing.

        When the pull or the retried create fails, the original missing-image
        error is raised, chained from the later failure.

        Returns:
            {"id": ..., "name": ...}
        """
        api = self._api()
        kwargs = create_kwargs(api, spec)
        try:
            result = await asyncio.to_thread(api.create_container, **kwargs)
        except APIError as e:
            if not is_missing_image_error(e):
                raise
            logger.info(f"[Docker] Image {spec.image} not found locally, pulling")
            try:
                await self.pull_image(spec.image)
            except (APIError, ImagePullError) as pull_error:
                logger.error(f"[Docker] Pull of {spec.image} failed: {pull_error}")
                raise e from pull_error
            try:
                result = await asyncio.to_thread(api.create_container, **kwargs)
            except APIError as retry_error:
                logger.error(f"[Docker] Create of {spec.name} failed after pulling {spec.image}: {retry_error}")
                raise e from retry_error

        for warning in result.get("Warnings") or []:
            logger.warning(f"[Docker] {spec.name}: {warning}")
        logger.info(f"[Docker] Created container {spec.name} ({result['Id'][:12]})")
        return {"id": result["Id"], "name": spec.name}

    async def start(self, container_id: str) -> None:
        """Start a container. Starting a running container is a no-op (the daemon answers 304)."""
        api = self._api()
        await asyncio.to_thread(api.start, container_id)

    async def stop(self, container_id: str, timeout: int = 10) -> None:
        api = self._api()
        await asyncio.to_thread(api.stop, container_id, timeout=timeout)

    async def remove(self, container_id: str, remove_volumes: bool = False, force: bool = False) -> None:
        api = self._api()
        await asyncio.to_thread(api.remove_container, container_id, v=remove_volumes, force=force)

    async def get_by_id(self, container_id: str) -> dict:
        """Full inspect information for a container"""
        api = self._api()
        return await asyncio.to_thread(api.inspect_container, container_id)

    async def get_by_name(self, name: str) -> dict | None:
        """
        Find a container by exact name.

        The daemon reports names with a leading "/"; both forms match.

        Returns:
            {"id": ..., "summary": <list entry>} or None
        """
        wanted = name.lstrip("/")
        for summary in await self.list_containers(all=True):
            names = [n.lstrip("/") for n in summary.get("Names") or []]
            if wanted in names:
                return {"id": summary["Id"], "summary": summary}
        return None

    async def list_containers(self, all: bool = True) -> list[dict]:
        api = self._api()
        return await asyncio.to_thread(api.containers, all=all)

    async def get_logs(
        self,
        container_id: str,
        stdout: bool = True,
        stderr: bool = True,
        tail: int | None = None,
        since: int | None = None,
        until: int | None = None,
        timestamps: bool = False,
    ) -> str:
        """Fetch container logs (non-follow) as text"""
        api = self._api()
        raw = await asyncio.to_thread(
            api.logs,
            container_id,
            stdout=stdout,
            stderr=stderr,
            stream=False,
            timestamps=timestamps,
            tail=tail if tail is not None else "all",
            since=since,
            until=until,
        )
        return raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw)

    async def update(self, container_id: str, new_spec: ContainerSpec, preserve_volumes: bool = True) -> dict:
        """
        Recreate a container with a new spec.

        The container keeps its name. With preserve_volumes, its current mounts
        replace the new spec's binds and its volumes survive the removal.
        The replacement is started only if the original was running.

        Returns:
            Inspect information of the replacement container
        """
        original = await self.get_by_id(container_id)
        was_running = bool((original.get("State") or {}).get("Running"))

        if was_running:
            await self.stop(container_id)
        await self.remove(container_id, remove_volumes=not preserve_volumes)

        merged = new_spec.replace(name=(original.get("Name") or new_spec.name).lstrip("/"))
        if preserve_volumes:
            binds = [b for b in (mount_to_bind(m) for m in original.get("Mounts") or []) if b]
            if binds:
                merged = merged.replace(binds=binds)

        created = await self.create(merged)
        if was_running:
            await self.start(created["id"])
        logger.info(f"[Docker] Container {merged.name} recreated")
        return await self.get_by_id(created["id"])

    async def pull_image(self, image: str) -> None:
        """
        Pull an image, following the progress stream to completion.

        Raises:
            ImagePullError: If the stream reports an error
        """
        api = self._api()
        repository, tag = parse_repository_tag(image)

        def _pull() -> None:
            for chunk in api.pull(repository, tag=tag or "latest", stream=True, decode=True):
                if "error" in chunk:
                    raise ImagePullError(image, chunk["error"])
                if chunk.get("status"):
                    logger.debug(f"[Docker] {image}: {chunk['status']} {chunk.get('progress', '')}")

        logger.info(f"[Docker] Pulling {image}")
        await asyncio.to_thread(_pull)
        logger.info(f"[Docker] Pulled {image}")

    async def remove_volume(self, name: str, force: bool = True) -> bool:
        """Remove a named volume. Returns False if it does not exist."""
        api = self._api()
        try:
            await asyncio.to_thread(api.remove_volume, name, force=force)
        except NotFound:
            return False
        logger.info(f"[Docker] Volume removed: {name}")
        return True

    async def get_networks(self, container_id: str) -> list[str]:
        """Names of the networks a container is attached to"""
        info = await self.get_by_id(container_id)
        networks = (info.get("NetworkSettings") or {}).get("Networks") or {}
        return list(networks.keys())
