"""
WordPress project lifecycle

A project is the set of containers labelled container-flow.name=<project>.
Each container is named <project>-<N>; all instances of a project share the
wordpress-<project>-data volume and one MySQL database.
"""

import asyncio
import logging
import re

import aiomysql
from docker.errors import APIError

from containerflow.containers.catalog import host_rule, wordpress_spec, wordpress_volume
from containerflow.containers.operations import ContainerOperations
from containerflow.containers.specs import LABEL_PROJECT, LABEL_TYPE, ContainerSpec
from containerflow.core.config import Settings, get_settings
from containerflow.core.exceptions import CloneError, ContainerFlowError, ValidationError
from containerflow.credentials.models import WordPressCredential
from containerflow.credentials.store import CredentialStore
from containerflow.mysql.client import MySQLAdmin, generate_random_password, project_db_identifier
from containerflow.networks.operations import NetworkOperations

logger = logging.getLogger(__name__)

_INSTANCE_SUFFIX = re.compile(r"^(.*?)-(\d+)$")
_HOST_RULE = re.compile(r"Host\([`\"']([^`\"']+)[`\"']\)")


def next_instance_name(container_name: str) -> str:
    """myproj-3 -> myproj-4; a name without a numeric suffix counts as instance 1"""
    name = container_name.lstrip("/")
    match = _INSTANCE_SUFFIX.match(name)
    if match:
        return f"{match.group(1)}-{int(match.group(2)) + 1}"
    return f"{name}-2"


def rule_domain(rule: str | None) -> str | None:
    if not rule:
        return None
    match = _HOST_RULE.search(rule)
    return match.group(1) if match else None


class WordPressProjects:
    """Create, clone, delete and re-address WordPress projects."""

    def __init__(
        self,
        containers: ContainerOperations,
        networks: NetworkOperations,
        mysql: MySQLAdmin,
        credentials: CredentialStore,
        settings: Settings | None = None,
    ):
        self.containers = containers
        self.networks = networks
        self.mysql = mysql
        self.credentials = credentials
        self.settings = settings or get_settings()

    async def create(self, name: str, domain: str | None = None) -> dict:
        """
        Create a project: its database and user, then its first container.

        Args:
            name: Project name
            domain: Public host name. Defaults to <name>.<base_domain>

        Returns:
            {"id": container id, "name": container name}
        """
        if not name:
            raise ValidationError("WordPress name is required")

        domain = domain or f"{name}.{self.settings.base_domain}"
        db_name = db_user = project_db_identifier(name)
        db_password = generate_random_password()

        logger.info(f"[WordPress] Creating project '{name}' at {domain}")
        await self.mysql.create_database_with_user(db_name, db_user, db_password)

        # MySQL applies new grants asynchronously
        await asyncio.sleep(self.settings.wordpress_settle_delay)

        spec = wordpress_spec(
            project=name,
            container_name=f"{name}-1",
            domain=domain,
            db_name=db_name,
            db_user=db_user,
            db_password=db_password,
        )
        created = await self.containers.create(spec)
        await self.networks.connect(self.settings.network_name, created["id"])
        await self.containers.start(created["id"])

        self.credentials.register_project(
            name, WordPressCredential(db_user=db_user, db_password=db_password, db_name=db_name)
        )
        logger.info(f"[WordPress] Project '{name}' created (database {db_name})")
        return {"id": created["id"], "name": spec.name}

    async def clone(self, source: dict) -> dict:
        """
        Start another instance of a project from one of its containers.

        The clone shares the source's environment, volume and database.

        Args:
            source: Inspect information of the source container

        Returns:
            Inspect information of the new container

        Raises:
            CloneError: If the source is not a complete WordPress container
        """
        source_spec = ContainerSpec.from_inspect(source)
        new_name = next_instance_name(source_spec.name)
        project = source_spec.labels.get(LABEL_PROJECT) or _INSTANCE_SUFFIX.sub(r"\1", source_spec.name)

        if source_spec.env_value("WORDPRESS_DB_NAME") is None:
            raise CloneError("Source container does not have a valid WordPress database configuration")
        rule = source_spec.labels.get(f"traefik.http.routers.{project}.rule") or ""
        if "Host(" not in rule:
            raise CloneError("Source container does not have a valid Traefik rule")
        if not any(bind.startswith("wordpress-") for bind in source_spec.binds):
            raise CloneError("Source container does not have a valid volume bind")

        logger.info(f"[WordPress] Cloning {source_spec.name} as {new_name}")
        created = await self.containers.create(source_spec.replace(name=new_name))
        await self.networks.connect(self.settings.network_name, created["id"])
        await self.containers.start(created["id"])
        return await self.containers.get_by_id(created["id"])

    async def delete(self, name: str) -> dict:
        """
        Remove every container of a project, its volume, database and user.

        Not transactional: a container that fails to stop or be removed is
        logged and skipped, and database cleanup errors are only logged.
        """
        if not name:
            raise ValidationError("WordPress name is required")

        summaries = await self.containers.list_containers(all=True)
        targets = [c for c in summaries if (c.get("Labels") or {}).get(LABEL_PROJECT) == name]
        logger.info(f"[WordPress] Deleting project '{name}' ({len(targets)} containers)")

        removed = 0
        for container in targets:
            label = (container.get("Names") or [container["Id"]])[0].lstrip("/")
            try:
                if container.get("State") == "running":
                    await self.containers.stop(container["Id"], timeout=10)
                await self.containers.remove(container["Id"], remove_volumes=True, force=True)
                removed += 1
            except APIError as e:
                logger.error(f"[WordPress] Failed to remove {label}: {e}")

        volume = wordpress_volume(name)
        try:
            volume_removed = await self.containers.remove_volume(volume, force=True)
        except APIError as e:
            logger.warning(f"[WordPress] Volume {volume} not removed: {e}")
            volume_removed = False

        db_identifier = project_db_identifier(name)
        try:
            await self.mysql.delete_database_and_user(db_identifier, db_identifier)
            database_deleted = True
        except (ContainerFlowError, aiomysql.Error, OSError) as e:
            logger.error(f"[WordPress] Database cleanup for '{name}' failed: {e}")
            database_deleted = False

        self.credentials.forget_project(name)
        logger.info(f"[WordPress] Project '{name}' deleted")
        return {
            "containers_removed": removed,
            "volume_removed": volume_removed,
            "database_deleted": database_deleted,
        }

    async def change_url(self, container: dict, new_url: str) -> dict:
        """
        Point a container's Traefik Host rules at new_url.

        Labels cannot change on a live container, so it is recreated with the
        same environment and host configuration.

        Returns:
            Inspect information of the replacement container
        """
        spec = ContainerSpec.from_inspect(container)
        labels = {
            key: host_rule(new_url) if key.endswith(".rule") and "Host(" in value else value
            for key, value in spec.labels.items()
        }
        spec = spec.replace(labels=labels)

        if (container.get("State") or {}).get("Status") == "running":
            await self.containers.stop(container["Id"])
        await self.containers.remove(container["Id"], force=True)

        created = await self.containers.create(spec)
        try:
            await self.networks.connect(self.settings.network_name, created["id"])
        except APIError as e:
            logger.warning(f"[WordPress] Network attach for {spec.name} skipped: {e}")
        await self.containers.start(created["id"])
        logger.info(f"[WordPress] {spec.name} now served at {new_url}")
        return await self.containers.get_by_id(created["id"])

    async def list_projects(self) -> list[dict]:
        """Projects derived from the live container listing"""
        projects: dict[str, dict] = {}
        for summary in await self.containers.list_containers(all=True):
            labels = summary.get("Labels") or {}
            project = labels.get(LABEL_PROJECT)
            if labels.get(LABEL_TYPE) != "wordpress" or not project:
                continue
            entry = projects.setdefault(
                project,
                {
                    "name": project,
                    "domain": rule_domain(labels.get(f"traefik.http.routers.{project}.rule")),
                    "containers": [],
                },
            )
            entry["containers"].append(
                {
                    "id": summary["Id"],
                    "name": (summary.get("Names") or [""])[0].lstrip("/"),
                    "state": summary.get("State"),
                }
            )
        return [projects[name] for name in sorted(projects)]
