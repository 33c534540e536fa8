"""
Credential store - session cache of MySQL and WordPress secrets

Values come from two sources: a discovery pass over live container
environments, and explicit set/register calls made when the application
creates a secret itself or the user supplies one. An explicitly set secret
is never overwritten by discovery until the next reset().
"""

import logging

from docker.errors import APIError

from containerflow.containers.catalog import MYSQL, MYSQLD_EXPORTER
from containerflow.containers.operations import ContainerOperations
from containerflow.containers.specs import LABEL_PROJECT, LABEL_TYPE, env_value
from containerflow.credentials.models import (
    CredentialState,
    MetricsCredential,
    RootCredential,
    WordPressCredential,
    build_dsn,
    parse_dsn,
)

logger = logging.getLogger(__name__)


class CredentialStore:
    """Process-wide credential cache"""

    def __init__(self):
        self._state = CredentialState()
        # keys set explicitly since the last reset: "root", "metrics", "project:<name>"
        self._explicit: set[str] = set()

    def get_state(self) -> CredentialState:
        return self._state

    @property
    def root_password(self) -> str | None:
        return self._state.root.password if self._state.root else None

    @property
    def metrics(self) -> MetricsCredential | None:
        return self._state.metrics

    async def discover_from_containers(self, containers: ContainerOperations) -> CredentialState:
        """
        Populate the cache from live container environments.

        Reads MYSQL_ROOT_PASSWORD from the mysql container, DATA_SOURCE_NAME
        from mysqld-exporter, and WORDPRESS_DB_* from every WordPress container.
        A container that cannot be inspected is skipped. Secrets that were set
        explicitly are left as they are.
        """
        for summary in await containers.list_containers(all=True):
            names = [n.lstrip("/") for n in summary.get("Names") or []]
            labels = summary.get("Labels") or {}

            if MYSQL in names:
                role = MYSQL
            elif MYSQLD_EXPORTER in names:
                role = MYSQLD_EXPORTER
            elif labels.get(LABEL_TYPE) == "wordpress" and labels.get(LABEL_PROJECT):
                role = "wordpress"
            else:
                continue

            try:
                info = await containers.get_by_id(summary["Id"])
            except APIError as e:
                logger.warning(f"[Credentials] Could not inspect {names or summary['Id']}: {e}")
                continue

            env = (info.get("Config") or {}).get("Env") or []
            if role == MYSQL:
                password = env_value(env, "MYSQL_ROOT_PASSWORD")
                if password and "root" not in self._explicit:
                    self._state.root = RootCredential(password=password)
                    logger.info("[Credentials] MySQL root password discovered")
            elif role == MYSQLD_EXPORTER:
                dsn = env_value(env, "DATA_SOURCE_NAME")
                parsed = parse_dsn(dsn) if dsn else None
                if parsed and parsed[0] != "root" and "metrics" not in self._explicit:
                    self._state.metrics = MetricsCredential(user=parsed[0], password=parsed[1], dsn=dsn)
                    logger.info(f"[Credentials] Metrics user '{parsed[0]}' discovered")
            else:
                project = labels[LABEL_PROJECT]
                if f"project:{project}" in self._explicit:
                    continue
                db_name = env_value(env, "WORDPRESS_DB_NAME")
                db_user = env_value(env, "WORDPRESS_DB_USER")
                db_password = env_value(env, "WORDPRESS_DB_PASSWORD")
                if db_name and db_user and db_password is not None:
                    self._state.wordpress_projects[project] = WordPressCredential(
                        db_user=db_user, db_password=db_password, db_name=db_name
                    )

        self._state.initialized = True
        logger.info(
            f"[Credentials] Discovery complete: root={'yes' if self._state.root else 'no'}, "
            f"metrics={'yes' if self._state.metrics else 'no'}, "
            f"projects={len(self._state.wordpress_projects)}"
        )
        return self._state

    def set_root_password(self, password: str) -> None:
        self._explicit.add("root")
        self._state.root = RootCredential(password=password)

    def set_metrics(self, user: str, password: str) -> MetricsCredential:
        self._explicit.add("metrics")
        self._state.metrics = MetricsCredential(user=user, password=password, dsn=build_dsn(user, password))
        return self._state.metrics

    def set_root_and_metrics(
        self, root_password: str, metrics_user: str | None = None, metrics_password: str | None = None
    ) -> None:
        self.set_root_password(root_password)
        if metrics_user and metrics_password:
            self.set_metrics(metrics_user, metrics_password)

    def register_project(self, project: str, credential: WordPressCredential) -> None:
        self._explicit.add(f"project:{project}")
        self._state.wordpress_projects[project] = credential

    def get_project(self, project: str) -> WordPressCredential | None:
        return self._state.wordpress_projects.get(project)

    def forget_project(self, project: str) -> None:
        self._explicit.discard(f"project:{project}")
        self._state.wordpress_projects.pop(project, None)

    def status(self) -> dict:
        """Presence of each secret. Never returns the secrets themselves."""
        return {
            "initialized": self._state.initialized,
            "root": self._state.root is not None,
            "metrics": self._state.metrics is not None,
            "metrics_user": self._state.metrics.user if self._state.metrics else None,
            "wordpress_projects": sorted(self._state.wordpress_projects),
        }

    def reset(self) -> None:
        self._state = CredentialState()
        self._explicit.clear()


# Global credential store instance
_store: CredentialStore | None = None


def get_credential_store() -> CredentialStore:
    """Get the global credential store instance"""
    global _store
    if _store is None:
        _store = CredentialStore()
    return _store
