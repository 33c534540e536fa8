"""
Ensure-steps of the infrastructure setup pipeline

Every container step follows one state machine:

    missing                -> create, attach, start
    present and valid      -> attach (already-attached tolerated), start if stopped
    present, invalid       -> force ? remove (force, volumes) + create, attach, start
                                     : InvalidConfigurationError

Each step emits "starting" first and ends with exactly one "success" or
"error" event.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from docker.errors import APIError

from containerflow.containers import catalog
from containerflow.containers.operations import ContainerOperations
from containerflow.containers.specs import ContainerSpec
from containerflow.core.config import Settings
from containerflow.core.exceptions import InvalidConfigurationError, PreconditionError
from containerflow.credentials.models import MetricsCredential, build_dsn
from containerflow.credentials.store import CredentialStore
from containerflow.monitoring.grafana import ProvisionResult, load_dashboards, provision_grafana
from containerflow.mysql.client import MySQLAdmin, generate_random_password
from containerflow.networks.operations import NetworkOperations
from containerflow.reconcile import validator
from containerflow.reconcile.models import GrafanaAuth, ProgressCallback, ProgressStatus

logger = logging.getLogger(__name__)


@dataclass
class EnsureContext:
    """Everything a step needs, threaded through the whole run"""

    force: bool
    emit: ProgressCallback
    settings: Settings
    containers: ContainerOperations
    networks: NetworkOperations
    credentials: CredentialStore
    mysql: MySQLAdmin
    grafana_auth: GrafanaAuth | None = None


class StepReporter:
    def __init__(self, ctx: EnsureContext, step_id: str):
        self.ctx = ctx
        self.step_id = step_id
        self.done = False

    def progress(self, message: str) -> None:
        self.ctx.emit(self.step_id, ProgressStatus.STARTING, message)

    def success(self, message: str) -> None:
        self.done = True
        self.ctx.emit(self.step_id, ProgressStatus.SUCCESS, message)


@asynccontextmanager
async def step(ctx: EnsureContext, step_id: str, message: str) -> AsyncIterator[StepReporter]:
    """Wrap a step body: emit starting, then error on any exception before re-raising it"""
    reporter = StepReporter(ctx, step_id)
    ctx.emit(step_id, ProgressStatus.STARTING, message)
    try:
        yield reporter
    except Exception as e:
        ctx.emit(step_id, ProgressStatus.ERROR, getattr(e, "message", None) or str(e))
        raise
    if not reporter.done:
        reporter.success(f"{step_id} done")


async def _attach(ctx: EnsureContext, container_id: str, tolerate_errors: bool) -> None:
    try:
        await ctx.networks.connect(ctx.settings.network_name, container_id)
    except APIError as e:
        if not tolerate_errors:
            raise
        logger.debug(f"[Setup] Attach of {container_id[:12]} to {ctx.settings.network_name} skipped: {e}")


async def _create_attach_start(
    ctx: EnsureContext, spec: ContainerSpec, tolerate_attach_errors: bool
) -> str:
    created = await ctx.containers.create(spec)
    await _attach(ctx, created["id"], tolerate_errors=tolerate_attach_errors)
    await ctx.containers.start(created["id"])
    return created["id"]


async def _reuse(ctx: EnsureContext, container_id: str, info: dict) -> None:
    await _attach(ctx, container_id, tolerate_errors=True)
    if (info.get("State") or {}).get("Status") != "running":
        await ctx.containers.start(container_id)


async def ensure_container(
    ctx: EnsureContext,
    reporter: StepReporter,
    spec: ContainerSpec,
    label: str,
    validate: bool = True,
    tolerate_attach_errors: bool = False,
) -> str:
    """
    Bring one named container to spec.

    Args:
        validate: False to reuse an existing container without checking it
        tolerate_attach_errors: Ignore network attach failures on the create path too

    Returns:
        "created", "ready" or "recreated"
    """
    existing = await ctx.containers.get_by_name(spec.name)

    if existing is None:
        await _create_attach_start(ctx, spec, tolerate_attach_errors)
        reporter.success(f"{label} container created")
        return "created"

    info = await ctx.containers.get_by_id(existing["id"])
    if not validate or validator.container_config(info, spec):
        await _reuse(ctx, existing["id"], info)
        reporter.success(f"{label} container ready")
        return "ready"

    if not ctx.force:
        raise InvalidConfigurationError(f"{label} container")

    reporter.progress(f"Recreating invalid {label} container...")
    await ctx.containers.remove(existing["id"], remove_volumes=True, force=True)
    await _create_attach_start(ctx, spec, tolerate_attach_errors)
    reporter.success(f"{label} container recreated")
    return "recreated"


async def ensure_network(ctx: EnsureContext) -> None:
    name = ctx.settings.network_name
    async with step(ctx, "network", f"Checking network {name}...") as reporter:
        existing = await ctx.networks.find_by_name(name)
        if not existing:
            await ctx.networks.create(name, driver="bridge")
            reporter.success(f"Network {name} created")
            return

        info = await ctx.networks.inspect(name)
        if validator.network_config(info, name):
            reporter.success(f"Network {name} ready")
            return

        if not ctx.force:
            raise InvalidConfigurationError(f"Network {name}")
        reporter.progress(f"Removing invalid network {name}...")
        await ctx.networks.remove(name, force=True)
        await ctx.networks.create(name, driver="bridge")
        reporter.success(f"Network {name} recreated")


async def ensure_traefik(ctx: EnsureContext) -> None:
    async with step(ctx, "traefik", "Checking Traefik container...") as reporter:
        await ensure_container(ctx, reporter, catalog.traefik_spec(ctx.settings), "Traefik")


async def ensure_mysql(ctx: EnsureContext) -> None:
    async with step(ctx, "mysql", "Checking MySQL container...") as reporter:
        root_password = ctx.credentials.root_password
        if root_password:
            await ensure_container(ctx, reporter, catalog.mysql_spec(root_password), "MySQL")
            return

        existing = await ctx.containers.get_by_name(catalog.MYSQL)
        if existing is None:
            raise PreconditionError(
                "MySQL root password not set",
                recovery_hint="Set the MySQL root password before running setup",
            )
        # Without the password there is no expected spec to compare against
        logger.warning("[Setup] MySQL root password unknown, reusing existing container unvalidated")
        info = await ctx.containers.get_by_id(existing["id"])
        await _reuse(ctx, existing["id"], info)
        reporter.success("MySQL container ready (not validated)")


async def wait_mysql_ready(ctx: EnsureContext) -> None:
    async with step(ctx, "mysql-ready", "Waiting for MySQL to accept connections...") as reporter:
        await ctx.mysql.wait_ready(ctx.settings.mysql_ready_retries, ctx.settings.mysql_ready_delay)
        reporter.success("MySQL is ready")


async def ensure_mysql_metrics_user(ctx: EnsureContext) -> MetricsCredential | None:
    """Create the exporter's MySQL user. Failure is reported but never aborts the pipeline."""
    try:
        async with step(ctx, "mysql-metrics-user", "Ensuring MySQL metrics user exists...") as reporter:
            cached = ctx.credentials.metrics
            user = cached.user if cached else ctx.settings.metrics_user
            password = cached.password if cached else generate_random_password()
            await ctx.mysql.ensure_metrics_user(user, password)
            metrics = ctx.credentials.set_metrics(user, password)
            reporter.success(f"Metrics user '{user}' ensured")
            return metrics
    except Exception as e:
        logger.warning(f"[Setup] Metrics user unavailable, exporter will use root credentials: {e}")
        return None


async def ensure_cadvisor(ctx: EnsureContext) -> None:
    async with step(ctx, "cadvisor", "Checking cAdvisor container...") as reporter:
        await ensure_container(ctx, reporter, catalog.cadvisor_spec(), "cAdvisor")


def exporter_spec(ctx: EnsureContext, metrics: MetricsCredential | None) -> ContainerSpec:
    """mysqld-exporter spec using the metrics user, or root when there is none"""
    if metrics is not None:
        return catalog.mysqld_exporter_spec(metrics.dsn, metrics.user, metrics.password)
    root_password = ctx.credentials.root_password or ""
    return catalog.mysqld_exporter_spec(build_dsn("root", root_password), "root", root_password)


async def ensure_mysqld_exporter(ctx: EnsureContext, metrics: MetricsCredential | None) -> None:
    async with step(ctx, "mysqld-exporter", "Checking MySQL exporter container...") as reporter:
        await ensure_container(ctx, reporter, exporter_spec(ctx, metrics), "mysqld-exporter")


async def ensure_node_exporter(ctx: EnsureContext) -> None:
    async with step(ctx, "node-exporter", "Checking node-exporter container...") as reporter:
        # Runs on the default bridge; joining the stack network is optional
        await ensure_container(
            ctx, reporter, catalog.node_exporter_spec(), "node-exporter", tolerate_attach_errors=True
        )


async def ensure_prometheus(ctx: EnsureContext) -> None:
    async with step(ctx, "prometheus", "Checking Prometheus container...") as reporter:
        await ensure_container(ctx, reporter, catalog.prometheus_spec(), "Prometheus")


async def ensure_grafana(ctx: EnsureContext) -> None:
    async with step(ctx, "grafana", "Checking Grafana container...") as reporter:
        await ensure_container(ctx, reporter, catalog.grafana_spec(ctx.settings), "Grafana")


async def provision_grafana_dashboards(ctx: EnsureContext) -> ProvisionResult | None:
    """Datasource and dashboards. Failure is reported but never aborts the pipeline."""
    settings = ctx.settings
    auth = ctx.grafana_auth or GrafanaAuth(settings.grafana_admin_user, settings.grafana_admin_password)
    try:
        async with step(ctx, "grafana-provision", "Provisioning Grafana datasource...") as reporter:
            result = await provision_grafana(
                base_urls=settings.grafana_candidate_urls(),
                username=auth.username,
                password=auth.password,
                prometheus_url=settings.prometheus_url,
                dashboards=load_dashboards(),
                attempts=settings.grafana_ready_attempts,
                interval=settings.grafana_ready_interval,
            )
            reporter.success(
                f"Grafana provisioned (created: {result.created}, updated: {result.updated}, "
                f"dashboards: {result.dashboards_imported})"
            )
            return result
    except Exception as e:
        logger.error(f"[Setup] Grafana provisioning failed: {e}")
        return None
