"""
Setup Engine - runs the infrastructure ensure-steps in order

The steps run strictly one after another. A fatal step failure stops the
run and is reported as a final "setup" error event; the metrics-user and
grafana-provision steps report their own errors and never stop the run.
"""

import asyncio
import logging
from collections.abc import AsyncIterator

from containerflow.containers.operations import ContainerOperations
from containerflow.core.config import Settings, get_settings
from containerflow.credentials.store import CredentialStore
from containerflow.mysql.client import MySQLAdmin
from containerflow.networks.operations import NetworkOperations
from containerflow.reconcile import steps
from containerflow.reconcile.models import (
    SETUP_STEP,
    ProgressCallback,
    ProgressEvent,
    ProgressStatus,
    SetupOptions,
)

logger = logging.getLogger(__name__)


class SetupEngine:
    """
    Reconciles the network and the seven infrastructure containers.

    Example:
        engine = SetupEngine(containers, networks, credentials, mysql)
        async for event in engine.stream(SetupOptions(force=False)):
            print(event.step, event.status.value, event.message)
    """

    def __init__(
        self,
        containers: ContainerOperations,
        networks: NetworkOperations,
        credentials: CredentialStore,
        mysql: MySQLAdmin,
        settings: Settings | None = None,
    ):
        self.containers = containers
        self.networks = networks
        self.credentials = credentials
        self.mysql = mysql
        self.settings = settings or get_settings()

    def _emitter(self, progress: ProgressCallback | None) -> ProgressCallback:
        def emit(step_id: str, status: ProgressStatus, message: str | None = None) -> None:
            log = logger.error if status == ProgressStatus.ERROR else logger.info
            log(f"[Setup] {step_id}: {status.value} - {message or ''}")
            if progress is None:
                return
            try:
                progress(step_id, status, message)
            except Exception as e:
                logger.warning(f"[Setup] Progress callback raised, ignoring: {e}")

        return emit

    async def run(self, options: SetupOptions | None = None, progress: ProgressCallback | None = None) -> bool:
        """
        Run the full setup pipeline.

        Args:
            options: force recreation and Grafana credentials
            progress: Optional callback receiving (step_id, status, message)

        Returns:
            True if every fatal step succeeded. Never raises; failure details
            are delivered through progress events.
        """
        options = options or SetupOptions()
        emit = self._emitter(progress)
        ctx = steps.EnsureContext(
            force=options.force,
            emit=emit,
            settings=self.settings,
            containers=self.containers,
            networks=self.networks,
            credentials=self.credentials,
            mysql=self.mysql,
            grafana_auth=options.grafana_auth,
        )

        logger.info(f"[Setup] Starting infrastructure setup (force={options.force})")
        try:
            if not self.credentials.get_state().initialized:
                await self.credentials.discover_from_containers(self.containers)

            await steps.ensure_network(ctx)
            await steps.ensure_traefik(ctx)
            await steps.ensure_mysql(ctx)
            await steps.wait_mysql_ready(ctx)
            metrics = await steps.ensure_mysql_metrics_user(ctx)

            await steps.ensure_cadvisor(ctx)
            await steps.ensure_mysqld_exporter(ctx, metrics)
            await steps.ensure_node_exporter(ctx)
            await steps.ensure_prometheus(ctx)
            await steps.ensure_grafana(ctx)

            await steps.provision_grafana_dashboards(ctx)
        except Exception as e:
            logger.exception("[Setup] Infrastructure setup failed")
            emit(SETUP_STEP, ProgressStatus.ERROR, f"Error: {getattr(e, 'message', None) or e}")
            return False

        emit(SETUP_STEP, ProgressStatus.SUCCESS, "Infrastructure setup completed")
        return True

    async def stream(self, options: SetupOptions | None = None) -> AsyncIterator[ProgressEvent]:
        """
        Run the pipeline, yielding progress events as they happen.

        The last event is always the "setup" success or error event. Leaving
        the loop early does not cancel the run; closing the generator waits
        for it to finish.
        """
        queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()

        def sink(step_id: str, status: ProgressStatus, message: str | None = None) -> None:
            queue.put_nowait(ProgressEvent(step_id, status, message))

        task = asyncio.create_task(self.run(options, sink))
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
        finally:
            if not task.done():
                await task
