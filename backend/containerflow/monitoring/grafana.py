"""
Grafana provisioning over the HTTP API

Ensures the Prometheus datasource exists with the expected URL and uploads
the bundled dashboards. Safe to run repeatedly.
"""

import asyncio
import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NamedTuple

import httpx

from containerflow.core.exceptions import GrafanaError

logger = logging.getLogger(__name__)

DATASOURCE_PLACEHOLDER_UID = "PROMETHEUS_DS"
DASHBOARDS_DIR = Path(__file__).parent / "dashboards"


class GrafanaEndpoints:
    """Grafana HTTP API endpoints, relative to the Grafana base URL"""

    HEALTH = "/api/health"
    DATASOURCES = "/api/datasources"
    DATASOURCE_BY_NAME = "/api/datasources/name/{name}"
    DATASOURCE_BY_ID = "/api/datasources/{id}"
    DASHBOARD_BY_UID = "/api/dashboards/uid/{uid}"
    DASHBOARD_IMPORT = "/api/dashboards/db"


@dataclass
class Dashboard:
    title: str
    uid: str
    json: dict[str, Any]
    folder_id: int = 0


class DatasourceResult(NamedTuple):
    datasource: dict
    created: bool
    updated: bool


@dataclass
class ProvisionResult:
    created: bool
    updated: bool
    datasource_id: int
    dashboards_imported: int


def load_dashboards(directory: Path | None = None) -> list[Dashboard]:
    """Load every bundled dashboard JSON file, sorted by file name"""
    directory = directory or DASHBOARDS_DIR
    dashboards = []
    for path in sorted(directory.glob("*.json")):
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        dashboards.append(Dashboard(title=data["title"], uid=data["uid"], json=data))
    return dashboards


def patch_datasource_uid(node: Any, datasource_uid: str) -> Any:
    """Point every placeholder datasource reference at the real Prometheus datasource (in place)"""
    if isinstance(node, list):
        for item in node:
            patch_datasource_uid(item, datasource_uid)
    elif isinstance(node, dict):
        ref = node.get("datasource")
        if isinstance(ref, dict) and ref.get("uid") == DATASOURCE_PLACEHOLDER_UID:
            ref["uid"] = datasource_uid
            ref["type"] = "prometheus"
        for value in node.values():
            patch_datasource_uid(value, datasource_uid)
    return node


class GrafanaClient:
    """
    Async client for the subset of the Grafana API used for provisioning

    Example:
        async with GrafanaClient("http://grafana:3000", "admin", "admin") as grafana:
            await grafana.wait_ready()
            result = await grafana.provision("http://prometheus:9090", load_dashboards())
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=(username, password),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    async def wait_ready(self, attempts: int = 40, interval: float = 2.0) -> None:
        """
        Poll the health endpoint until it answers 2xx.

        Raises:
            GrafanaError: If Grafana is not ready after all attempts
        """
        logger.info(f"[Grafana] Waiting for availability at {self.base_url}")
        for attempt in range(1, attempts + 1):
            try:
                response = await self.client.get(GrafanaEndpoints.HEALTH)
                if response.is_success:
                    return
            except httpx.HTTPError as e:
                logger.debug(f"[Grafana] Health check {attempt}/{attempts} failed: {e}")
            if attempt < attempts:
                await asyncio.sleep(interval)
        raise GrafanaError(f"Grafana not ready after {attempts} attempts at {self.base_url}")

    async def _get_datasource(self, name: str) -> httpx.Response:
        return await self.client.get(GrafanaEndpoints.DATASOURCE_BY_NAME.format(name=name))

    async def ensure_datasource(self, name: str, url: str) -> DatasourceResult:
        """Make sure a Prometheus datasource called name points at url."""
        created = updated = False
        response = await self._get_datasource(name)

        if response.status_code == 404:
            logger.info("[Grafana] Creating Prometheus datasource")
            create = await self.client.post(
                GrafanaEndpoints.DATASOURCES,
                json={
                    "name": name,
                    "type": "prometheus",
                    "access": "proxy",
                    "url": url,
                    "basicAuth": False,
                    "isDefault": True,
                    "editable": True,
                },
            )
            if not create.is_success:
                raise GrafanaError(
                    f"Failed to create datasource: {create.status_code} {create.text}",
                    status_code=create.status_code,
                )
            created = True
            response = await self._get_datasource(name)
            if not response.is_success:
                raise GrafanaError(
                    f"Failed to fetch created datasource: {response.status_code}",
                    status_code=response.status_code,
                )
        elif response.status_code == 401:
            raise GrafanaError(
                "Failed querying datasource: 401 Unauthorized",
                status_code=401,
                recovery_hint="The Grafana admin credentials are invalid; pass the current ones",
            )
        elif response.status_code != 200:
            raise GrafanaError(
                f"Failed querying datasource: {response.status_code}",
                status_code=response.status_code,
            )

        datasource = response.json()

        if not created and datasource.get("url") != url:
            logger.info(f"[Grafana] Updating datasource URL to {url}")
            update = await self.client.put(
                GrafanaEndpoints.DATASOURCE_BY_ID.format(id=datasource["id"]),
                json={**datasource, "url": url},
            )
            if not update.is_success:
                raise GrafanaError(
                    f"Failed to update datasource: {update.status_code} {update.text}",
                    status_code=update.status_code,
                )
            updated = True
            refreshed = await self._get_datasource(name)
            if refreshed.is_success:
                datasource = refreshed.json()

        return DatasourceResult(datasource, created, updated)

    async def import_dashboards(self, dashboards: list[Dashboard], datasource: dict) -> int:
        """
        Upload dashboards whose UID does not exist yet.

        Existing dashboards are left untouched so user edits survive.
        A failed upload is logged and the next dashboard is tried.

        Returns:
            Number of dashboards uploaded
        """
        datasource_uid = datasource.get("uid") or str(datasource.get("id"))
        imported = 0

        for dash in dashboards:
            existing = await self.client.get(GrafanaEndpoints.DASHBOARD_BY_UID.format(uid=dash.uid))
            if existing.is_success:
                logger.debug(f"[Grafana] Dashboard {dash.uid} already present, skipping")
                continue

            body = patch_datasource_uid(copy.deepcopy(dash.json), datasource_uid)
            body.update({"title": dash.title, "uid": dash.uid})
            body.pop("id", None)
            payload = {
                "dashboard": body,
                "overwrite": True,
                "folderId": dash.folder_id,
                "message": "Automated provisioning",
            }

            logger.info(f"[Grafana] Importing dashboard: {dash.title}")
            try:
                response = await self.client.post(GrafanaEndpoints.DASHBOARD_IMPORT, json=payload)
            except httpx.HTTPError as e:
                logger.warning(f"[Grafana] Dashboard import error ({dash.title}): {e}")
                continue
            if not response.is_success:
                logger.warning(
                    f"[Grafana] Dashboard import failed ({dash.title}): {response.status_code} {response.text}"
                )
                continue
            imported += 1

        return imported

    async def provision(
        self,
        prometheus_url: str,
        dashboards: list[Dashboard],
        datasource_name: str = "Prometheus",
    ) -> ProvisionResult:
        datasource, created, updated = await self.ensure_datasource(datasource_name, prometheus_url)
        imported = await self.import_dashboards(dashboards, datasource)
        logger.info("[Grafana] Provisioning complete")
        return ProvisionResult(
            created=created,
            updated=updated,
            datasource_id=datasource["id"],
            dashboards_imported=imported,
        )


async def provision_grafana(
    base_urls: list[str],
    username: str,
    password: str,
    prometheus_url: str,
    dashboards: list[Dashboard] | None = None,
    attempts: int = 40,
    interval: float = 2.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProvisionResult:
    """
    Provision the first reachable Grafana among base_urls.

    Raises:
        GrafanaError: The last candidate's error when none succeeds
    """
    if not base_urls:
        raise GrafanaError("No Grafana URL configured")
    if dashboards is None:
        dashboards = load_dashboards()

    last_error: Exception | None = None
    for base_url in base_urls:
        try:
            async with GrafanaClient(base_url, username, password, transport=transport) as grafana:
                await grafana.wait_ready(attempts=attempts, interval=interval)
                return await grafana.provision(prometheus_url, dashboards)
        except (GrafanaError, httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning(f"[Grafana] Provisioning via {base_url} failed: {e}")
            last_error = e

    if isinstance(last_error, GrafanaError):
        raise last_error
    raise GrafanaError(f"Grafana provisioning failed: {last_error}") from last_error
