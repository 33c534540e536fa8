"""
Monitoring - Grafana datasource and dashboard provisioning
"""

from containerflow.monitoring.grafana import (
    Dashboard,
    DatasourceResult,
    GrafanaClient,
    ProvisionResult,
    load_dashboards,
    provision_grafana,
)

__all__ = [
    "Dashboard",
    "DatasourceResult",
    "GrafanaClient",
    "ProvisionResult",
    "load_dashboards",
    "provision_grafana",
]
