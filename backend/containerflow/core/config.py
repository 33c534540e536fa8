"""
Configuration management

Centralized settings using Pydantic BaseSettings for type-safe configuration
with environment variable support. Every setting can be overridden with a
CONTAINERFLOW_-prefixed environment variable or a .env file, e.g.:
- CONTAINERFLOW_DOCKER_LOCAL_PORT=23760
- CONTAINERFLOW_NETWORK_NAME=CF-WP
- CONTAINERFLOW_LOG_LEVEL=DEBUG
"""

import logging
import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings with environment variable support
    """

    # Tunnel
    docker_local_port: int = 23750
    mysql_local_port: int = 23751
    remote_docker_socket: str = "/var/run/docker.sock"
    remote_mysql_host: str = "127.0.0.1"
    remote_mysql_port: int = 3306
    ssh_connect_timeout: float = 15.0

    # Docker API
    docker_api_version: str = "auto"
    docker_timeout: int = 60

    # Topology
    network_name: str = "CF-WP"
    base_domain: str = "containerflow.local"
    acme_email: str = "admin@containerflow.local"

    # MySQL
    mysql_ready_retries: int = 10
    mysql_ready_delay: float = 5.0
    metrics_user: str = "metrics"

    # WordPress
    wordpress_settle_delay: float = 2.0

    # Grafana
    grafana_domain: str = "monitoring.containerflow.local"
    grafana_urls: list[str] = []
    grafana_admin_user: str = "admin"
    grafana_admin_password: str = "admin"
    grafana_ready_attempts: int = 40
    grafana_ready_interval: float = 2.0
    prometheus_url: str = "http://prometheus:9090"

    # Environment
    data_dir: Path | None = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CONTAINERFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def grafana_candidate_urls(self) -> list[str]:
        """Base URLs tried in order when provisioning Grafana"""
        if self.grafana_urls:
            return list(self.grafana_urls)
        return [f"https://{self.grafana_domain}", "http://grafana:3000"]


# Singleton pattern for settings
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get application settings (singleton)

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def get_data_dir(settings: Settings | None = None) -> Path:
    """
    Get the ContainerFlow data directory (preferences, encryption key)

    Priority order:
    1. Settings.data_dir (CONTAINERFLOW_DATA_DIR)
    2. CONTAINERFLOW_DATA environment variable, set by the desktop shell
    3. Fallback: ~/.containerflow

    Returns:
        Path to data directory (created if missing)
    """
    settings = settings or get_settings()

    if settings.data_dir is not None:
        path = Path(settings.data_dir).expanduser().resolve()
    elif os.getenv("CONTAINERFLOW_DATA"):
        path = Path(os.environ["CONTAINERFLOW_DATA"]).expanduser().resolve()
    else:
        path = Path.home() / ".containerflow"

    path.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Using data directory: {path}")
    return path
