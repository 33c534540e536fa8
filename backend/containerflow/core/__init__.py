"""
Core module - configuration, exceptions and logging shared across ContainerFlow
"""

from containerflow.core.config import Settings, get_data_dir, get_settings
from containerflow.core.exceptions import (
    CloneError,
    ContainerFlowError,
    GrafanaError,
    ImagePullError,
    InvalidConfigurationError,
    MySQLNotReadyError,
    NotConnectedError,
    PreconditionError,
    TunnelError,
    ValidationError,
)
from containerflow.core.logs import configure_logging

__all__ = [
    "Settings",
    "get_settings",
    "get_data_dir",
    "configure_logging",
    "ContainerFlowError",
    "NotConnectedError",
    "PreconditionError",
    "TunnelError",
    "ImagePullError",
    "InvalidConfigurationError",
    "MySQLNotReadyError",
    "GrafanaError",
    "CloneError",
    "ValidationError",
]
