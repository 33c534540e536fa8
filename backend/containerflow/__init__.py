"""
ContainerFlow

Remote Docker host management over an SSH tunnel, with provisioning of a
multi-tenant WordPress stack and its monitoring containers.
"""

__version__ = "1.0.0"
__author__ = "ContainerFlow contributors"
__license__ = "MIT"

from containerflow.reconcile.engine import SetupEngine
from containerflow.reconcile.models import ProgressEvent, SetupOptions
from containerflow.service import ContainerFlowService, get_service
from containerflow.tunnel.models import SSHConfig

__all__ = [
    "ContainerFlowService",
    "get_service",
    "SetupEngine",
    "SetupOptions",
    "ProgressEvent",
    "SSHConfig",
]
