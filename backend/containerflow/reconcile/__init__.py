"""
Reconcile - the infrastructure setup pipeline
"""

from containerflow.reconcile.engine import SetupEngine
from containerflow.reconcile.models import (
    STEP_IDS,
    GrafanaAuth,
    ProgressEvent,
    ProgressStatus,
    SetupOptions,
    SetupProgress,
    SetupStep,
    StepStatus,
)

__all__ = [
    "SetupEngine",
    "STEP_IDS",
    "GrafanaAuth",
    "ProgressEvent",
    "ProgressStatus",
    "SetupOptions",
    "SetupProgress",
    "SetupStep",
    "StepStatus",
]
