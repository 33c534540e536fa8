"""
Setup pipeline data models.

Contains progress events, step tracking and the per-run context.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum


class ProgressStatus(str, Enum):
    """Status carried by a progress event"""

    STARTING = "starting"
    SUCCESS = "success"
    ERROR = "error"


class StepStatus(str, Enum):
    """Rendered state of a setup step"""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


STEP_IDS = (
    "network",
    "traefik",
    "mysql",
    "mysql-ready",
    "mysql-metrics-user",
    "cadvisor",
    "mysqld-exporter",
    "node-exporter",
    "prometheus",
    "grafana",
    "grafana-provision",
)

# Step id of the final event summarising the whole run
SETUP_STEP = "setup"

ProgressCallback = Callable[[str, ProgressStatus, str | None], None]


@dataclass
class ProgressEvent:
    step: str
    status: ProgressStatus
    message: str | None = None

    def to_dict(self) -> dict:
        return {"step": self.step, "status": self.status.value, "message": self.message}


@dataclass
class GrafanaAuth:
    """Grafana admin credentials, when they differ from the configured defaults"""

    username: str
    password: str


@dataclass
class SetupOptions:
    force: bool = False
    grafana_auth: GrafanaAuth | None = None


@dataclass
class SetupStep:
    id: str
    status: StepStatus = StepStatus.PENDING
    message: str | None = None


_STATUS_MAP = {
    ProgressStatus.STARTING: StepStatus.RUNNING,
    ProgressStatus.SUCCESS: StepStatus.SUCCESS,
    ProgressStatus.ERROR: StepStatus.ERROR,
}


@dataclass
class SetupProgress:
    """
    Step list rebuilt from progress events.

    Starts with every known step pending. The final "setup" summary event
    goes to `overall` rather than the step list; any other unknown step id
    appends that step at the end.
    """

    steps: list[SetupStep] = field(default_factory=lambda: [SetupStep(step_id) for step_id in STEP_IDS])
    overall: SetupStep = field(default_factory=lambda: SetupStep(SETUP_STEP))

    def apply(self, event: ProgressEvent) -> SetupStep:
        step = self.overall if event.step == SETUP_STEP else self.get(event.step)
        if step is None:
            step = SetupStep(event.step)
            self.steps.append(step)
        step.status = _STATUS_MAP[ProgressStatus(event.status)]
        step.message = event.message
        return step

    def get(self, step_id: str) -> SetupStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def as_dicts(self) -> list[dict]:
        return [
            {"id": step.id, "status": step.status.value, "message": step.message}
            for step in self.steps
        ]
