"""
Base exception hierarchy

Provides a consistent exception structure across ContainerFlow
with clear error messages and recovery hints.
"""


class ContainerFlowError(Exception):
    """
    Base exception for all ContainerFlow errors

    Attributes:
        message: Error message
        component: Component that raised the error
        recovery_hint: Optional hint for recovery
    """

    def __init__(self, message: str, component: str = "", recovery_hint: str = ""):
        self.message = message
        self.component = component
        self.recovery_hint = recovery_hint
        super().__init__(message)

    def __str__(self) -> str:
        msg = super().__str__()
        if self.component:
            msg = f"[{self.component}] {msg}"
        if self.recovery_hint:
            msg += f"\nRecovery: {self.recovery_hint}"
        return msg


class ValidationError(ContainerFlowError):
    """Invalid caller input"""

    def __init__(self, message: str, recovery_hint: str = ""):
        super().__init__(message, component="Validation", recovery_hint=recovery_hint)


class NotConnectedError(ContainerFlowError):
    """A required tunnel or client is not available"""

    def __init__(self, message: str = "Docker client not connected", recovery_hint: str = ""):
        super().__init__(
            message,
            component="Connection",
            recovery_hint=recovery_hint or "Connect to the remote host first",
        )


class PreconditionError(ContainerFlowError):
    """An operation was attempted before its inputs were available"""

    def __init__(self, message: str, recovery_hint: str = ""):
        super().__init__(message, component="Precondition", recovery_hint=recovery_hint)


class TunnelError(ContainerFlowError):
    """SSH session or local listener failure"""

    def __init__(self, message: str, recovery_hint: str = ""):
        super().__init__(
            message,
            component="Tunnel",
            recovery_hint=recovery_hint or "Check the SSH host, port and credentials",
        )


class ImagePullError(ContainerFlowError):
    """Image pull reported an error"""

    def __init__(self, image: str, detail: str):
        self.image = image
        super().__init__(f"Failed to pull image {image}: {detail}", component="Docker")


class InvalidConfigurationError(ContainerFlowError):
    """A live resource does not match its expected configuration"""

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(
            f"{resource} exists but has invalid configuration. Use force=true to recreate.",
            component="Setup",
        )


class MySQLNotReadyError(ContainerFlowError):
    """MySQL did not accept connections within the retry budget"""

    def __init__(self, attempts: int, last_error: str = ""):
        self.attempts = attempts
        message = f"MySQL not ready after {attempts} attempts"
        if last_error:
            message += f": {last_error}"
        super().__init__(message, component="MySQL")


class GrafanaError(ContainerFlowError):
    """Grafana HTTP API failure"""

    def __init__(self, message: str, status_code: int | None = None, recovery_hint: str = ""):
        self.status_code = status_code
        super().__init__(message, component="Grafana", recovery_hint=recovery_hint)


class CloneError(ContainerFlowError):
    """A WordPress container cannot be cloned"""

    def __init__(self, message: str):
        super().__init__(message, component="WordPress")
