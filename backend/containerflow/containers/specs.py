"""
Declarative container specification.

One ContainerSpec describes the desired state of one container. It is built
by the role catalog, by WordPress lifecycle operations, or rebuilt from a
live inspect result when a container has to be recreated.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any

LABEL_PROJECT = "container-flow.name"
LABEL_TYPE = "container-flow.type"
LABEL_MONITORING = "com.containerflow.monitoring"


@dataclass
class ContainerSpec:
    """Desired configuration for a single container."""

    name: str
    image: str
    env: list[str] = field(default_factory=list)
    command: list[str] | None = None
    entrypoint: list[str] | None = None
    exposed_ports: list[str] = field(default_factory=list)
    port_bindings: dict[str, str] = field(default_factory=dict)
    binds: list[str] = field(default_factory=list)
    restart_policy: str | None = "always"
    labels: dict[str, str] = field(default_factory=dict)
    network_mode: str | None = None
    privileged: bool = False

    def replace(self, **changes: Any) -> "ContainerSpec":
        """Copy with some fields replaced. Collections are never shared with the original."""
        copied = dataclasses.replace(
            self,
            env=list(self.env),
            command=list(self.command) if self.command is not None else None,
            entrypoint=list(self.entrypoint) if self.entrypoint is not None else None,
            exposed_ports=list(self.exposed_ports),
            port_bindings=dict(self.port_bindings),
            binds=list(self.binds),
            labels=dict(self.labels),
        )
        return dataclasses.replace(copied, **changes) if changes else copied

    def with_env(self, *entries: str) -> "ContainerSpec":
        return self.replace(env=[*self.env, *entries])

    def with_command(self, *args: str) -> "ContainerSpec":
        return self.replace(command=[*(self.command or []), *args])

    def env_value(self, key: str) -> str | None:
        """Value of the first KEY=VALUE entry for key, or None."""
        return env_value(self.env, key)

    @classmethod
    def from_inspect(cls, info: dict) -> "ContainerSpec":
        """Rebuild a spec from a container inspect result."""
        config = info.get("Config") or {}
        host_config = info.get("HostConfig") or {}

        port_bindings = {}
        for port, bindings in (host_config.get("PortBindings") or {}).items():
            if bindings:
                port_bindings[port] = bindings[0].get("HostPort", "")

        restart = (host_config.get("RestartPolicy") or {}).get("Name") or None
        network_mode = host_config.get("NetworkMode")
        if network_mode in ("default", ""):
            network_mode = None

        return cls(
            name=(info.get("Name") or "").lstrip("/"),
            image=config.get("Image") or info.get("Image", ""),
            env=list(config.get("Env") or []),
            command=list(config["Cmd"]) if config.get("Cmd") else None,
            entrypoint=list(config["Entrypoint"]) if config.get("Entrypoint") else None,
            exposed_ports=list((config.get("ExposedPorts") or {}).keys()),
            port_bindings=port_bindings,
            binds=list(host_config.get("Binds") or []),
            restart_policy=restart,
            labels=dict(config.get("Labels") or {}),
            network_mode=network_mode,
            privileged=bool(host_config.get("Privileged", False)),
        )


def env_value(env: list[str] | None, key: str) -> str | None:
    """Value of KEY in a raw Config.Env list, or None."""
    prefix = f"{key}="
    for entry in env or []:
        if entry.startswith(prefix):
            return entry[len(prefix):]
    return None


def mount_to_bind(mount: dict) -> str | None:
    """
    Convert an inspect Mounts entry into a bind string.

    Binds become source:dest:mode, named volumes volumeName:dest:mode.
    Other mount types (tmpfs, npipe) return None.
    """
    mode = mount.get("Mode") or ("rw" if mount.get("RW", True) else "ro")
    if mount.get("Type") == "bind":
        return f"{mount['Source']}:{mount['Destination']}:{mode}"
    if mount.get("Type") == "volume":
        return f"{mount['Name']}:{mount['Destination']}:{mode}"
    return None
