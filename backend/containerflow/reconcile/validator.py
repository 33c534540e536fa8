"""
Configuration validator

Decides whether a live container or network is close enough to its
desired spec to be reused. It is the only gate between the reuse and
recreate branches of every ensure-step, so any field it does not check
is a field recreation will never correct.

Lists and maps are checked as subsets: the daemon adds image defaults
(PATH in Env, image labels) that a spec never mentions.
"""

import logging

from containerflow.containers.specs import ContainerSpec

logger = logging.getLogger(__name__)


def _mismatch(name: str, field_name: str, expected, actual) -> bool:
    logger.warning(f"[Validator] {name}: {field_name} mismatch, expected {expected!r}, got {actual!r}")
    return False


def container_config(info: dict, spec: ContainerSpec) -> bool:
    """True if the inspected container satisfies spec"""
    config = info.get("Config") or {}
    host_config = info.get("HostConfig") or {}
    name = spec.name

    # After a pull the daemon may report the image as a sha256 id; Config.Image keeps the reference
    if spec.image not in (config.get("Image"), info.get("Image")):
        return _mismatch(name, "image", spec.image, config.get("Image") or info.get("Image"))

    actual_env = set(config.get("Env") or [])
    missing_env = [entry for entry in spec.env if entry not in actual_env]
    if missing_env:
        keys = [entry.split("=", 1)[0] for entry in missing_env]
        return _mismatch(name, "env", keys, "absent or different")

    actual_labels = config.get("Labels") or {}
    for key, value in spec.labels.items():
        if actual_labels.get(key) != value:
            return _mismatch(name, f"label {key}", value, actual_labels.get(key))

    if spec.command is not None and list(config.get("Cmd") or []) != spec.command:
        return _mismatch(name, "command", spec.command, config.get("Cmd"))

    if spec.entrypoint is not None and list(config.get("Entrypoint") or []) != spec.entrypoint:
        return _mismatch(name, "entrypoint", spec.entrypoint, config.get("Entrypoint"))

    actual_binds = set(host_config.get("Binds") or [])
    for bind in spec.binds:
        if bind not in actual_binds:
            return _mismatch(name, "bind", bind, sorted(actual_binds))

    if spec.restart_policy:
        actual_policy = (host_config.get("RestartPolicy") or {}).get("Name")
        if actual_policy != spec.restart_policy:
            return _mismatch(name, "restart policy", spec.restart_policy, actual_policy)

    actual_ports = host_config.get("PortBindings") or {}
    for port, host_port in spec.port_bindings.items():
        bound = [b.get("HostPort") for b in actual_ports.get(port) or []]
        if host_port not in bound:
            return _mismatch(name, f"port {port}", host_port, bound)

    if spec.privileged and not host_config.get("Privileged"):
        return _mismatch(name, "privileged", True, host_config.get("Privileged"))

    if spec.network_mode and host_config.get("NetworkMode") != spec.network_mode:
        return _mismatch(name, "network mode", spec.network_mode, host_config.get("NetworkMode"))

    return True


def network_config(info: dict, name: str) -> bool:
    """True if the inspected network is a bridge network called name"""
    if info.get("Driver") != "bridge":
        return _mismatch(name, "driver", "bridge", info.get("Driver"))
    if info.get("Name") != name:
        return _mismatch(name, "name", name, info.get("Name"))
    return True
