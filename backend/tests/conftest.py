"""
Shared fixtures

FakeDockerAPI models the subset of docker.APIClient used by ContainerFlow
(containers, networks, volumes, images) in memory, so reconciliation can be
exercised without a daemon.
"""

import copy
import itertools

import pytest
from docker.errors import APIError, ImageNotFound, NotFound
from docker.utils import parse_repository_tag

from containerflow.core.config import Settings


class FakeDockerAPI:
    """In-memory stand-in for docker.APIClient"""

    def __init__(self, images: set[str] | None = None):
        self.images: set[str] = set(images or ())
        self.volumes: set[str] = set()
        self.containers_by_id: dict[str, dict] = {}
        self.network_store: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.pull_adds_image = True
        self.pull_error: str | None = None
        self.fail_disconnect: set[str] = set()
        self.fail_remove: set[str] = set()
        self._ids = itertools.count(1)

    def calls_to(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids):04d}".ljust(64, "0")

    def _resolve(self, ref: str) -> dict:
        if ref in self.containers_by_id:
            return self.containers_by_id[ref]
        for info in self.containers_by_id.values():
            if info["Name"] == f"/{ref.lstrip('/')}" or info["Id"].startswith(ref):
                return info
        raise NotFound(f"No such container: {ref}")

    def _network(self, ref: str) -> dict:
        for net in self.network_store.values():
            if ref in (net["Name"], net["Id"]):
                return net
        raise NotFound(f"network {ref} not found")

    # Containers

    def create_host_config(self, **kwargs):
        return kwargs

    def create_container(
        self,
        image,
        name=None,
        command=None,
        entrypoint=None,
        environment=None,
        labels=None,
        ports=None,
        host_config=None,
    ):
        self.calls.append(("create_container", name, image))
        if image not in self.images:
            raise ImageNotFound(f"No such image: {image}")
        if any(info["Name"] == f"/{name}" for info in self.containers_by_id.values()):
            raise APIError(f"Conflict. The container name \"/{name}\" is already in use")

        host_config = host_config or {}
        binds = list(host_config.get("binds") or [])
        port_bindings = {
            port: [{"HostIp": "", "HostPort": str(host_port)}]
            for port, host_port in (host_config.get("port_bindings") or {}).items()
        }
        mounts = []
        for bind in binds:
            source, destination, *mode = bind.split(":")
            entry = {"Destination": destination, "Mode": mode[0] if mode else "", "RW": mode[:1] != ["ro"]}
            if source.startswith("/"):
                entry.update({"Type": "bind", "Source": source})
            else:
                entry.update({"Type": "volume", "Name": source, "Source": f"/var/lib/docker/volumes/{source}/_data"})
                self.volumes.add(source)
            mounts.append(entry)

        env = list(environment or [])
        if not any(entry.startswith("PATH=") for entry in env):
            env.insert(0, "PATH=/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin")

        cid = self._new_id("c")
        self.containers_by_id[cid] = {
            "Id": cid,
            "Name": f"/{name}",
            "Image": f"sha256:{image}",
            "Config": {
                "Image": image,
                "Env": env,
                "Cmd": list(command) if command else None,
                "Entrypoint": list(entrypoint) if entrypoint else None,
                "Labels": dict(labels or {}),
                "ExposedPorts": {f"{port}/{proto}": {} for port, proto in ports or []},
            },
            "HostConfig": {
                "Binds": binds or None,
                "PortBindings": port_bindings,
                "RestartPolicy": host_config.get("restart_policy") or {"Name": "no", "MaximumRetryCount": 0},
                "Privileged": bool(host_config.get("privileged")),
                "NetworkMode": host_config.get("network_mode") or "default",
            },
            "State": {"Status": "created", "Running": False},
            "Mounts": mounts,
            "NetworkSettings": {"Networks": {}},
        }
        return {"Id": cid, "Warnings": []}

    def start(self, container):
        self.calls.append(("start", container))
        info = self._resolve(container)
        info["State"] = {"Status": "running", "Running": True}

    def stop(self, container, timeout=None):
        self.calls.append(("stop", container, timeout))
        info = self._resolve(container)
        info["State"] = {"Status": "exited", "Running": False}

    def remove_container(self, container, v=False, link=False, force=False):
        self.calls.append(("remove_container", container, v, force))
        if container in self.fail_remove:
            raise APIError(f"removal of container {container} is already in progress")
        info = self._resolve(container)
        if info["State"]["Running"] and not force:
            raise APIError("You cannot remove a running container. Stop the container before attempting removal or force remove")
        for net in self.network_store.values():
            net["Containers"].pop(info["Id"], None)
        del self.containers_by_id[info["Id"]]

    def inspect_container(self, container):
        return copy.deepcopy(self._resolve(container))

    def containers(self, all=False):
        result = []
        for info in self.containers_by_id.values():
            if not all and not info["State"]["Running"]:
                continue
            result.append(
                {
                    "Id": info["Id"],
                    "Names": [info["Name"]],
                    "Image": info["Config"]["Image"],
                    "State": info["State"]["Status"],
                    "Labels": dict(info["Config"]["Labels"]),
                }
            )
        return result

    def logs(self, container, **kwargs):
        self.calls.append(("logs", container, kwargs))
        self._resolve(container)
        return b"line one\nline two\n"

    # Images and volumes

    def pull(self, repository, tag=None, stream=False, decode=False):
        self.calls.append(("pull", repository, tag))
        image = f"{repository}:{tag}" if tag else repository
        yield {"status": f"Pulling from {repository}", "id": tag}
        if self.pull_error:
            yield {"error": self.pull_error}
            return
        if self.pull_adds_image:
            self.images.add(image)
        yield {"status": f"Status: Downloaded newer image for {image}"}

    def add_image(self, image: str) -> None:
        repository, tag = parse_repository_tag(image)
        self.images.add(f"{repository}:{tag or 'latest'}")

    def remove_volume(self, name, force=False):
        self.calls.append(("remove_volume", name, force))
        if name not in self.volumes:
            raise NotFound(f"get {name}: no such volume")
        self.volumes.discard(name)

    # Networks

    def create_network(self, name, driver=None, **kwargs):
        self.calls.append(("create_network", name, driver))
        nid = self._new_id("n")
        self.network_store[nid] = {"Id": nid, "Name": name, "Driver": driver or "bridge", "Containers": {}}
        return {"Id": nid, "Warning": ""}

    def networks(self, names=None, ids=None, filters=None):
        nets = list(self.network_store.values())
        if names:
            nets = [n for n in nets if any(wanted in n["Name"] for wanted in names)]
        return [{"Id": n["Id"], "Name": n["Name"], "Driver": n["Driver"]} for n in nets]

    def inspect_network(self, net_id, **kwargs):
        return copy.deepcopy(self._network(net_id))

    def connect_container_to_network(self, container, net_id, **kwargs):
        self.calls.append(("connect_container_to_network", container, net_id))
        net = self._network(net_id)
        info = self._resolve(container)
        if info["Id"] in net["Containers"]:
            raise APIError(f"endpoint with name {info['Name'].lstrip('/')} already exists in network {net['Name']}")
        net["Containers"][info["Id"]] = {"Name": info["Name"].lstrip("/"), "IPv4Address": "172.20.0.2/16"}
        info["NetworkSettings"]["Networks"][net["Name"]] = {"NetworkID": net["Id"]}

    def disconnect_container_from_network(self, container, net_id, force=False):
        self.calls.append(("disconnect_container_from_network", container, net_id, force))
        if container in self.fail_disconnect:
            raise APIError(f"container {container} is not connected to network {net_id}")
        net = self._network(net_id)
        net["Containers"].pop(container, None)

    def remove_network(self, net_id):
        self.calls.append(("remove_network", net_id))
        net = self._network(net_id)
        if net["Containers"]:
            raise APIError(f"error while removing network: network {net['Name']} has active endpoints")
        del self.network_store[net["Id"]]

    def prune_networks(self, filters=None):
        self.calls.append(("prune_networks",))
        unused = [n for n in self.network_store.values() if not n["Containers"]]
        for net in unused:
            del self.network_store[net["Id"]]
        return {"NetworksDeleted": [n["Name"] for n in unused]}


@pytest.fixture
def fake_docker():
    return FakeDockerAPI()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path,
        mysql_ready_retries=3,
        mysql_ready_delay=0,
        wordpress_settle_delay=0,
        grafana_ready_attempts=1,
        grafana_ready_interval=0,
    )
