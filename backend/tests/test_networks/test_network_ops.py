"""
Tests for network operations
"""

import pytest
from docker.errors import APIError

from containerflow.networks.operations import NetworkOperations


@pytest.fixture
def network_with_members(fake_docker):
    """CF-WP with two attached containers"""
    fake_docker.add_image("alpine:3.20")
    fake_docker.create_network("CF-WP", driver="bridge")
    ids = []
    for name in ("one", "two"):
        cid = fake_docker.create_container("alpine:3.20", name=name)["Id"]
        fake_docker.connect_container_to_network(cid, "CF-WP")
        ids.append(cid)
    fake_docker.calls.clear()
    return ids


class TestNetworkRemove:
    """Tests for NetworkOperations.remove"""

    async def test_force_remove_disconnects_every_container_first(self, fake_docker, network_with_members):
        """Test that force issues one disconnect per container before removing"""
        ops = NetworkOperations(lambda: fake_docker)

        await ops.remove("CF-WP", force=True)

        methods = [c[0] for c in fake_docker.calls]
        assert methods == [
            "disconnect_container_from_network",
            "disconnect_container_from_network",
            "remove_network",
        ]
        assert await ops.find_by_name("CF-WP") == []

    async def test_force_remove_continues_past_failed_disconnect(self, fake_docker, network_with_members):
        """Test that a failed disconnect is logged and the next one still runs"""
        fake_docker.fail_disconnect.add(network_with_members[0])
        ops = NetworkOperations(lambda: fake_docker)

        with pytest.raises(APIError):
            await ops.remove("CF-WP", force=True)

        disconnects = fake_docker.calls_to("disconnect_container_from_network")
        assert [c[1] for c in disconnects] == network_with_members
        assert len(fake_docker.calls_to("remove_network")) == 1

    async def test_remove_without_force_skips_disconnects(self, fake_docker, network_with_members):
        """Test that without force no disconnects are issued"""
        ops = NetworkOperations(lambda: fake_docker)

        with pytest.raises(APIError):
            await ops.remove("CF-WP")

        assert fake_docker.calls_to("disconnect_container_from_network") == []


class TestNetworkQueries:
    """Tests for create/list/find/prune"""

    async def test_create_and_inspect(self, fake_docker):
        ops = NetworkOperations(lambda: fake_docker)

        created = await ops.create("CF-WP")
        info = await ops.inspect("CF-WP")

        assert created["name"] == "CF-WP"
        assert info["Id"] == created["id"]
        assert info["Driver"] == "bridge"

    async def test_find_by_name_exact_and_partial(self, fake_docker):
        """Test that the daemon's substring filter is narrowed for exact lookups"""
        ops = NetworkOperations(lambda: fake_docker)
        await ops.create("CF-WP")
        await ops.create("CF-WP-old")

        exact = await ops.find_by_name("CF-WP")
        partial = await ops.find_by_name("CF-WP", exact=False)

        assert [n["Name"] for n in exact] == ["CF-WP"]
        assert sorted(n["Name"] for n in partial) == ["CF-WP", "CF-WP-old"]

    async def test_get_network_containers(self, fake_docker, network_with_members):
        ops = NetworkOperations(lambda: fake_docker)

        members = await ops.get_network_containers("CF-WP")

        assert [m["name"] for m in members] == ["one", "two"]
        assert [m["id"] for m in members] == network_with_members
        assert all(m["ipv4"] for m in members)

    async def test_prune_removes_unused_networks(self, fake_docker, network_with_members):
        """Test that prune deletes only networks without endpoints"""
        ops = NetworkOperations(lambda: fake_docker)
        await ops.create("scratch")

        result = await ops.prune()

        assert result == {"deleted": ["scratch"]}
        assert len(await ops.find_by_name("CF-WP")) == 1
