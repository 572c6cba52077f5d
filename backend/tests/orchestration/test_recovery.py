"""Tests for settling orchestrations interrupted by a restart."""
from fakes import TOKEN, cluster_request, create_cluster
from kubeforge.orchestration.jobs import recover_interrupted
from kubeforge.orchestration.node_groups import NodeGroupSpec
from kubeforge.orchestration.state import NodeGroupType, Status


async def test_creating_cluster_moves_to_error(container, cloud):
    cluster_uuid = await container.creator.prepare(TOKEN, cluster_request())

    recovered = await recover_interrupted(container.repository, container.recorder)

    assert recovered == 1
    cluster = await container.repository.get_cluster(cluster_uuid)
    assert cluster.status == "Error"
    errors = [e.error_message for e in await container.repository.list_errors(cluster_uuid)]
    assert errors[0].startswith("Cluster creation was interrupted during creation step INITIAL")


async def test_deleting_cluster_keeps_its_checkpoint(container, cloud):
    cluster_uuid = await create_cluster(container)
    await container.teardown.prepare(TOKEN, cluster_uuid)
    await container.repository.update_cluster(cluster_uuid, delete_state="DNS")

    await recover_interrupted(container.repository, container.recorder)

    cluster = await container.repository.get_cluster(cluster_uuid)
    assert (cluster.status, cluster.delete_state) == ("Deleting", "DNS")

    # A repeated destroy picks up from the checkpoint
    await container.teardown.prepare(TOKEN, cluster_uuid)
    await container.teardown.run(TOKEN, cluster_uuid)
    assert cloud.called("delete_load_balancer") == []
    assert (await container.repository.get_cluster(cluster_uuid)).status == "Deleted"


async def test_interrupted_worker_pool_moves_to_error(container, cloud):
    cluster_uuid = await create_cluster(container)
    spec = NodeGroupSpec(
        name="batch", type=NodeGroupType.WORKER, flavor_uuid="flavor-worker", disk_size_gb=40, min_size=1, max_size=2,
    )
    node_group_uuid = await container.pools.add_pool(TOKEN, cluster_uuid, spec)

    recovered = await recover_interrupted(container.repository, container.recorder)

    assert recovered == 1
    assert (await container.repository.get_node_group(node_group_uuid)).status == "Error"
    assert (await container.repository.get_cluster(cluster_uuid)).status == "Active"


async def test_nothing_to_recover(container, cloud):
    await create_cluster(container)

    assert await recover_interrupted(container.repository, container.recorder) == 0


async def test_updating_node_group_returns_to_active(container, cloud):
    cluster_uuid = await create_cluster(container)
    [worker] = await container.node_groups.get_node_groups(TOKEN, cluster_uuid)
    await container.repository.set_node_group_status(worker.uuid, Status.UPDATING, max_size=6)

    recovered = await recover_interrupted(container.repository, container.recorder)

    assert recovered == 1
    row = await container.repository.get_node_group(worker.uuid)
    assert (row.status, row.max_size) == ("Active", 6)
    events = [a.event for a in await container.repository.list_audit_logs(cluster_uuid)]
    assert "Node group demo-worker returned to Active after a restart" in events
