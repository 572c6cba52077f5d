"""Tests for the cluster teardown orchestrator."""
from collections import Counter

import pytest

from fakes import TOKEN, create_cluster
from kubeforge.exceptions import AuthorizationError, CollaboratorError, InvalidTransitionError
from kubeforge.orchestration.state import Status

DELETE_OPERATIONS = [
    "delete_pool",
    "delete_listener",
    "delete_load_balancer",
    "delete_dns_record",
    "delete_floating_ip",
    "delete_server",
    "delete_port",
    "delete_server_group",
    "delete_security_group",
    "delete_application_credential",
]


async def destroy(container, cluster_uuid):
    await container.teardown.prepare(TOKEN, cluster_uuid)
    await container.teardown.run(TOKEN, cluster_uuid)


async def test_destroy_deletes_each_resource_exactly_once(container, cloud):
    cluster_uuid = await create_cluster(container)
    created = {
        "delete_pool": set(cloud.pools),
        "delete_listener": set(cloud.listeners),
        "delete_load_balancer": set(cloud.load_balancers),
        "delete_dns_record": set(cloud.dns_records),
        "delete_floating_ip": set(),
        "delete_server": set(cloud.servers),
        "delete_port": set(cloud.ports),
        "delete_server_group": set(cloud.server_groups),
        "delete_security_group": set(cloud.security_groups),
        "delete_application_credential": set(cloud.credentials),
    }

    await destroy(container, cluster_uuid)

    for operation in DELETE_OPERATIONS:
        calls = cloud.called(operation)
        assert Counter(calls) == Counter(created[operation]), operation
    for store in (cloud.servers, cloud.ports, cloud.server_groups, cloud.security_groups,
                  cloud.load_balancers, cloud.listeners, cloud.pools, cloud.dns_records, cloud.credentials):
        assert store == {}

    cluster = await container.repository.get_cluster(cluster_uuid)
    assert cluster.status == "Deleted"
    assert cluster.delete_state == "COMPLETED"
    assert cluster.deleted_at is not None
    groups = await container.repository.list_node_groups(cluster_uuid, include_deleted=True)
    assert [g.status for g in groups] == ["Deleted", "Deleted"]
    assert await container.repository.list_resources(cluster_uuid) == []
    events = [a.event for a in await container.repository.list_audit_logs(cluster_uuid)]
    assert events[-1] == "Cluster destroy completed"


async def test_destroy_continues_after_a_failed_deletion(container, cloud):
    cluster_uuid = await create_cluster(container)
    cluster = await container.repository.get_cluster(cluster_uuid)
    cloud.failures["delete_load_balancer"] = CollaboratorError("loadbalancer", "DELETE lb", 409)

    await destroy(container, cluster_uuid)

    assert cloud.called("delete_load_balancer") == [cluster.load_balancer_uuid]
    assert cluster.load_balancer_uuid in cloud.load_balancers
    # Every later phase still ran
    assert cloud.servers == {}
    assert cloud.security_groups == {}
    assert cloud.credentials == {}
    assert cloud.dns_records == {}

    errors = [e.error_message for e in await container.repository.list_errors(cluster_uuid)]
    assert any(e.startswith("Failed to delete load balancer components during load balancer deletion") for e in errors)
    assert (await container.repository.get_cluster(cluster_uuid)).status == "Deleted"
    # The load balancer record stays for an operator to follow up
    remaining = await container.repository.list_resources(cluster_uuid)
    assert [r.resource_type for r in remaining] == ["LOADBALANCER"]


async def test_failed_instance_deletion_still_attempts_its_group(container, cloud):
    cluster_uuid = await create_cluster(container)
    cloud.failures["delete_server"] = CollaboratorError("compute", "DELETE server", 500)

    await destroy(container, cluster_uuid)

    assert len(cloud.called("delete_server")) == 5
    assert len(set(cloud.called("delete_server"))) == 5
    assert len(cloud.called("delete_server_group")) == 2
    assert cloud.ports == {}
    errors = await container.repository.list_errors(cluster_uuid)
    assert len([e for e in errors if "instance deletion" in e.error_message]) == 5


async def test_destroy_resumes_from_checkpoint(container, cloud):
    cluster_uuid = await create_cluster(container)
    await container.teardown.prepare(TOKEN, cluster_uuid)
    await container.repository.update_cluster(cluster_uuid, delete_state="NODES")

    # Re-issuing the destroy keeps the stored phase
    await container.teardown.prepare(TOKEN, cluster_uuid)
    assert (await container.repository.get_cluster(cluster_uuid)).delete_state == "NODES"

    await container.teardown.run(TOKEN, cluster_uuid)

    assert cloud.called("delete_pool") == []
    assert cloud.called("delete_load_balancer") == []
    assert cloud.called("delete_dns_record") == []
    assert cloud.servers == {}
    assert cloud.security_groups == {}
    assert cloud.credentials == {}
    assert (await container.repository.get_cluster(cluster_uuid)).status == "Deleted"


async def test_destroy_of_partially_created_cluster(container, cloud):
    cloud.failures["create_security_group"] = CollaboratorError("network", "POST security-groups", 500)
    cluster_uuid = await create_cluster(container)
    del cloud.failures["create_security_group"]

    await destroy(container, cluster_uuid)

    assert cloud.load_balancers == {}
    assert cloud.credentials == {}
    assert cloud.called("delete_security_group") == []
    assert cloud.called("delete_server_group") == []
    assert (await container.repository.get_cluster(cluster_uuid)).status == "Deleted"


async def test_destroy_with_error_node_groups(container, cloud):
    cloud.failures["create_server"] = CollaboratorError("compute", "POST servers", 500)
    cluster_uuid = await create_cluster(container)
    del cloud.failures["create_server"]

    await destroy(container, cluster_uuid)

    groups = await container.repository.list_node_groups(cluster_uuid, include_deleted=True)
    assert {g.status for g in groups} == {"Deleted"}
    assert cloud.server_groups == {}
    assert cloud.ports == {}


async def test_already_deleted_resources_count_as_deleted(container, cloud):
    cluster_uuid = await create_cluster(container)
    cluster = await container.repository.get_cluster(cluster_uuid)
    cloud.dns_records.clear()

    await destroy(container, cluster_uuid)

    errors = await container.repository.list_errors(cluster_uuid)
    assert not [e for e in errors if "DNS" in e.error_message]
    assert cloud.called("delete_dns_record") == [cluster.dns_record_id]


async def test_destroy_of_creating_cluster_is_rejected(container, cloud):
    from fakes import cluster_request

    cluster_uuid = await container.creator.prepare(TOKEN, cluster_request())

    with pytest.raises(InvalidTransitionError):
        await container.teardown.prepare(TOKEN, cluster_uuid)


async def test_destroy_requires_project_token(container, cloud):
    cluster_uuid = await create_cluster(container)

    with pytest.raises(AuthorizationError):
        await container.teardown.prepare("someone-else", cluster_uuid)

    assert (await container.repository.get_cluster(cluster_uuid)).status == Status.ACTIVE.value
