"""Tests for the node group endpoints."""
import pytest

from fakes import TOKEN, create_cluster

HEADERS = {"X-Auth-Token": TOKEN}


async def worker_group_id(client, cluster_uuid):
    response = await client.get(f"/v1/clusters/{cluster_uuid}/node-groups", headers=HEADERS)
    return response.json()[0]["id"]


@pytest.mark.asyncio
async def test_list_shows_only_tenant_groups(client, container, cloud):
    cluster_uuid = await create_cluster(container)

    response = await client.get(f"/v1/clusters/{cluster_uuid}/node-groups", headers=HEADERS)

    assert response.status_code == 200
    groups = response.json()
    assert [(g["name"], g["type"], g["current_nodes"]) for g in groups] == [("demo-worker", "worker", 2)]


@pytest.mark.asyncio
async def test_create_node_group_provisions_in_background(client, container, cloud):
    cluster_uuid = await create_cluster(container)
    body = {"name": "batch", "flavor_id": "flavor-batch", "disk_size_gb": 60, "min_size": 2, "max_size": 5}

    response = await client.post(f"/v1/clusters/{cluster_uuid}/node-groups", json=body, headers=HEADERS)

    assert response.status_code == 202
    node_group_id = response.json()["id"]
    assert await container.runner.join(timeout=5)

    response = await client.get(f"/v1/clusters/{cluster_uuid}/node-groups/{node_group_id}", headers=HEADERS)
    group = response.json()
    assert group["status"] == "Active"
    assert group["current_nodes"] == 2
    assert group["labels"] == ["nodegroup-name=batch"]


@pytest.mark.asyncio
async def test_create_node_group_validation(client, container, cloud):
    cluster_uuid = await create_cluster(container)
    url = f"/v1/clusters/{cluster_uuid}/node-groups"
    base = {"name": "batch", "flavor_id": "f", "disk_size_gb": 60, "min_size": 1, "max_size": 2}

    response = await client.post(url, json={**base, "name": "x" * 21}, headers=HEADERS)
    assert response.status_code == 422
    response = await client.post(url, json={**base, "min_size": 3}, headers=HEADERS)
    assert response.status_code == 422
    response = await client.post(url, json={**base, "taints": ["bad-taint"]}, headers=HEADERS)
    assert response.status_code == 422
    assert not container.locks.is_held(cluster_uuid)


@pytest.mark.asyncio
async def test_patch_records_scale_intent(client, container, cloud):
    cluster_uuid = await create_cluster(container)
    node_group_id = await worker_group_id(client, cluster_uuid)

    response = await client.patch(
        f"/v1/clusters/{cluster_uuid}/node-groups/{node_group_id}",
        json={"max_nodes": 6, "desired_nodes": 4},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert (response.json()["max_size"], response.json()["desired_nodes"]) == (6, 4)


@pytest.mark.asyncio
async def test_patch_while_busy_is_rejected(client, container, cloud):
    cluster_uuid = await create_cluster(container)
    node_group_id = await worker_group_id(client, cluster_uuid)
    await container.locks.try_acquire(cluster_uuid)

    response = await client.patch(
        f"/v1/clusters/{cluster_uuid}/node-groups/{node_group_id}", json={"desired_nodes": 3}, headers=HEADERS
    )

    container.locks.release(cluster_uuid)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_add_and_remove_single_node(client, container, cloud):
    cluster_uuid = await create_cluster(container)
    node_group_id = await worker_group_id(client, cluster_uuid)
    url = f"/v1/clusters/{cluster_uuid}/node-groups/{node_group_id}/nodes"

    response = await client.post(url, headers=HEADERS)
    assert response.status_code == 201
    server_id = response.json()["id"]
    assert server_id in cloud.servers

    response = await client.delete(f"{url}/{server_id}", headers=HEADERS)
    assert response.status_code == 204
    assert server_id not in cloud.servers

    # Back at the minimum of 2
    row = await container.repository.get_node_group(node_group_id)
    member = cloud.server_groups[row.server_group_uuid]["members"][0]
    response = await client.delete(f"{url}/{member}", headers=HEADERS)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_node_group(client, container, cloud):
    cluster_uuid = await create_cluster(container)
    node_group_id = await worker_group_id(client, cluster_uuid)

    response = await client.delete(f"/v1/clusters/{cluster_uuid}/node-groups/{node_group_id}", headers=HEADERS)

    assert response.status_code == 202
    assert await container.runner.join(timeout=5)
    response = await client.get(f"/v1/clusters/{cluster_uuid}/node-groups", headers=HEADERS)
    assert response.json() == []


@pytest.mark.asyncio
async def test_unknown_node_group(client, container, cloud):
    cluster_uuid = await create_cluster(container)

    response = await client.get(f"/v1/clusters/{cluster_uuid}/node-groups/missing", headers=HEADERS)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_nodes_of_a_group(client, container, cloud):
    cluster_uuid = await create_cluster(container)
    node_group_id = await worker_group_id(client, cluster_uuid)
    row = await container.repository.get_node_group(node_group_id)
    members = cloud.server_groups[row.server_group_uuid]["members"]

    response = await client.get(f"/v1/clusters/{cluster_uuid}/node-groups/{node_group_id}/nodes", headers=HEADERS)

    assert response.status_code == 200
    nodes = response.json()
    assert [n["id"] for n in nodes] == members
    assert set(nodes[0]) == {"id", "name", "status"}

    response = await client.get(f"/v1/clusters/{cluster_uuid}/node-groups/missing/nodes", headers=HEADERS)
    assert response.status_code == 404
