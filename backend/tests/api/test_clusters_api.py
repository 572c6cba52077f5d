"""Tests for the cluster endpoints."""
import base64

import pytest

from fakes import PROJECT, TOKEN, create_cluster

HEADERS = {"X-Auth-Token": TOKEN}


def cluster_body(**overrides):
    body = {
        "project_id": PROJECT,
        "name": "demo",
        "kubernetes_version": "v1.29.4+rke2r1",
        "subnet_ids": ["subnet-1"],
        "master_flavor_id": "flavor-master",
        "worker_flavor_id": "flavor-worker",
        "worker_min_size": 1,
        "worker_max_size": 3,
        "worker_disk_size_gb": 40,
        "node_keypair_name": "ops-key",
        "api_access": "private",
        "allowed_cidrs": ["198.51.100.0/24"],
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_create_cluster_runs_in_background(client, container, cloud):
    response = await client.post("/v1/clusters", json=cluster_body(), headers=HEADERS)

    assert response.status_code == 202
    data = response.json()
    assert data["status"] == "Creating"
    assert await container.runner.join(timeout=5)

    response = await client.get(f"/v1/clusters/{data['cluster_id']}", headers=HEADERS)
    assert response.status_code == 200
    cluster = response.json()
    assert cluster["status"] == "Active"
    assert cluster["creation_step"] == "COMPLETED"
    assert cluster["api_access"] == "private"
    assert cluster["endpoint"].endswith(".k8s.test")


@pytest.mark.asyncio
async def test_bearer_token_is_accepted(client, container, cloud):
    cluster_uuid = await create_cluster(container)

    response = await client.get(f"/v1/clusters/{cluster_uuid}", headers={"Authorization": f"Bearer {TOKEN}"})

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_missing_token_is_rejected(client):
    response = await client.post("/v1/clusters", json=cluster_body())

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_from_another_project_is_rejected(client, container, cloud):
    cluster_uuid = await create_cluster(container)

    response = await client.get(f"/v1/clusters/{cluster_uuid}", headers={"X-Auth-Token": "other"})

    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"subnet_ids": []},
        {"worker_min_size": 4, "worker_max_size": 2},
        {"worker_disk_size_gb": 10},
        {"allowed_cidrs": ["not-a-cidr"]},
        {"api_access": "internal"},
        {"name": ""},
    ],
)
async def test_invalid_create_requests(client, overrides):
    response = await client.post("/v1/clusters", json=cluster_body(**overrides), headers=HEADERS)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_cluster(client):
    response = await client.get("/v1/clusters/missing", headers=HEADERS)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_clusters_for_project(client, container, cloud):
    cluster_uuid = await create_cluster(container)

    response = await client.get("/v1/clusters", params={"project_id": PROJECT}, headers=HEADERS)

    assert response.status_code == 200
    assert [c["id"] for c in response.json()] == [cluster_uuid]


@pytest.mark.asyncio
async def test_destroy_cluster(client, container, cloud):
    cluster_uuid = await create_cluster(container)

    response = await client.delete(f"/v1/clusters/{cluster_uuid}", headers=HEADERS)

    assert response.status_code == 202
    assert response.json() == {"cluster_id": cluster_uuid, "status": "Deleting"}
    assert await container.runner.join(timeout=5)
    assert (await container.repository.get_cluster(cluster_uuid)).status == "Deleted"
    assert cloud.servers == {}

    response = await client.get("/v1/clusters", params={"project_id": PROJECT}, headers=HEADERS)
    assert response.json() == []


@pytest.mark.asyncio
async def test_destroy_while_busy_is_rejected(client, container, cloud):
    cluster_uuid = await create_cluster(container)
    await container.locks.try_acquire(cluster_uuid)

    response = await client.delete(f"/v1/clusters/{cluster_uuid}", headers=HEADERS)

    container.locks.release(cluster_uuid)
    assert response.status_code == 409
    assert (await container.repository.get_cluster(cluster_uuid)).status == "Active"


@pytest.mark.asyncio
async def test_destroy_of_creating_cluster_is_a_conflict(client, container, cloud):
    response = await client.post("/v1/clusters", json=cluster_body(), headers=HEADERS)
    cluster_uuid = response.json()["cluster_id"]
    await container.runner.join(timeout=5)
    await container.repository.update_cluster(cluster_uuid, status="Creating")

    response = await client.delete(f"/v1/clusters/{cluster_uuid}", headers=HEADERS)

    assert response.status_code == 409
    assert not container.locks.is_held(cluster_uuid)


@pytest.mark.asyncio
async def test_kubeconfig_push_and_download(client, container, cloud):
    cluster_uuid = await create_cluster(container)
    cluster = await container.repository.get_cluster(cluster_uuid)
    agent_token = container.crypto.decrypt(cluster.agent_token)
    content = b"apiVersion: v1\nkind: Config\n"

    response = await client.get(f"/v1/clusters/{cluster_uuid}/kubeconfig", headers=HEADERS)
    assert response.status_code == 404

    body = {"kubeconfig": base64.b64encode(content).decode()}
    response = await client.post(
        f"/v1/clusters/{cluster_uuid}/kubeconfig", json=body, headers={"X-Cluster-Agent-Token": agent_token}
    )
    assert response.status_code == 204

    response = await client.get(f"/v1/clusters/{cluster_uuid}/kubeconfig", headers=HEADERS)
    assert response.status_code == 200
    assert response.content == content
    assert response.headers["content-disposition"] == 'attachment; filename="demo-kubeconfig.yaml"'


@pytest.mark.asyncio
async def test_kubeconfig_push_requires_agent_token(client, container, cloud):
    cluster_uuid = await create_cluster(container)
    body = {"kubeconfig": base64.b64encode(b"kind: Config").decode()}

    response = await client.post(
        f"/v1/clusters/{cluster_uuid}/kubeconfig", json=body, headers={"X-Cluster-Agent-Token": "forged"}
    )
    assert response.status_code == 401

    response = await client.post(f"/v1/clusters/{cluster_uuid}/kubeconfig", json={"kubeconfig": "%%%"})
    assert response.status_code == 422
    assert await container.repository.get_kubeconfig(cluster_uuid) is None


@pytest.mark.asyncio
async def test_errors_and_audit_logs(client, container, cloud):
    cluster_uuid = await create_cluster(container)

    response = await client.get(f"/v1/clusters/{cluster_uuid}/errors", headers=HEADERS)
    assert response.status_code == 200
    assert [e["message"].split(" during ")[0] for e in response.json()] == ["Failed to create kubeconfig"]

    response = await client.get(f"/v1/clusters/{cluster_uuid}/audit-logs", headers=HEADERS)
    assert response.status_code == 200
    events = [entry["event"] for entry in response.json()]
    assert events[0] == "Cluster Create started"
    assert "Cluster Create completed" in events
