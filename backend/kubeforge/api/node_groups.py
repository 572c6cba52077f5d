"""Node group endpoints nested under a cluster."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field, model_validator

from kubeforge.api.dependencies import get_auth_token
from kubeforge.container import Container, get_container
from kubeforge.orchestration.node_groups import NodeGroupSpec, NodeGroupUpdate, NodeGroupView
from kubeforge.orchestration.state import NodeGroupType

router = APIRouter(prefix="/v1/clusters/{cluster_id}/node-groups", tags=["Node Groups"])


class NodeGroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=20)
    flavor_id: str
    disk_size_gb: int = Field(ge=20)
    min_size: int = Field(ge=1)
    max_size: int = Field(ge=1)
    labels: List[str] = []
    taints: List[str] = []

    @model_validator(mode="after")
    def validate_sizes(self):
        if self.min_size > self.max_size:
            raise ValueError("min_size must not exceed max_size")
        return self


class NodeGroupPatch(BaseModel):
    desired_nodes: Optional[int] = Field(None, ge=1)
    min_nodes: Optional[int] = Field(None, ge=1)
    max_nodes: Optional[int] = Field(None, ge=1)
    nodes_to_remove: Optional[List[str]] = None


class NodeGroupResponse(BaseModel):
    id: str
    cluster_id: str
    name: str
    type: str
    status: str
    min_size: int
    max_size: int
    desired_nodes: int
    current_nodes: int
    disk_size_gb: int
    flavor_id: str
    labels: List[str]
    taints: List[str]
    nodes_to_remove: List[str]


class NodeResponse(BaseModel):
    id: str
    name: str
    status: str


class Accepted(BaseModel):
    id: str
    status: str


def _to_response(view: NodeGroupView) -> NodeGroupResponse:
    return NodeGroupResponse(
        id=view.uuid,
        cluster_id=view.cluster_uuid,
        name=view.name,
        type=view.type,
        status=view.status,
        min_size=view.min_size,
        max_size=view.max_size,
        desired_nodes=view.desired_nodes,
        current_nodes=view.current_nodes,
        disk_size_gb=view.disk_size_gb,
        flavor_id=view.flavor_uuid,
        labels=view.labels,
        taints=view.taints,
        nodes_to_remove=view.nodes_to_remove,
    )


@router.post("", response_model=Accepted, status_code=202)
async def create_node_group(
    cluster_id: str,
    data: NodeGroupCreate,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    """Add a worker node group and provision its instances in the background."""
    spec = NodeGroupSpec(
        name=data.name,
        type=NodeGroupType.WORKER,
        flavor_uuid=data.flavor_id,
        disk_size_gb=data.disk_size_gb,
        min_size=data.min_size,
        max_size=data.max_size,
        labels=list(data.labels),
        taints=list(data.taints),
    )
    pools = container.pools
    node_group_uuid = await container.runner.submit(
        cluster_id,
        "node group provisioning",
        lambda node_group_uuid: pools.provision_pool(token, cluster_id, node_group_uuid),
        prepare=lambda: pools.add_pool(token, cluster_id, spec),
    )
    return Accepted(id=node_group_uuid, status="Creating")


@router.get("", response_model=List[NodeGroupResponse])
async def list_node_groups(
    cluster_id: str,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    views = await container.node_groups.get_node_groups(token, cluster_id)
    return [_to_response(view) for view in views]


@router.get("/{node_group_id}", response_model=NodeGroupResponse)
async def get_node_group(
    cluster_id: str,
    node_group_id: str,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    views = await container.node_groups.get_node_groups(token, cluster_id, node_group_id)
    return _to_response(views[0])


@router.patch("/{node_group_id}", response_model=NodeGroupResponse)
async def update_node_group(
    cluster_id: str,
    node_group_id: str,
    data: NodeGroupPatch,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    """Record new scale bounds and intent for a worker node group."""
    update = NodeGroupUpdate(
        desired_nodes=data.desired_nodes,
        min_nodes=data.min_nodes,
        max_nodes=data.max_nodes,
        nodes_to_remove=data.nodes_to_remove,
    )
    async with container.locks.hold(cluster_id):
        view = await container.node_groups.update_node_group(token, cluster_id, node_group_id, update)
    return _to_response(view)


@router.delete("/{node_group_id}", response_model=Accepted, status_code=202)
async def delete_node_group(
    cluster_id: str,
    node_group_id: str,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    node_groups = container.node_groups
    await container.runner.submit(
        cluster_id,
        "node group deletion",
        lambda _: node_groups.release_resources(token, cluster_id, node_group_id),
        prepare=lambda: node_groups.prepare_delete(token, cluster_id, node_group_id),
    )
    return Accepted(id=node_group_id, status="Deleting")


@router.get("/{node_group_id}/nodes", response_model=List[NodeResponse])
async def list_nodes(
    cluster_id: str,
    node_group_id: str,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    nodes = await container.pools.list_nodes(token, cluster_id, node_group_id)
    return [NodeResponse(**node) for node in nodes]


@router.post("/{node_group_id}/nodes", response_model=Accepted, status_code=201)
async def add_node(
    cluster_id: str,
    node_group_id: str,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    """Launch one more worker in the node group."""
    async with container.locks.hold(cluster_id):
        server_id = await container.pools.add_node(token, cluster_id, node_group_id)
    return Accepted(id=server_id, status="Building")


@router.delete("/{node_group_id}/nodes/{instance_id}", status_code=204)
async def delete_node(
    cluster_id: str,
    node_group_id: str,
    instance_id: str,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    async with container.locks.hold(cluster_id):
        await container.pools.delete_node(token, cluster_id, node_group_id, instance_id)
    return Response(status_code=204)
