"""Node group records: creation, read views, scale intent and deletion."""
from dataclasses import dataclass, field
from typing import List, Optional
import logging

from kubeforge.exceptions import InvalidRequestError, KubeForgeError, NotFoundError
from kubeforge.models import Cluster, NodeGroup
from kubeforge.models.types import new_uuid
from kubeforge.orchestration import messages
from kubeforge.orchestration.state import NodeGroupType, Status

logger = logging.getLogger(__name__)

MASTER_NODE_COUNT = 3


@dataclass
class NodeGroupSpec:
    name: str
    type: NodeGroupType
    flavor_uuid: str
    disk_size_gb: int
    min_size: int
    max_size: int
    desired_nodes: Optional[int] = None
    labels: List[str] = field(default_factory=list)
    taints: List[str] = field(default_factory=list)
    is_hidden: bool = False
    server_group_uuid: str = ""
    security_group_uuid: str = ""


@dataclass
class NodeGroupUpdate:
    desired_nodes: Optional[int] = None
    min_nodes: Optional[int] = None
    max_nodes: Optional[int] = None
    nodes_to_remove: Optional[List[str]] = None


@dataclass
class NodeGroupView:
    """Persisted spec merged with the live instance count."""

    uuid: str
    cluster_uuid: str
    name: str
    type: str
    status: str
    min_size: int
    max_size: int
    desired_nodes: int
    current_nodes: int
    disk_size_gb: int
    flavor_uuid: str
    labels: List[str]
    taints: List[str]
    nodes_to_remove: List[str]
    is_hidden: bool


def _check_bounds(min_size: int, max_size: int, desired: int) -> None:
    if min_size < 1:
        raise InvalidRequestError("Node group minimum size must be at least 1")
    if min_size > max_size:
        raise InvalidRequestError(f"Node group minimum size {min_size} exceeds maximum size {max_size}")
    if not min_size <= desired <= max_size:
        raise InvalidRequestError(f"Desired nodes {desired} must be within [{min_size}, {max_size}]")


class NodeGroupManager:
    """Owns node group rows and their invariants.

    Instance provisioning for new groups is left to the caller (the creation
    orchestrator or the worker pool provisioner); deletion tears the group's
    cloud resources down itself.
    """

    def __init__(self, repository, clients, access, recorder, launcher):
        self.repository = repository
        self.clients = clients
        self.access = access
        self.recorder = recorder
        self.launcher = launcher

    async def create_node_group(self, token: str, cluster_uuid: str, spec: NodeGroupSpec) -> str:
        """Persist a ``Creating`` node group and return its UUID."""
        cluster = await self.access.authorize(token, cluster_uuid)

        desired = spec.min_size if spec.desired_nodes is None else spec.desired_nodes
        if spec.type == NodeGroupType.MASTER:
            if (spec.min_size, spec.max_size, desired) != (MASTER_NODE_COUNT,) * 3:
                raise InvalidRequestError("Master node group is fixed at 3 nodes")
            existing = await self.repository.list_node_groups(cluster.uuid)
            if any(ng.type == NodeGroupType.MASTER.value for ng in existing):
                raise InvalidRequestError(f"Cluster {cluster.uuid} already has a master node group")
        _check_bounds(spec.min_size, spec.max_size, desired)
        for taint in spec.taints:
            if "=" not in taint:
                raise InvalidRequestError(f"Invalid taint format: {taint}")

        labels = list(spec.labels)
        if spec.type == NodeGroupType.WORKER and not labels:
            labels = [f"nodegroup-name={spec.name}"]

        node_group = await self.repository.add_node_group(NodeGroup(
            uuid=new_uuid(),
            cluster_uuid=cluster.uuid,
            name=spec.name,
            type=NodeGroupType(spec.type).value,
            status=Status.CREATING.value,
            labels=labels,
            taints=list(spec.taints),
            min_size=spec.min_size,
            max_size=spec.max_size,
            desired_nodes=desired,
            nodes_to_remove=[],
            disk_size_gb=spec.disk_size_gb,
            flavor_uuid=spec.flavor_uuid,
            server_group_uuid=spec.server_group_uuid,
            security_group_uuid=spec.security_group_uuid,
            is_hidden=spec.is_hidden,
        ))
        logger.info(f"[{cluster.uuid}] Node group {node_group.name} ({node_group.uuid}) recorded")
        return node_group.uuid

    async def _load(self, cluster: Cluster, node_group_uuid: str) -> NodeGroup:
        node_group = await self.repository.get_node_group(node_group_uuid)
        if not node_group or node_group.cluster_uuid != cluster.uuid:
            raise NotFoundError(f"Node group {node_group_uuid} not found in cluster {cluster.uuid}")
        return node_group

    async def _view(self, token: str, node_group: NodeGroup) -> NodeGroupView:
        current = 0
        if node_group.server_group_uuid:
            current = await self.clients.compute.count_server_group_members(token, node_group.server_group_uuid)
        return NodeGroupView(
            uuid=node_group.uuid,
            cluster_uuid=node_group.cluster_uuid,
            name=node_group.name,
            type=node_group.type,
            status=node_group.status,
            min_size=node_group.min_size,
            max_size=node_group.max_size,
            desired_nodes=node_group.desired_nodes,
            current_nodes=current,
            disk_size_gb=node_group.disk_size_gb,
            flavor_uuid=node_group.flavor_uuid,
            labels=list(node_group.labels or []),
            taints=list(node_group.taints or []),
            nodes_to_remove=list(node_group.nodes_to_remove or []),
            is_hidden=bool(node_group.is_hidden),
        )

    async def get_node_groups(
        self, token: str, cluster_uuid: str, node_group_uuid: Optional[str] = None, include_hidden: bool = False
    ) -> List[NodeGroupView]:
        cluster = await self.access.authorize(token, cluster_uuid)
        if node_group_uuid:
            return [await self._view(token, await self._load(cluster, node_group_uuid))]

        views = []
        for node_group in await self.repository.list_node_groups(cluster.uuid):
            if node_group.is_hidden and not include_hidden:
                continue
            views.append(await self._view(token, node_group))
        return views

    async def update_node_group(
        self, token: str, cluster_uuid: str, node_group_uuid: str, update: NodeGroupUpdate
    ) -> NodeGroupView:
        """Record new scale intent; the autoscaler acts on it."""
        cluster = await self.access.authorize(token, cluster_uuid)
        node_group = await self._load(cluster, node_group_uuid)
        if node_group.type == NodeGroupType.MASTER.value:
            raise InvalidRequestError("Master node group cannot be resized")
        if node_group.status != Status.ACTIVE.value:
            raise InvalidRequestError(f"Node group {node_group.uuid} is {node_group.status}, not Active")

        min_size = node_group.min_size if update.min_nodes is None else update.min_nodes
        max_size = node_group.max_size if update.max_nodes is None else update.max_nodes
        if update.desired_nodes is None:
            desired = min(max(node_group.desired_nodes, min_size), max_size)
        else:
            desired = update.desired_nodes
        _check_bounds(min_size, max_size, desired)

        fields = {"min_size": min_size, "max_size": max_size, "desired_nodes": desired}
        if update.nodes_to_remove is not None:
            fields["nodes_to_remove"] = list(update.nodes_to_remove)

        await self.repository.set_node_group_status(node_group.uuid, Status.UPDATING, **fields)
        node_group = await self.repository.set_node_group_status(node_group.uuid, Status.ACTIVE)
        await self.recorder.event(
            cluster.uuid, cluster.project_uuid,
            f"Node group {node_group.name} updated: min={min_size} max={max_size} desired={desired}",
        )
        return await self._view(token, node_group)

    async def prepare_delete(self, token: str, cluster_uuid: str, node_group_uuid: str) -> NodeGroup:
        """Authorize a deletion and move the group to ``Deleting``."""
        cluster = await self.access.authorize(token, cluster_uuid)
        node_group = await self._load(cluster, node_group_uuid)
        if node_group.type == NodeGroupType.MASTER.value:
            raise InvalidRequestError("Master node group can only be removed by destroying the cluster")
        return await self.repository.set_node_group_status(node_group.uuid, Status.DELETING)

    async def release_resources(self, token: str, cluster_uuid: str, node_group_uuid: str) -> None:
        """Delete a ``Deleting`` group's instances, server group and security group."""
        cluster = await self.repository.get_cluster(cluster_uuid)
        node_group = await self.repository.get_node_group(node_group_uuid)
        try:
            if node_group.server_group_uuid:
                members = await self.clients.compute.get_server_group_members(token, node_group.server_group_uuid)
                for server_id in members or []:
                    await self.launcher.remove(token, cluster.uuid, server_id)
                await self.clients.compute.delete_server_group(token, node_group.server_group_uuid)
                await self.repository.mark_resource_deleted(cluster.uuid, node_group.server_group_uuid)
            if node_group.security_group_uuid:
                await self.clients.network.delete_security_group(token, node_group.security_group_uuid)
                await self.repository.mark_resource_deleted(cluster.uuid, node_group.security_group_uuid)
        except KubeForgeError as e:
            # Group stays Deleting; a repeated delete picks it up again
            await self.recorder.failure(
                cluster.uuid, cluster.project_uuid, messages.NODE_GROUP_DELETE_FAILED, "node group deletion", e
            )
            raise

        await self.repository.set_node_group_status(node_group.uuid, Status.DELETED)
        await self.recorder.event(cluster.uuid, cluster.project_uuid, f"Node group {node_group.name} deleted")

    async def delete_node_group(self, token: str, cluster_uuid: str, node_group_uuid: str) -> None:
        await self.prepare_delete(token, cluster_uuid, node_group_uuid)
        await self.release_resources(token, cluster_uuid, node_group_uuid)
