"""Tenant worker pools: provisioning a new group and single-node changes."""
import logging
from typing import List

from kubeforge.exceptions import InvalidRequestError, KubeForgeError, NotFoundError
from kubeforge.models import Cluster, NodeGroup, ResourceType
from kubeforge.models.types import new_uuid
from kubeforge.orchestration import messages
from kubeforge.orchestration.bootstrap import AGENT_ROLE
from kubeforge.orchestration.node_groups import NodeGroupSpec
from kubeforge.orchestration.state import NodeGroupType, Status

logger = logging.getLogger(__name__)


def _node_prefix(cluster: Cluster, node_group: NodeGroup) -> str:
    """Instance name prefix; the default worker group already carries the cluster name."""
    if node_group.name.startswith(f"{cluster.name}-"):
        return node_group.name
    return f"{cluster.name}-{node_group.name}"


class WorkerPoolProvisioner:
    def __init__(self, repository, clients, access, recorder, launcher, node_groups):
        self.repository = repository
        self.clients = clients
        self.access = access
        self.recorder = recorder
        self.launcher = launcher
        self.node_groups = node_groups

    async def add_pool(self, token: str, cluster_uuid: str, spec: NodeGroupSpec) -> str:
        """Record a new ``Creating`` worker group on an ``Active`` cluster."""
        cluster = await self.access.authorize(token, cluster_uuid)
        if cluster.status != Status.ACTIVE.value:
            raise InvalidRequestError(f"Cluster {cluster.uuid} is {cluster.status}, not Active")
        if spec.type != NodeGroupType.WORKER:
            raise InvalidRequestError("Only worker node groups can be added to a running cluster")
        if len(spec.name) > 20:
            raise InvalidRequestError("Node group name must be at most 20 characters")
        return await self.node_groups.create_node_group(token, cluster.uuid, spec)

    async def provision_pool(self, token: str, cluster_uuid: str, node_group_uuid: str) -> None:
        """Create the group's server group and security group, then launch ``MinSize`` workers."""
        cluster = await self.repository.get_cluster(cluster_uuid)
        node_group = await self.repository.get_node_group(node_group_uuid)
        prefix = f"{cluster.name}-{node_group.name}"
        try:
            server_group = await self.clients.compute.create_server_group(token, f"{prefix}-worker-server-group")
            await self.repository.record_resource(cluster.uuid, ResourceType.SERVER_GROUP, server_group)
            security_group = await self.clients.network.create_security_group(token, f"{prefix}-worker-sg")
            await self.repository.record_resource(cluster.uuid, ResourceType.SECURITY_GROUP, security_group)
            node_group = await self.repository.update_node_group(
                node_group.uuid, server_group_uuid=server_group, security_group_uuid=security_group
            )

            network_id = await self.launcher.resolve_network_id(token, cluster)
            for index in range(1, node_group.min_size + 1):
                await self._launch(token, cluster, node_group, network_id, str(index))
        except KubeForgeError as e:
            await self.recorder.failure(
                cluster.uuid, cluster.project_uuid, messages.NODE_GROUP_CREATE_FAILED,
                f"provisioning of node group {node_group.name}", e,
            )
            await self.repository.set_node_group_status(node_group.uuid, Status.ERROR)
            return

        await self.repository.set_node_group_status(node_group.uuid, Status.ACTIVE)
        await self.recorder.event(
            cluster.uuid, cluster.project_uuid, f"Node group {node_group.name} created with {node_group.min_size} node(s)"
        )

    async def _launch(self, token, cluster, node_group: NodeGroup, network_id: str, suffix: str):
        payload = self.launcher.build_payload(
            cluster, AGENT_ROLE, labels=node_group.labels, taints=node_group.taints
        )
        name = f"{_node_prefix(cluster, node_group)}-{suffix}"
        return await self.launcher.launch(
            token,
            cluster,
            network_id,
            name=name,
            port_name=f"{name}-port",
            security_groups=[node_group.security_group_uuid, cluster.shared_security_group_uuid],
            server_group_uuid=node_group.server_group_uuid,
            flavor_uuid=node_group.flavor_uuid,
            disk_size_gb=node_group.disk_size_gb,
            payload=payload,
        )

    async def _load_active(self, token: str, cluster_uuid: str, node_group_uuid: str):
        cluster = await self.access.authorize(token, cluster_uuid)
        if cluster.status != Status.ACTIVE.value:
            raise InvalidRequestError(f"Cluster {cluster.uuid} is {cluster.status}, not Active")
        node_group = await self.repository.get_node_group(node_group_uuid)
        if not node_group or node_group.cluster_uuid != cluster.uuid or node_group.status == Status.DELETED.value:
            raise NotFoundError(f"Node group {node_group_uuid} not found in cluster {cluster.uuid}")
        if node_group.type != NodeGroupType.WORKER.value:
            raise InvalidRequestError("Master nodes cannot be added or removed individually")
        if node_group.status != Status.ACTIVE.value:
            raise InvalidRequestError(f"Node group {node_group.uuid} is {node_group.status}, not Active")
        members = await self.clients.compute.get_server_group_members(token, node_group.server_group_uuid) or []
        return cluster, node_group, members

    async def list_nodes(self, token: str, cluster_uuid: str, node_group_uuid: str) -> List[dict]:
        """Instances in the group as ``{id, name, status}``; members already gone are skipped."""
        cluster = await self.access.authorize(token, cluster_uuid)
        node_group = await self.repository.get_node_group(node_group_uuid)
        if not node_group or node_group.cluster_uuid != cluster.uuid or node_group.status == Status.DELETED.value:
            raise NotFoundError(f"Node group {node_group_uuid} not found in cluster {cluster.uuid}")
        if not node_group.server_group_uuid:
            return []
        compute = self.clients.compute
        nodes = []
        for server_id in await compute.get_server_group_members(token, node_group.server_group_uuid) or []:
            server = await compute.get_server(token, server_id)
            if server is None:
                continue
            nodes.append({"id": server["id"], "name": server["name"], "status": server["status"]})
        return nodes

    async def add_node(self, token: str, cluster_uuid: str, node_group_uuid: str) -> str:
        """Launch one more worker in the group; returns the new instance ID."""
        cluster, node_group, members = await self._load_active(token, cluster_uuid, node_group_uuid)
        if len(members) >= node_group.max_size:
            raise InvalidRequestError(
                f"Node group {node_group.name} already has {len(members)} of at most {node_group.max_size} nodes"
            )
        network_id = await self.launcher.resolve_network_id(token, cluster)
        try:
            # Hostnames must stay unique after earlier nodes were removed
            node = await self._launch(token, cluster, node_group, network_id, new_uuid()[:8])
        except KubeForgeError as e:
            await self.recorder.failure(
                cluster.uuid, cluster.project_uuid, messages.NODE_GROUP_SCALING_FAILED, "node addition", e
            )
            raise
        await self.recorder.event(
            cluster.uuid, cluster.project_uuid, f"Node {node.server_id} added to node group {node_group.name}"
        )
        return node.server_id

    async def delete_node(self, token: str, cluster_uuid: str, node_group_uuid: str, instance_uuid: str) -> None:
        cluster, node_group, members = await self._load_active(token, cluster_uuid, node_group_uuid)
        if instance_uuid not in members:
            raise InvalidRequestError(f"Instance {instance_uuid} is not a member of node group {node_group.name}")
        if len(members) <= node_group.min_size:
            raise InvalidRequestError(
                f"Node group {node_group.name} cannot shrink below its minimum of {node_group.min_size} nodes"
            )
        try:
            await self.launcher.remove(token, cluster.uuid, instance_uuid)
        except KubeForgeError as e:
            await self.recorder.failure(
                cluster.uuid, cluster.project_uuid, messages.NODE_GROUP_SCALING_FAILED, "node removal", e
            )
            raise
        await self.recorder.event(
            cluster.uuid, cluster.project_uuid, f"Node {instance_uuid} removed from node group {node_group.name}"
        )
