"""Launching and removing single cluster nodes."""
from dataclasses import dataclass
from typing import List
import logging
import random

from kubeforge.models import Cluster, ResourceType
from kubeforge.orchestration.bootstrap import BootstrapParams, SERVER_ROLE, encode_payload, render_bootstrap_payload

logger = logging.getLogger(__name__)


@dataclass
class LaunchedNode:
    server_id: str
    port_id: str
    address: str
    subnet_id: str


class NodeLauncher:
    """Creates a port plus an instance for one node, recording both."""

    def __init__(self, clients, repository, crypto, settings, render=render_bootstrap_payload):
        self.clients = clients
        self.repository = repository
        self.crypto = crypto
        self.settings = settings
        self.render = render

    async def resolve_network_id(self, token: str, cluster: Cluster) -> str:
        subnet = await self.clients.network.get_subnet(token, cluster.subnets[0])
        return subnet["network_id"]

    def build_payload(
        self,
        cluster: Cluster,
        role: str,
        initialize: bool = False,
        labels: List[str] = None,
        taints: List[str] = None,
        endpoint: str = None,
        join_address: str = None,
    ) -> BootstrapParams:
        endpoint = endpoint or cluster.endpoint
        params = BootstrapParams(
            role=role,
            initialize=initialize,
            cluster_uuid=cluster.uuid,
            cluster_name=cluster.name,
            kubernetes_version=cluster.kubernetes_version,
            endpoint=endpoint,
            join_address=join_address or endpoint,
            register_token=self.crypto.decrypt(cluster.register_token),
            agent_token=self.crypto.decrypt(cluster.agent_token),
            web_endpoint=self.settings.WEB_ENDPOINT,
            agent_version=self.settings.NODE_AGENT_VERSION,
            project_id=cluster.project_uuid,
            public_network_id=self.settings.PUBLIC_NETWORK_ID,
            labels=list(labels or []),
            taints=list(taints or []),
        )
        if role == SERVER_ROLE:
            params.application_credential_id = cluster.application_credential_id
            params.application_credential_secret = self.crypto.decrypt(cluster.application_credential_secret)
            params.cluster_agent_version = self.settings.CLUSTER_AGENT_VERSION
            params.cluster_autoscaler_version = self.settings.CLUSTER_AUTOSCALER_VERSION
            params.cloud_provider_version = self.settings.CLOUD_PROVIDER_VERSION
        return params

    async def launch(
        self,
        token: str,
        cluster: Cluster,
        network_id: str,
        name: str,
        port_name: str,
        security_groups: List[str],
        server_group_uuid: str,
        flavor_uuid: str,
        disk_size_gb: int,
        payload: BootstrapParams,
    ) -> LaunchedNode:
        """Create a port on a random cluster subnet and boot an instance on it."""
        subnet_id = random.choice(cluster.subnets)
        port_id, address = await self.clients.network.create_port(
            token, port_name, network_id, subnet_id, security_groups
        )
        await self.repository.record_resource(cluster.uuid, ResourceType.PORT, port_id)

        user_data = encode_payload(self.render(payload))
        server_id = await self.clients.compute.create_server(
            token,
            name=name,
            image_ref=self.settings.IMAGE_REF,
            flavor_ref=flavor_uuid,
            key_name=cluster.node_keypair_name,
            port_id=port_id,
            user_data=user_data,
            server_group_id=server_group_uuid,
            volume_size=disk_size_gb,
            availability_zone=self.settings.AVAILABILITY_ZONE,
        )
        await self.repository.record_resource(cluster.uuid, ResourceType.INSTANCE, server_id)
        logger.info(f"[{cluster.uuid}] Launched {name} ({server_id}) at {address}")
        return LaunchedNode(server_id=server_id, port_id=port_id, address=address, subnet_id=subnet_id)

    async def remove(self, token: str, cluster_uuid: str, server_id: str) -> None:
        """Delete an instance's ports, then the instance."""
        for port_id in await self.clients.compute.list_interface_ports(token, server_id):
            await self.clients.network.delete_port(token, port_id)
            await self.repository.mark_resource_deleted(cluster_uuid, port_id)
        await self.clients.compute.delete_server(token, server_id)
        await self.repository.mark_resource_deleted(cluster_uuid, server_id)
        logger.info(f"[{cluster_uuid}] Removed instance {server_id}")
