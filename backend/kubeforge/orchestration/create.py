"""Cluster creation: every provisioning step in dependency order.

The run is fail-fast. The first failed step writes an ErrorRecord and an
audit entry, moves the cluster and its ``Creating`` node groups to
``Error`` and stops; whatever was already created stays recorded in the
resources table for a later destroy.
"""
import asyncio
import logging
import secrets
from dataclasses import dataclass, field
from typing import List

from kubeforge.exceptions import KubeForgeError, WaitTimeoutError
from kubeforge.models import Cluster, ResourceType
from kubeforge.models.types import new_uuid
from kubeforge.orchestration import messages
from kubeforge.orchestration.bootstrap import AGENT_ROLE, SERVER_ROLE
from kubeforge.orchestration.node_groups import MASTER_NODE_COUNT, NodeGroupSpec
from kubeforge.orchestration.state import APIAccess, CreationStep, NodeGroupType, Status
from kubeforge.orchestration.wait import PollPolicy, wait_until_ready
from kubeforge.utils.crypto import generate_token

logger = logging.getLogger(__name__)

API_PORT = 6443
REGISTER_PORT = 9345
NODE_PORT_RANGE = (30000, 32767)


@dataclass
class ClusterRequest:
    project_uuid: str
    name: str
    kubernetes_version: str
    subnet_ids: List[str]
    master_flavor_uuid: str
    worker_flavor_uuid: str
    worker_min_size: int
    worker_max_size: int
    worker_disk_size_gb: int
    node_keypair_name: str
    api_access: APIAccess = APIAccess.PUBLIC
    allowed_cidrs: List[str] = field(default_factory=list)


@dataclass
class _Run:
    """Identifiers produced so far by one creation run."""

    token: str
    request: ClusterRequest
    cluster: Cluster
    endpoint_hint: str
    network_id: str = ""
    vip_address: str = ""
    vip_port_id: str = ""
    external_ip: str = ""
    master_sg: str = ""
    worker_sg: str = ""
    shared_sg: str = ""
    master_server_group: str = ""
    worker_server_group: str = ""
    master_node_group: str = ""
    worker_node_group: str = ""
    api_pool: str = ""
    register_pool: str = ""


class ClusterCreator:
    """Drives one cluster from ``Creating`` to ``Active`` (or ``Error``)."""

    def __init__(self, repository, clients, node_groups, launcher, recorder, crypto, settings, sleep=asyncio.sleep):
        self.repository = repository
        self.clients = clients
        self.node_groups = node_groups
        self.launcher = launcher
        self.recorder = recorder
        self.crypto = crypto
        self.settings = settings
        self.sleep = sleep
        self.lb_active = PollPolicy.from_settings(settings, "LB_ACTIVE")
        self.lb_online = PollPolicy.from_settings(settings, "LB_ONLINE")
        self.kubeconfig_wait = PollPolicy.from_settings(settings, "KUBECONFIG_WAIT")

    async def prepare(self, token: str, request: ClusterRequest) -> str:
        """Authorize the tenant, persist the ``Creating`` cluster and return its UUID."""
        await self.clients.identity.check_auth_token(token, request.project_uuid)
        cluster = await self.repository.add_cluster(Cluster(
            uuid=new_uuid(),
            name=request.name,
            kubernetes_version=request.kubernetes_version,
            status=Status.CREATING.value,
            project_uuid=request.project_uuid,
            register_token=self.crypto.encrypt(generate_token()),
            agent_token=self.crypto.encrypt(generate_token()),
            subnets=list(request.subnet_ids),
            node_keypair_name=request.node_keypair_name,
            api_access=APIAccess(request.api_access).value,
            allowed_cidrs=list(request.allowed_cidrs),
            master_flavor_uuid=request.master_flavor_uuid,
        ))
        await self.recorder.event(cluster.uuid, cluster.project_uuid, "Cluster Create started")
        return cluster.uuid

    async def run(self, token: str, cluster_uuid: str, request: ClusterRequest) -> None:
        cluster = await self.repository.get_cluster(cluster_uuid)
        state = _Run(
            token=token,
            request=request,
            cluster=cluster,
            endpoint_hint=f"{secrets.token_hex(6)}.{self.settings.CLOUDFLARE_DOMAIN}",
        )
        steps = [
            (CreationStep.APPLICATION_CREDENTIAL, messages.APPLICATION_CREDENTIAL_CREATE_FAILED,
             "application credential creation", self._create_application_credential),
            (CreationStep.LOADBALANCER, messages.LOAD_BALANCER_CREATE_FAILED,
             "load balancer creation", self._create_load_balancer),
            (CreationStep.FLOATING_IP, messages.FLOATING_IP_CREATE_FAILED,
             "floating IP creation", self._create_floating_ip),
            (CreationStep.SECURITY_GROUPS, messages.SECURITY_GROUP_CREATE_FAILED,
             "security group creation", self._create_security_groups),
            (CreationStep.NODE_GROUPS, messages.NODE_GROUP_CREATE_FAILED,
             "node group creation", self._create_node_groups),
            (CreationStep.SECURITY_GROUP_RULES, messages.NETWORK_CREATE_FAILED,
             "security group rule creation", self._create_security_group_rules),
            (CreationStep.MASTERS, messages.CLUSTER_CREATE_FAILED,
             "master node provisioning", self._create_masters),
            (CreationStep.DNS, messages.DNS_RECORD_CREATE_FAILED,
             "DNS record creation", self._create_dns_record),
            (CreationStep.WORKERS, messages.NODE_GROUP_CREATE_FAILED,
             "worker node provisioning", self._create_workers),
            (CreationStep.ACTIVATE, messages.CLUSTER_CREATE_FAILED,
             "cluster activation", self._activate),
        ]
        for step, base, operation, handler in steps:
            state.cluster = await self.repository.update_cluster(cluster_uuid, creation_step=step.value)
            logger.info(f"[{cluster_uuid}] Creation step {step.value}")
            try:
                await handler(state)
            except KubeForgeError as e:
                await self._fail(state.cluster, base, operation, e)
                return
            except Exception as e:
                await self._fail(state.cluster, base, operation, e)
                raise

        await self.repository.update_cluster(cluster_uuid, creation_step=CreationStep.COMPLETED.value)
        await self._wait_for_kubeconfig(state.cluster)

    async def _fail(self, cluster: Cluster, base: str, operation: str, error: Exception) -> None:
        await self.recorder.failure(cluster.uuid, cluster.project_uuid, base, operation, error)
        current = await self.repository.get_cluster(cluster.uuid)
        if current.status == Status.CREATING.value:
            await self.repository.set_cluster_status(cluster.uuid, Status.ERROR)
        for node_group in await self.repository.list_node_groups(cluster.uuid):
            if node_group.status == Status.CREATING.value:
                await self.repository.set_node_group_status(node_group.uuid, Status.ERROR)
        await self.recorder.event(cluster.uuid, cluster.project_uuid, "Cluster Create failed")

    async def _record(self, state: _Run, resource_type: ResourceType, resource_uuid: str) -> None:
        await self.repository.record_resource(state.cluster.uuid, resource_type, resource_uuid)

    async def _wait_lb_active(self, state: _Run) -> dict:
        lb_id = state.cluster.load_balancer_uuid
        return await wait_until_ready(
            lambda: self.clients.loadbalancer.get_load_balancer(state.token, lb_id),
            lambda lb: lb.get("provisioning_status") == "ACTIVE",
            self.lb_active,
            f"load balancer {lb_id} to become ACTIVE",
            is_failed=lambda lb: lb.get("provisioning_status") == "ERROR",
            sleep=self.sleep,
        )

    async def _wait_lb_online(self, state: _Run) -> None:
        lb_id = state.cluster.load_balancer_uuid
        await wait_until_ready(
            lambda: self.clients.loadbalancer.get_load_balancer(state.token, lb_id),
            lambda lb: lb.get("operating_status") == "ONLINE",
            self.lb_online,
            f"load balancer {lb_id} to become ONLINE",
            is_failed=lambda lb: lb.get("provisioning_status") == "ERROR",
            sleep=self.sleep,
        )

    # Steps

    async def _create_application_credential(self, state: _Run) -> None:
        cluster = state.cluster
        user_id = await self.clients.identity.get_token_user_id(state.token)
        credential_id, secret = await self.clients.identity.create_application_credential(
            state.token,
            user_id,
            f"credential-for-kubeforge-{cluster.uuid}-cluster",
            self.settings.APPLICATION_CREDENTIAL_ROLES,
        )
        await self._record(state, ResourceType.APPLICATION_CREDENTIAL, credential_id)
        state.cluster = await self.repository.update_cluster(
            cluster.uuid,
            application_credential_id=credential_id,
            application_credential_secret=self.crypto.encrypt(secret),
            application_credential_user_id=user_id,
        )

    async def _create_load_balancer(self, state: _Run) -> None:
        cluster = state.cluster
        state.network_id = await self.launcher.resolve_network_id(state.token, cluster)
        lb = await self.clients.loadbalancer.create_load_balancer(state.token, f"{cluster.name}-lb", cluster.subnets[0])
        await self._record(state, ResourceType.LOADBALANCER, lb["id"])
        state.cluster = await self.repository.update_cluster(cluster.uuid, load_balancer_uuid=lb["id"])
        lb = await self._wait_lb_active(state)
        state.vip_address = lb["vip_address"]
        state.vip_port_id = lb["vip_port_id"]
        state.external_ip = state.vip_address

    async def _create_floating_ip(self, state: _Run) -> None:
        if APIAccess(state.request.api_access) != APIAccess.PUBLIC:
            logger.info(f"[{state.cluster.uuid}] Private API access, no floating IP")
            return
        floating_ip_id, address = await self.clients.network.create_floating_ip(
            state.token, self.settings.PUBLIC_NETWORK_ID, state.vip_port_id
        )
        await self._record(state, ResourceType.FLOATING_IP, floating_ip_id)
        state.cluster = await self.repository.update_cluster(state.cluster.uuid, floating_ip_uuid=floating_ip_id)
        state.external_ip = address

    async def _create_security_groups(self, state: _Run) -> None:
        name = state.cluster.name
        for attr, suffix in (("master_sg", "master-sg"), ("worker_sg", "worker-sg"), ("shared_sg", "shared-sg")):
            sg_id = await self.clients.network.create_security_group(state.token, f"{name}-{suffix}")
            await self._record(state, ResourceType.SECURITY_GROUP, sg_id)
            setattr(state, attr, sg_id)
        state.cluster = await self.repository.update_cluster(
            state.cluster.uuid, shared_security_group_uuid=state.shared_sg
        )

    async def _create_node_groups(self, state: _Run) -> None:
        cluster, request = state.cluster, state.request
        compute = self.clients.compute
        state.master_server_group = await compute.create_server_group(
            state.token, f"{cluster.name}-master-server-group"
        )
        await self._record(state, ResourceType.SERVER_GROUP, state.master_server_group)
        state.worker_server_group = await compute.create_server_group(
            state.token, f"{cluster.name}-worker-server-group"
        )
        await self._record(state, ResourceType.SERVER_GROUP, state.worker_server_group)

        state.master_node_group = await self.node_groups.create_node_group(state.token, cluster.uuid, NodeGroupSpec(
            name=f"{cluster.name}-master",
            type=NodeGroupType.MASTER,
            flavor_uuid=request.master_flavor_uuid,
            disk_size_gb=self.settings.MASTER_DISK_SIZE_GB,
            min_size=MASTER_NODE_COUNT,
            max_size=MASTER_NODE_COUNT,
            is_hidden=True,
            server_group_uuid=state.master_server_group,
            security_group_uuid=state.master_sg,
        ))
        state.worker_node_group = await self.node_groups.create_node_group(state.token, cluster.uuid, NodeGroupSpec(
            name=f"{cluster.name}-worker",
            type=NodeGroupType.WORKER,
            flavor_uuid=request.worker_flavor_uuid,
            disk_size_gb=request.worker_disk_size_gb,
            min_size=request.worker_min_size,
            max_size=request.worker_max_size,
            server_group_uuid=state.worker_server_group,
            security_group_uuid=state.worker_sg,
        ))

    async def _create_security_group_rules(self, state: _Run) -> None:
        network = self.clients.network
        token = state.token
        for cidr in state.cluster.allowed_cidrs or []:
            await network.create_rule_for_cidr(token, state.master_sg, cidr, API_PORT, API_PORT)
        await network.create_rule_for_group(token, state.shared_sg, state.shared_sg)
        for subnet_id in state.cluster.subnets:
            subnet = await network.get_subnet(token, subnet_id)
            await network.create_rule_for_cidr(token, state.master_sg, subnet["cidr"], API_PORT, API_PORT)
            await network.create_rule_for_cidr(token, state.master_sg, subnet["cidr"], REGISTER_PORT, REGISTER_PORT)
            await network.create_rule_for_cidr(token, state.shared_sg, subnet["cidr"], *NODE_PORT_RANGE)

    async def _create_frontends(self, state: _Run) -> None:
        """Listeners, pools and health monitors in front of the control plane."""
        lb_client = self.clients.loadbalancer
        token, name, lb_id = state.token, state.cluster.name, state.cluster.load_balancer_uuid

        await self._wait_lb_active(state)
        api_listener = await lb_client.create_listener(
            token, f"{name}-api-listener", lb_id, API_PORT, allowed_cidrs=state.cluster.allowed_cidrs or None
        )
        await self._record(state, ResourceType.LISTENER, api_listener)
        await self._wait_lb_active(state)
        register_listener = await lb_client.create_listener(token, f"{name}-register-listener", lb_id, REGISTER_PORT)
        await self._record(state, ResourceType.LISTENER, register_listener)

        await self._wait_lb_active(state)
        state.api_pool = await lb_client.create_pool(token, f"{name}-api-pool", api_listener)
        await self._record(state, ResourceType.POOL, state.api_pool)
        await self._wait_lb_active(state)
        state.register_pool = await lb_client.create_pool(token, f"{name}-register-pool", register_listener)
        await self._record(state, ResourceType.POOL, state.register_pool)

        await self._wait_lb_active(state)
        await lb_client.create_tcp_health_monitor(token, state.api_pool, f"{name}-api-healthmonitor")
        await self._wait_lb_active(state)
        await lb_client.create_https_health_monitor(
            token, state.register_pool, f"{name}-register-healthmonitor", state.endpoint_hint
        )

    async def _create_masters(self, state: _Run) -> None:
        cluster, request = state.cluster, state.request
        lb_client = self.clients.loadbalancer
        for index in range(1, MASTER_NODE_COUNT + 1):
            initialize = index == 1
            payload = self.launcher.build_payload(
                cluster, SERVER_ROLE, initialize=initialize,
                endpoint=state.endpoint_hint, join_address=state.vip_address,
            )
            node = await self.launcher.launch(
                state.token,
                cluster,
                state.network_id,
                name=f"{cluster.name}-master-{index}",
                port_name=f"{cluster.name}-master-{index}-port",
                security_groups=[state.master_sg, state.shared_sg],
                server_group_uuid=state.master_server_group,
                flavor_uuid=request.master_flavor_uuid,
                disk_size_gb=self.settings.MASTER_DISK_SIZE_GB,
                payload=payload,
            )
            if initialize:
                await self._create_frontends(state)

            await self._wait_lb_active(state)
            await lb_client.create_member(
                state.token, state.api_pool, f"{cluster.name}-master-{index}", node.address, API_PORT, node.subnet_id
            )
            await self._wait_lb_active(state)
            await lb_client.create_member(
                state.token, state.register_pool, f"{cluster.name}-master-{index}",
                node.address, REGISTER_PORT, node.subnet_id,
            )
            if initialize:
                # Later masters can only join once the first one serves registrations
                await self._wait_lb_online(state)
            await self.recorder.event(cluster.uuid, cluster.project_uuid, f"Master node {index} created")

    async def _create_dns_record(self, state: _Run) -> None:
        record_id, record_name = await self.clients.dns.create_a_record(
            state.endpoint_hint, state.external_ip, comment=state.cluster.name
        )
        await self._record(state, ResourceType.DNS_RECORD, record_id)
        state.cluster = await self.repository.update_cluster(
            state.cluster.uuid, endpoint=record_name or state.endpoint_hint, dns_record_id=record_id
        )

    async def _create_workers(self, state: _Run) -> None:
        cluster, request = state.cluster, state.request
        worker_group = await self.repository.get_node_group(state.worker_node_group)
        payload = self.launcher.build_payload(
            cluster, AGENT_ROLE, labels=worker_group.labels, taints=worker_group.taints,
            join_address=state.vip_address,
        )
        for index in range(1, request.worker_min_size + 1):
            await self.launcher.launch(
                state.token,
                cluster,
                state.network_id,
                name=f"{worker_group.name}-{index}",
                port_name=f"{worker_group.name}-{index}-port",
                security_groups=[state.worker_sg, state.shared_sg],
                server_group_uuid=state.worker_server_group,
                flavor_uuid=request.worker_flavor_uuid,
                disk_size_gb=request.worker_disk_size_gb,
                payload=payload,
            )
        await self.recorder.event(cluster.uuid, cluster.project_uuid, f"{request.worker_min_size} worker node(s) created")

    async def _activate(self, state: _Run) -> None:
        cluster = state.cluster
        await self.repository.set_cluster_status(cluster.uuid, Status.ACTIVE)
        for node_group_uuid in (state.master_node_group, state.worker_node_group):
            await self.repository.set_node_group_status(node_group_uuid, Status.ACTIVE)
        await self.recorder.event(cluster.uuid, cluster.project_uuid, "Cluster Create completed")

    async def _wait_for_kubeconfig(self, cluster: Cluster) -> None:
        """Wait for the cluster agent to push its kubeconfig; a timeout leaves the cluster ``Active``."""
        try:
            await wait_until_ready(
                lambda: self.repository.get_kubeconfig(cluster.uuid),
                lambda kubeconfig: kubeconfig is not None,
                self.kubeconfig_wait,
                f"kubeconfig of cluster {cluster.uuid}",
                sleep=self.sleep,
            )
        except WaitTimeoutError as e:
            await self.recorder.failure(
                cluster.uuid, cluster.project_uuid, messages.KUBECONFIG_CREATE_FAILED, "kubeconfig retrieval", e
            )
            return
        await self.recorder.event(cluster.uuid, cluster.project_uuid, "Kubeconfig received")
