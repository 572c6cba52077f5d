"""Cluster teardown: best-effort, checkpointed deletion of every cloud resource."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Set

from kubeforge.exceptions import KubeForgeError
from kubeforge.models import Cluster, NodeGroup, ResourceType
from kubeforge.orchestration import messages
from kubeforge.orchestration.state import DELETE_PHASES, DeleteState, Status
from kubeforge.orchestration.wait import PollPolicy, wait_until_ready

logger = logging.getLogger(__name__)


@dataclass
class _Teardown:
    token: str
    cluster: Cluster
    attempted: Set[str] = field(default_factory=set)
    failures: int = 0


class ClusterTeardown:
    """Deletes a cluster's resources phase by phase.

    The current phase is persisted in ``Cluster.delete_state`` before it
    runs, so a destroy issued again after a crash or a failed run resumes at
    that phase. A failed deletion is recorded and the run moves on; a
    resource that is already gone counts as deleted.
    """

    def __init__(self, repository, clients, access, recorder, settings, sleep=asyncio.sleep):
        self.repository = repository
        self.clients = clients
        self.access = access
        self.recorder = recorder
        self.sleep = sleep
        self.delete_wait = PollPolicy.from_settings(settings, "LB_DELETE")

    async def prepare(self, token: str, cluster_uuid: str) -> str:
        """Authorize the destroy and move the cluster to ``Deleting``."""
        cluster = await self.access.authorize(token, cluster_uuid)
        cluster = await self.repository.set_cluster_status(cluster.uuid, Status.DELETING)
        if not cluster.delete_state:
            cluster = await self.repository.update_cluster(cluster.uuid, delete_state=DeleteState.INITIAL.value)
        await self.recorder.event(
            cluster.uuid, cluster.project_uuid, f"Cluster destroy started at phase {cluster.delete_state}"
        )
        return cluster.uuid

    async def run(self, token: str, cluster_uuid: str) -> None:
        cluster = await self.repository.get_cluster(cluster_uuid)
        run = _Teardown(token=token, cluster=cluster)
        handlers = {
            DeleteState.LOADBALANCER: self._delete_load_balancer,
            DeleteState.DNS: self._delete_dns_record,
            DeleteState.FLOATING_IP: self._delete_floating_ip,
            DeleteState.NODES: self._delete_nodes,
            DeleteState.SECURITY_GROUPS: self._delete_security_groups,
            DeleteState.CREDENTIALS: self._delete_credentials,
        }
        start = DELETE_PHASES.index(DeleteState(cluster.delete_state or DeleteState.INITIAL.value))
        for phase in DELETE_PHASES[start:]:
            if phase == DeleteState.INITIAL:
                continue
            run.cluster = await self.repository.update_cluster(cluster_uuid, delete_state=phase.value)
            handler = handlers.get(phase)
            if handler is not None:
                logger.info(f"[{cluster_uuid}] Delete phase {phase.value}")
                await handler(run)

        await self.repository.set_cluster_status(cluster_uuid, Status.DELETED)
        if run.failures:
            logger.warning(f"[{cluster_uuid}] Destroy finished with {run.failures} failed deletion(s)")
        await self.recorder.event(cluster_uuid, run.cluster.project_uuid, "Cluster destroy completed")

    async def _attempt(
        self, run: _Teardown, resource_uuid: str, base: str, operation: str,
        func: Callable[..., Awaitable], *args,
    ) -> bool:
        """Run one deletion at most once per run; failures are recorded, not raised."""
        if not resource_uuid or resource_uuid in run.attempted:
            return False
        run.attempted.add(resource_uuid)
        try:
            await func(*args)
        except KubeForgeError as e:
            run.failures += 1
            await self.recorder.failure(run.cluster.uuid, run.cluster.project_uuid, base, operation, e)
            return False
        await self.repository.mark_resource_deleted(run.cluster.uuid, resource_uuid)
        return True

    async def _recorded(self, run: _Teardown, resource_type: ResourceType) -> List[str]:
        resources = await self.repository.list_resources(run.cluster.uuid)
        return [r.resource_uuid for r in resources if r.resource_type == resource_type.value]

    async def _wait_gone(self, fetch: Callable[[], Awaitable], description: str) -> None:
        await wait_until_ready(fetch, lambda found: found is None, self.delete_wait, description, sleep=self.sleep)

    # Phases

    async def _delete_pool(self, token: str, pool_id: str) -> None:
        lb_client = self.clients.loadbalancer
        await lb_client.delete_pool(token, pool_id)
        await self._wait_gone(lambda: lb_client.get_pool(token, pool_id), f"pool {pool_id} to be deleted")

    async def _delete_listener(self, token: str, listener_id: str) -> None:
        lb_client = self.clients.loadbalancer
        await lb_client.delete_listener(token, listener_id)
        await self._wait_gone(lambda: lb_client.get_listener(token, listener_id), f"listener {listener_id} to be deleted")

    async def _delete_load_balancer(self, run: _Teardown) -> None:
        base = messages.LOAD_BALANCER_DELETE_FAILED
        for pool_id in await self._recorded(run, ResourceType.POOL):
            await self._attempt(run, pool_id, base, "pool deletion", self._delete_pool, run.token, pool_id)
        for listener_id in await self._recorded(run, ResourceType.LISTENER):
            await self._attempt(
                run, listener_id, base, "listener deletion", self._delete_listener, run.token, listener_id
            )
        load_balancers = [run.cluster.load_balancer_uuid] + await self._recorded(run, ResourceType.LOADBALANCER)
        for lb_id in load_balancers:
            await self._attempt(
                run, lb_id, base, "load balancer deletion",
                self.clients.loadbalancer.delete_load_balancer, run.token, lb_id,
            )

    async def _delete_dns_record(self, run: _Teardown) -> None:
        for record_id in [run.cluster.dns_record_id] + await self._recorded(run, ResourceType.DNS_RECORD):
            await self._attempt(
                run, record_id, messages.DNS_RECORD_DELETE_FAILED, "DNS record deletion",
                self.clients.dns.delete_record, record_id,
            )

    async def _delete_floating_ip(self, run: _Teardown) -> None:
        for floating_ip_id in [run.cluster.floating_ip_uuid] + await self._recorded(run, ResourceType.FLOATING_IP):
            await self._attempt(
                run, floating_ip_id, messages.FLOATING_IP_DELETE_FAILED, "floating IP deletion",
                self.clients.network.delete_floating_ip, run.token, floating_ip_id,
            )

    async def _delete_instance(self, run: _Teardown, server_id: str) -> None:
        base = messages.NODE_GROUP_DELETE_FAILED
        try:
            port_ids = await self.clients.compute.list_interface_ports(run.token, server_id)
        except KubeForgeError as e:
            run.failures += 1
            await self.recorder.failure(run.cluster.uuid, run.cluster.project_uuid, base, "port lookup", e)
            port_ids = []
        for port_id in port_ids:
            await self._attempt(
                run, port_id, messages.NETWORK_DELETE_FAILED, "port deletion",
                self.clients.network.delete_port, run.token, port_id,
            )
        await self._attempt(
            run, server_id, base, "instance deletion", self.clients.compute.delete_server, run.token, server_id
        )

    async def _settle_for_delete(self, node_group: NodeGroup) -> None:
        """Walk a node group onto ``Deleting`` from wherever it was left."""
        status = node_group.status
        if status == Status.CREATING.value:
            await self.repository.set_node_group_status(node_group.uuid, Status.ERROR)
        elif status == Status.UPDATING.value:
            await self.repository.set_node_group_status(node_group.uuid, Status.ACTIVE)
        if status != Status.DELETING.value:
            await self.repository.set_node_group_status(node_group.uuid, Status.DELETING)

    async def _delete_nodes(self, run: _Teardown) -> None:
        base = messages.NODE_GROUP_DELETE_FAILED
        compute = self.clients.compute
        for node_group in await self.repository.list_node_groups(run.cluster.uuid):
            await self._settle_for_delete(node_group)
            if node_group.server_group_uuid:
                try:
                    members = await compute.get_server_group_members(run.token, node_group.server_group_uuid)
                except KubeForgeError as e:
                    run.failures += 1
                    await self.recorder.failure(
                        run.cluster.uuid, run.cluster.project_uuid, base, "server group lookup", e
                    )
                    members = []
                for server_id in members or []:
                    await self._delete_instance(run, server_id)
                await self._attempt(
                    run, node_group.server_group_uuid, base, "server group deletion",
                    compute.delete_server_group, run.token, node_group.server_group_uuid,
                )
            await self._attempt(
                run, node_group.security_group_uuid, messages.SECURITY_GROUP_DELETE_FAILED,
                "security group deletion",
                self.clients.network.delete_security_group, run.token, node_group.security_group_uuid,
            )
            await self.repository.set_node_group_status(node_group.uuid, Status.DELETED)
            await self.recorder.event(
                run.cluster.uuid, run.cluster.project_uuid, f"Node group {node_group.name} deleted"
            )

        # Anything recorded but no longer reachable through a server group
        for server_id in await self._recorded(run, ResourceType.INSTANCE):
            if server_id not in run.attempted:
                await self._delete_instance(run, server_id)
        for port_id in await self._recorded(run, ResourceType.PORT):
            await self._attempt(
                run, port_id, messages.NETWORK_DELETE_FAILED, "port deletion",
                self.clients.network.delete_port, run.token, port_id,
            )
        for server_group_id in await self._recorded(run, ResourceType.SERVER_GROUP):
            await self._attempt(
                run, server_group_id, base, "server group deletion",
                compute.delete_server_group, run.token, server_group_id,
            )

    async def _delete_security_groups(self, run: _Teardown) -> None:
        groups = [run.cluster.shared_security_group_uuid] + await self._recorded(run, ResourceType.SECURITY_GROUP)
        for security_group_id in groups:
            await self._attempt(
                run, security_group_id, messages.SECURITY_GROUP_DELETE_FAILED, "security group deletion",
                self.clients.network.delete_security_group, run.token, security_group_id,
            )

    async def _delete_credentials(self, run: _Teardown) -> None:
        credentials = [run.cluster.application_credential_id]
        credentials += await self._recorded(run, ResourceType.APPLICATION_CREDENTIAL)
        if not any(credentials):
            return
        user_id = run.cluster.application_credential_user_id
        if not user_id:
            try:
                user_id = await self.clients.identity.get_token_user_id(run.token)
            except KubeForgeError as e:
                run.failures += 1
                await self.recorder.failure(
                    run.cluster.uuid, run.cluster.project_uuid, messages.APPLICATION_CREDENTIAL_DELETE_FAILED,
                    "token user lookup", e,
                )
                return
        for credential_id in credentials:
            await self._attempt(
                run, credential_id, messages.APPLICATION_CREDENTIAL_DELETE_FAILED, "application credential deletion",
                self.clients.identity.delete_application_credential, run.token, user_id, credential_id,
            )
