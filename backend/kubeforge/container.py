"""Wiring of settings, persistence, cloud clients and orchestrators."""
import asyncio
from typing import Optional

from kubeforge.clients.bundle import CloudClients, build_cloud_clients
from kubeforge.config import Settings, settings as default_settings
from kubeforge.orchestration.access import ClusterAccess
from kubeforge.orchestration.audit import Recorder
from kubeforge.orchestration.create import ClusterCreator
from kubeforge.orchestration.jobs import ClusterLocks, JobRunner
from kubeforge.orchestration.node_groups import NodeGroupManager
from kubeforge.orchestration.nodes import NodeLauncher
from kubeforge.orchestration.pools import WorkerPoolProvisioner
from kubeforge.orchestration.teardown import ClusterTeardown
from kubeforge.repository import ClusterRepository
from kubeforge.utils.crypto import CryptoService, get_crypto_service


class Container:
    """Everything an orchestration needs, built once per process."""

    def __init__(
        self,
        settings: Settings,
        session_factory,
        clients: CloudClients,
        crypto: CryptoService,
        sleep=asyncio.sleep,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.clients = clients
        self.crypto = crypto

        self.repository = ClusterRepository(session_factory)
        self.locks = ClusterLocks()
        self.runner = JobRunner(self.locks)
        self.recorder = Recorder(self.repository)
        self.access = ClusterAccess(self.repository, clients.identity)
        self.launcher = NodeLauncher(clients, self.repository, crypto, settings)
        self.node_groups = NodeGroupManager(self.repository, clients, self.access, self.recorder, self.launcher)
        self.creator = ClusterCreator(
            self.repository, clients, self.node_groups, self.launcher, self.recorder, crypto, settings, sleep=sleep
        )
        self.teardown = ClusterTeardown(self.repository, clients, self.access, self.recorder, settings, sleep=sleep)
        self.pools = WorkerPoolProvisioner(
            self.repository, clients, self.access, self.recorder, self.launcher, self.node_groups
        )

    async def close(self) -> None:
        await self.runner.shutdown(self.settings.SHUTDOWN_GRACE_SECONDS)
        await self.clients.aclose()


_container: Optional[Container] = None


def get_container() -> Container:
    """Get or create the process-wide container."""
    global _container
    if _container is None:
        from kubeforge.database import AsyncSessionLocal

        _container = Container(
            default_settings, AsyncSessionLocal, build_cloud_clients(default_settings), get_crypto_service()
        )
    return _container


def set_container(container: Optional[Container]) -> None:
    """Replace the process-wide container (``None`` resets it)."""
    global _container
    _container = container
