"""Background orchestration jobs and the per-cluster lease."""
import asyncio
import functools
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Optional

from kubeforge.exceptions import ClusterBusyError
from kubeforge.orchestration import messages
from kubeforge.orchestration.state import NodeGroupType, Status

logger = logging.getLogger(__name__)


class ClusterLocks:
    """One exclusive in-process lease per cluster UUID."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_held(self, cluster_uuid: str) -> bool:
        lock = self._locks.get(cluster_uuid)
        return lock is not None and lock.locked()

    async def try_acquire(self, cluster_uuid: str) -> None:
        """Take the lease or raise ``ClusterBusyError``; never waits."""
        lock = self._locks.setdefault(cluster_uuid, asyncio.Lock())
        if lock.locked():
            raise ClusterBusyError(cluster_uuid)
        # An unlocked asyncio.Lock is acquired without yielding
        await lock.acquire()

    def release(self, cluster_uuid: str) -> None:
        # Entries only live while held
        lock = self._locks.pop(cluster_uuid, None)
        if lock is not None and lock.locked():
            lock.release()

    @asynccontextmanager
    async def hold(self, cluster_uuid: str):
        await self.try_acquire(cluster_uuid)
        try:
            yield
        finally:
            self.release(cluster_uuid)


class JobRunner:
    """Runs one orchestration per cluster as a fire-and-return asyncio task."""

    def __init__(self, locks: ClusterLocks):
        self.locks = locks
        self._tasks: Dict[str, asyncio.Task] = {}

    async def submit(
        self,
        cluster_uuid: str,
        name: str,
        job: Callable[..., Awaitable[None]],
        prepare: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> Any:
        """Take the cluster lease and start ``job`` in the background.

        ``prepare`` runs first, under the lease; its result is passed to
        ``job`` and returned to the caller. If it raises, the lease is
        released and nothing starts.
        """
        await self.locks.try_acquire(cluster_uuid)
        if prepare is None:
            call = job
            result = None
        else:
            try:
                result = await prepare()
            except BaseException:
                self.locks.release(cluster_uuid)
                raise
            call = functools.partial(job, result)
        task = asyncio.create_task(self._run(cluster_uuid, name, call), name=f"{name}:{cluster_uuid}")
        self._tasks[cluster_uuid] = task
        logger.info(f"Started {name} for cluster {cluster_uuid}")
        return result

    async def _run(self, cluster_uuid: str, name: str, job: Callable[[], Awaitable[None]]) -> None:
        try:
            await job()
            logger.info(f"Finished {name} for cluster {cluster_uuid}")
        except asyncio.CancelledError:
            logger.warning(f"{name} for cluster {cluster_uuid} was cancelled")
            raise
        except Exception:
            # Orchestrators record their own step failures; this is the last stop for anything else
            logger.exception(f"{name} for cluster {cluster_uuid} crashed")
        finally:
            self._tasks.pop(cluster_uuid, None)
            self.locks.release(cluster_uuid)

    @property
    def running(self) -> int:
        return len(self._tasks)

    async def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for running jobs; returns False if some were still running at ``timeout``."""
        tasks = list(self._tasks.values())
        if not tasks:
            return True
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        return not pending

    async def shutdown(self, grace: float) -> None:
        if not await self.join(timeout=grace):
            logger.warning(f"Cancelling {self.running} unfinished job(s)")
            tasks = list(self._tasks.values())
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)


async def recover_interrupted(repository, recorder) -> int:
    """Settle clusters left mid-flight by a previous process.

    ``Creating`` clusters (and their ``Creating`` node groups) move to
    ``Error``. ``Deleting`` clusters keep their DeleteState checkpoint so a
    repeated destroy resumes where the last run stopped. ``Updating``
    node groups return to ``Active``.
    """
    recovered = 0
    for cluster in await repository.list_clusters_by_status(Status.CREATING):
        await recorder.failure(
            cluster.uuid, cluster.project_uuid, messages.CLUSTER_CREATE_INTERRUPTED,
            f"creation step {cluster.creation_step or 'INITIAL'}",
            RuntimeError("process restarted"),
        )
        await repository.set_cluster_status(cluster.uuid, Status.ERROR)
        for node_group in await repository.list_node_groups(cluster.uuid):
            if node_group.status == Status.CREATING.value:
                await repository.set_node_group_status(node_group.uuid, Status.ERROR)
        recovered += 1

    for cluster in await repository.list_clusters_by_status(Status.DELETING):
        await recorder.failure(
            cluster.uuid, cluster.project_uuid, messages.CLUSTER_DESTROY_INTERRUPTED,
            f"delete phase {cluster.delete_state or 'INITIAL'}",
            RuntimeError("process restarted"),
        )
        recovered += 1

    # Tenant worker pools interrupted while provisioning
    for cluster in await repository.list_clusters_by_status(Status.ACTIVE):
        for node_group in await repository.list_node_groups(cluster.uuid):
            if node_group.status == Status.CREATING.value and node_group.type == NodeGroupType.WORKER.value:
                await recorder.failure(
                    cluster.uuid, cluster.project_uuid, messages.NODE_GROUP_CREATE_FAILED,
                    f"provisioning of node group {node_group.name}",
                    RuntimeError("process restarted"),
                )
                await repository.set_node_group_status(node_group.uuid, Status.ERROR)
                recovered += 1

    # Scale intent is committed before the Updating window closes
    for node_group in await repository.list_node_groups_by_status(Status.UPDATING):
        await repository.set_node_group_status(node_group.uuid, Status.ACTIVE)
        cluster = await repository.get_cluster(node_group.cluster_uuid)
        await recorder.event(
            cluster.uuid, cluster.project_uuid, f"Node group {node_group.name} returned to Active after a restart"
        )
        recovered += 1

    if recovered:
        logger.info(f"Recovered {recovered} interrupted orchestration(s)")
    return recovered
