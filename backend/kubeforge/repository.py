"""Persistence access used by the orchestrators.

Every method opens its own short session and commits before returning, so
a long-running orchestration never holds a transaction across cloud calls.
"""
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy import select

from kubeforge.exceptions import NotFoundError
from kubeforge.models import AuditLog, Cluster, ClusterResource, ErrorRecord, Kubeconfig, NodeGroup
from kubeforge.orchestration.state import Status, check_transition

logger = logging.getLogger(__name__)


class ClusterRepository:
    """Cluster, node group, history and resource records."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    # Clusters

    async def add_cluster(self, cluster: Cluster) -> Cluster:
        async with self.session_factory() as session:
            session.add(cluster)
            await session.commit()
            await session.refresh(cluster)
            return cluster

    async def get_cluster(self, cluster_uuid: str) -> Optional[Cluster]:
        async with self.session_factory() as session:
            result = await session.execute(select(Cluster).where(Cluster.uuid == cluster_uuid))
            return result.scalar_one_or_none()

    async def list_clusters_by_status(self, status: Status) -> List[Cluster]:
        async with self.session_factory() as session:
            result = await session.execute(select(Cluster).where(Cluster.status == Status(status).value))
            return list(result.scalars().all())

    async def list_clusters(self, project_uuid: str, include_deleted: bool = False) -> List[Cluster]:
        async with self.session_factory() as session:
            stmt = select(Cluster).where(Cluster.project_uuid == project_uuid)
            if not include_deleted:
                stmt = stmt.where(Cluster.status != Status.DELETED.value)
            result = await session.execute(stmt.order_by(Cluster.created_at.desc()))
            return list(result.scalars().all())

    async def update_cluster(self, cluster_uuid: str, **fields) -> Cluster:
        async with self.session_factory() as session:
            result = await session.execute(select(Cluster).where(Cluster.uuid == cluster_uuid))
            cluster = result.scalar_one_or_none()
            if not cluster:
                raise NotFoundError(f"Cluster {cluster_uuid} not found")
            for key, value in fields.items():
                setattr(cluster, key, value)
            cluster.updated_at = datetime.utcnow()
            await session.commit()
            await session.refresh(cluster)
            return cluster

    async def set_cluster_status(self, cluster_uuid: str, target: Status) -> Cluster:
        """Move a cluster along a legal status edge."""
        target = Status(target)
        async with self.session_factory() as session:
            result = await session.execute(select(Cluster).where(Cluster.uuid == cluster_uuid))
            cluster = result.scalar_one_or_none()
            if not cluster:
                raise NotFoundError(f"Cluster {cluster_uuid} not found")
            check_transition("cluster", cluster.status, target)
            cluster.status = target.value
            cluster.updated_at = datetime.utcnow()
            if target == Status.DELETED:
                cluster.deleted_at = datetime.utcnow()
            await session.commit()
            await session.refresh(cluster)
            logger.info(f"Cluster {cluster_uuid} is now {target.value}")
            return cluster

    # Node groups

    async def add_node_group(self, node_group: NodeGroup) -> NodeGroup:
        async with self.session_factory() as session:
            session.add(node_group)
            await session.commit()
            await session.refresh(node_group)
            return node_group

    async def get_node_group(self, node_group_uuid: str) -> Optional[NodeGroup]:
        async with self.session_factory() as session:
            result = await session.execute(select(NodeGroup).where(NodeGroup.uuid == node_group_uuid))
            return result.scalar_one_or_none()

    async def list_node_groups(self, cluster_uuid: str, include_deleted: bool = False) -> List[NodeGroup]:
        async with self.session_factory() as session:
            stmt = select(NodeGroup).where(NodeGroup.cluster_uuid == cluster_uuid)
            if not include_deleted:
                stmt = stmt.where(NodeGroup.status != Status.DELETED.value)
            result = await session.execute(stmt.order_by(NodeGroup.created_at))
            return list(result.scalars().all())

    async def list_node_groups_by_status(self, status: Status) -> List[NodeGroup]:
        async with self.session_factory() as session:
            result = await session.execute(select(NodeGroup).where(NodeGroup.status == Status(status).value))
            return list(result.scalars().all())

    async def update_node_group(self, node_group_uuid: str, **fields) -> NodeGroup:
        async with self.session_factory() as session:
            result = await session.execute(select(NodeGroup).where(NodeGroup.uuid == node_group_uuid))
            node_group = result.scalar_one_or_none()
            if not node_group:
                raise NotFoundError(f"Node group {node_group_uuid} not found")
            for key, value in fields.items():
                setattr(node_group, key, value)
            node_group.updated_at = datetime.utcnow()
            await session.commit()
            await session.refresh(node_group)
            return node_group

    async def set_node_group_status(self, node_group_uuid: str, target: Status, **fields) -> NodeGroup:
        """Move a node group along a legal status edge, updating ``fields`` with it."""
        target = Status(target)
        async with self.session_factory() as session:
            result = await session.execute(select(NodeGroup).where(NodeGroup.uuid == node_group_uuid))
            node_group = result.scalar_one_or_none()
            if not node_group:
                raise NotFoundError(f"Node group {node_group_uuid} not found")
            check_transition("node group", node_group.status, target)
            for key, value in fields.items():
                setattr(node_group, key, value)
            node_group.status = target.value
            node_group.updated_at = datetime.utcnow()
            if target == Status.DELETED:
                node_group.is_hidden = True
                node_group.deleted_at = datetime.utcnow()
            await session.commit()
            await session.refresh(node_group)
            return node_group

    # History

    async def add_audit(self, cluster_uuid: str, project_uuid: str, event: str) -> None:
        async with self.session_factory() as session:
            session.add(AuditLog(cluster_uuid=cluster_uuid, project_uuid=project_uuid, event=event))
            await session.commit()

    async def add_error(self, cluster_uuid: str, message: str) -> None:
        async with self.session_factory() as session:
            session.add(ErrorRecord(cluster_uuid=cluster_uuid, error_message=message))
            await session.commit()

    async def list_audit_logs(self, cluster_uuid: str) -> List[AuditLog]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(AuditLog).where(AuditLog.cluster_uuid == cluster_uuid).order_by(AuditLog.id)
            )
            return list(result.scalars().all())

    async def list_errors(self, cluster_uuid: str) -> List[ErrorRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ErrorRecord).where(ErrorRecord.cluster_uuid == cluster_uuid).order_by(ErrorRecord.id)
            )
            return list(result.scalars().all())

    # Resources

    async def record_resource(self, cluster_uuid: str, resource_type: str, resource_uuid: str) -> None:
        async with self.session_factory() as session:
            session.add(ClusterResource(
                cluster_uuid=cluster_uuid,
                resource_type=getattr(resource_type, "value", resource_type),
                resource_uuid=resource_uuid,
            ))
            await session.commit()

    async def list_resources(self, cluster_uuid: str, include_deleted: bool = False) -> List[ClusterResource]:
        async with self.session_factory() as session:
            stmt = select(ClusterResource).where(ClusterResource.cluster_uuid == cluster_uuid)
            if not include_deleted:
                stmt = stmt.where(ClusterResource.deleted_at.is_(None))
            result = await session.execute(stmt.order_by(ClusterResource.id))
            return list(result.scalars().all())

    async def mark_resource_deleted(self, cluster_uuid: str, resource_uuid: str) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ClusterResource).where(
                    ClusterResource.cluster_uuid == cluster_uuid,
                    ClusterResource.resource_uuid == resource_uuid,
                    ClusterResource.deleted_at.is_(None),
                )
            )
            for resource in result.scalars().all():
                resource.deleted_at = datetime.utcnow()
            await session.commit()

    # Kubeconfigs

    async def get_kubeconfig(self, cluster_uuid: str) -> Optional[Kubeconfig]:
        async with self.session_factory() as session:
            result = await session.execute(select(Kubeconfig).where(Kubeconfig.cluster_uuid == cluster_uuid))
            return result.scalar_one_or_none()

    async def save_kubeconfig(self, cluster_uuid: str, encrypted_kubeconfig: str) -> Kubeconfig:
        """Create the cluster's kubeconfig record or replace its content."""
        async with self.session_factory() as session:
            result = await session.execute(select(Kubeconfig).where(Kubeconfig.cluster_uuid == cluster_uuid))
            kubeconfig = result.scalar_one_or_none()
            if kubeconfig:
                kubeconfig.kubeconfig = encrypted_kubeconfig
                kubeconfig.updated_at = datetime.utcnow()
            else:
                kubeconfig = Kubeconfig(cluster_uuid=cluster_uuid, kubeconfig=encrypted_kubeconfig)
                session.add(kubeconfig)
            await session.commit()
            await session.refresh(kubeconfig)
            return kubeconfig
