"""Node group model."""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, JSON
from datetime import datetime

from kubeforge.database import Base
from kubeforge.models.types import GUID, new_uuid


class NodeGroup(Base):
    """Homogeneous pool of instances inside a cluster.

    Rows are never removed; deleted groups keep their history with
    status ``Deleted``.
    """

    __tablename__ = "node_groups"

    uuid = Column(GUID, primary_key=True, default=new_uuid)
    cluster_uuid = Column(GUID, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(10), nullable=False)  # master, worker
    status = Column(String(20), nullable=False)

    labels = Column(JSON, nullable=False, default=list)
    taints = Column(JSON, nullable=False, default=list)

    min_size = Column(Integer, nullable=False)
    max_size = Column(Integer, nullable=False)
    desired_nodes = Column(Integer, nullable=False)
    nodes_to_remove = Column(JSON, nullable=False, default=list)  # instance ids pending scale-down

    disk_size_gb = Column(Integer, nullable=False)
    flavor_uuid = Column(String(64), nullable=False)

    # Backing cloud resources, filled once provisioned
    server_group_uuid = Column(String(64), nullable=False, default="")
    security_group_uuid = Column(String(64), nullable=False, default="")

    is_hidden = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)
