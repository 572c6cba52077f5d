"""Cloud resource and kubeconfig models."""
from sqlalchemy import Column, String, DateTime, Integer, Text
from datetime import datetime
from enum import Enum

from kubeforge.database import Base
from kubeforge.models.types import GUID


class ResourceType(str, Enum):
    APPLICATION_CREDENTIAL = "APPLICATION_CREDENTIAL"
    LOADBALANCER = "LOADBALANCER"
    LISTENER = "LISTENER"
    POOL = "POOL"
    FLOATING_IP = "FLOATING_IP"
    SECURITY_GROUP = "SECURITY_GROUP"
    SERVER_GROUP = "SERVER_GROUP"
    PORT = "PORT"
    INSTANCE = "INSTANCE"
    DNS_RECORD = "DNS_RECORD"


class ClusterResource(Base):
    """Cloud resource created on behalf of a cluster.

    Written as soon as the cloud API confirms creation so teardown can find
    everything a partially failed run left behind.
    """

    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cluster_uuid = Column(GUID, nullable=False, index=True)
    resource_type = Column(String(32), nullable=False)
    resource_uuid = Column(String(64), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)


class Kubeconfig(Base):
    """Admin kubeconfig pushed back by the cluster's control plane."""

    __tablename__ = "kubeconfigs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cluster_uuid = Column(GUID, nullable=False, unique=True)
    kubeconfig = Column(Text, nullable=False)  # base64 text, encrypted
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
