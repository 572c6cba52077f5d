"""Cluster model."""
from sqlalchemy import Column, String, DateTime, Text, JSON
from datetime import datetime

from kubeforge.database import Base
from kubeforge.models.types import GUID, new_uuid


class Cluster(Base):
    """Tenant Kubernetes cluster provisioned on OpenStack."""

    __tablename__ = "clusters"

    uuid = Column(GUID, primary_key=True, default=new_uuid)
    name = Column(String(50), nullable=False)
    kubernetes_version = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False)  # Creating, Active, Updating, Deleting, Deleted, Error
    project_uuid = Column(String(64), nullable=False, index=True)

    # Bootstrap secrets handed to nodes (encrypted with ENCRYPTION_KEY)
    register_token = Column(Text, nullable=False)
    agent_token = Column(Text, nullable=False)

    subnets = Column(JSON, nullable=False, default=list)
    node_keypair_name = Column(String(140), nullable=False)
    api_access = Column(String(10), nullable=False)  # public, private
    allowed_cidrs = Column(JSON, nullable=False, default=list)
    master_flavor_uuid = Column(String(64), nullable=False)

    # Cloud identifiers, empty until the step that creates them succeeds
    load_balancer_uuid = Column(String(64), nullable=False, default="")
    floating_ip_uuid = Column(String(64), nullable=False, default="")
    shared_security_group_uuid = Column(String(64), nullable=False, default="")
    application_credential_id = Column(String(64), nullable=False, default="")
    application_credential_secret = Column(Text, nullable=False, default="")  # encrypted
    application_credential_user_id = Column(String(64), nullable=False, default="")
    endpoint = Column(String(255), nullable=False, default="")
    dns_record_id = Column(String(64), nullable=False, default="")
    certificate_expire_date = Column(DateTime, nullable=True)

    # Step cursors used to recover interrupted runs
    creation_step = Column(String(32), nullable=False, default="")
    delete_state = Column(String(32), nullable=False, default="")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)
