"""Audit log and error history models."""
from sqlalchemy import Column, String, DateTime, Integer, Text
from datetime import datetime

from kubeforge.database import Base
from kubeforge.models.types import GUID


class AuditLog(Base):
    """Milestone reached by an orchestration run. Never updated."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cluster_uuid = Column(GUID, nullable=False, index=True)
    project_uuid = Column(String(64), nullable=False)
    event = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class ErrorRecord(Base):
    """Failed orchestration step. Never updated."""

    __tablename__ = "errors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cluster_uuid = Column(GUID, nullable=False, index=True)
    error_message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
