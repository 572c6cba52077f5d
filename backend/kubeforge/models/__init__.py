"""Database models."""
from kubeforge.models.cluster import Cluster
from kubeforge.models.node_group import NodeGroup
from kubeforge.models.audit_log import AuditLog, ErrorRecord
from kubeforge.models.resource import ClusterResource, Kubeconfig, ResourceType

__all__ = ["Cluster", "NodeGroup", "AuditLog", "ErrorRecord", "ClusterResource", "Kubeconfig", "ResourceType"]
