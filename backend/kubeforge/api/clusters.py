"""Cluster lifecycle endpoints."""
from datetime import datetime
from ipaddress import ip_network
from typing import List, Optional
import base64
import binascii
import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response
from pydantic import BaseModel, Field, field_validator, model_validator

from kubeforge.api.dependencies import get_auth_token
from kubeforge.container import Container, get_container
from kubeforge.orchestration.create import ClusterRequest
from kubeforge.orchestration.state import APIAccess

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/clusters", tags=["Clusters"])


class ClusterCreate(BaseModel):
    project_id: str
    name: str = Field(min_length=1, max_length=50)
    kubernetes_version: str = Field(min_length=1, max_length=30)
    subnet_ids: List[str] = Field(min_length=1)
    master_flavor_id: str
    worker_flavor_id: str
    worker_min_size: int = Field(ge=1)
    worker_max_size: int = Field(ge=1)
    worker_disk_size_gb: int = Field(ge=20)
    node_keypair_name: str = Field(min_length=1, max_length=140)
    api_access: APIAccess = APIAccess.PUBLIC
    allowed_cidrs: List[str] = []

    @field_validator("allowed_cidrs")
    @classmethod
    def validate_cidrs(cls, value: List[str]) -> List[str]:
        for cidr in value:
            try:
                ip_network(cidr, strict=False)
            except ValueError:
                raise ValueError(f"Invalid CIDR: {cidr}")
        return value

    @model_validator(mode="after")
    def validate_sizes(self):
        if self.worker_min_size > self.worker_max_size:
            raise ValueError("worker_min_size must not exceed worker_max_size")
        return self


class ClusterAccepted(BaseModel):
    cluster_id: str
    status: str


class ClusterResponse(BaseModel):
    id: str
    name: str
    project_id: str
    kubernetes_version: str
    status: str
    api_access: str
    endpoint: str
    subnets: List[str]
    allowed_cidrs: List[str]
    creation_step: str
    delete_state: str
    created_at: datetime
    updated_at: Optional[datetime]


class KubeconfigPush(BaseModel):
    kubeconfig: str

    @field_validator("kubeconfig")
    @classmethod
    def validate_base64(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("kubeconfig must be base64 encoded")
        return value


class ErrorResponse(BaseModel):
    message: str
    created_at: datetime


class AuditLogResponse(BaseModel):
    event: str
    created_at: datetime


def _to_response(cluster) -> ClusterResponse:
    return ClusterResponse(
        id=cluster.uuid,
        name=cluster.name,
        project_id=cluster.project_uuid,
        kubernetes_version=cluster.kubernetes_version,
        status=cluster.status,
        api_access=cluster.api_access,
        endpoint=cluster.endpoint or "",
        subnets=list(cluster.subnets or []),
        allowed_cidrs=list(cluster.allowed_cidrs or []),
        creation_step=cluster.creation_step or "",
        delete_state=cluster.delete_state or "",
        created_at=cluster.created_at,
        updated_at=cluster.updated_at,
    )


@router.post("", response_model=ClusterAccepted, status_code=202)
async def create_cluster(
    data: ClusterCreate,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    """Accept a cluster and provision it in the background."""
    request = ClusterRequest(
        project_uuid=data.project_id,
        name=data.name,
        kubernetes_version=data.kubernetes_version,
        subnet_ids=list(data.subnet_ids),
        master_flavor_uuid=data.master_flavor_id,
        worker_flavor_uuid=data.worker_flavor_id,
        worker_min_size=data.worker_min_size,
        worker_max_size=data.worker_max_size,
        worker_disk_size_gb=data.worker_disk_size_gb,
        node_keypair_name=data.node_keypair_name,
        api_access=data.api_access,
        allowed_cidrs=list(data.allowed_cidrs),
    )
    cluster_uuid = await container.creator.prepare(token, request)
    await container.runner.submit(
        cluster_uuid, "cluster create", lambda: container.creator.run(token, cluster_uuid, request)
    )
    return ClusterAccepted(cluster_id=cluster_uuid, status="Creating")


@router.get("", response_model=List[ClusterResponse])
async def list_clusters(
    project_id: str = Query(...),
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    """List a project's clusters."""
    await container.clients.identity.check_auth_token(token, project_id)
    return [_to_response(cluster) for cluster in await container.repository.list_clusters(project_id)]


@router.get("/{cluster_id}", response_model=ClusterResponse)
async def get_cluster(
    cluster_id: str,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    cluster = await container.access.authorize(token, cluster_id)
    return _to_response(cluster)


@router.delete("/{cluster_id}", response_model=ClusterAccepted, status_code=202)
async def destroy_cluster(
    cluster_id: str,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    """Destroy a cluster in the background; repeating it resumes an interrupted destroy."""
    await container.runner.submit(
        cluster_id,
        "cluster destroy",
        lambda _: container.teardown.run(token, cluster_id),
        prepare=lambda: container.teardown.prepare(token, cluster_id),
    )
    return ClusterAccepted(cluster_id=cluster_id, status="Deleting")


@router.get("/{cluster_id}/kubeconfig")
async def download_kubeconfig(
    cluster_id: str,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    """Download the cluster's kubeconfig as a YAML attachment."""
    cluster = await container.access.authorize(token, cluster_id)
    record = await container.repository.get_kubeconfig(cluster.uuid)
    if not record:
        raise HTTPException(status_code=404, detail="Kubeconfig not available yet")
    content = base64.b64decode(container.crypto.decrypt(record.kubeconfig))
    return Response(
        content=content,
        media_type="application/x-yaml",
        headers={"Content-Disposition": f'attachment; filename="{cluster.name}-kubeconfig.yaml"'},
    )


@router.post("/{cluster_id}/kubeconfig", status_code=204)
async def push_kubeconfig(
    cluster_id: str,
    data: KubeconfigPush,
    x_cluster_agent_token: Optional[str] = Header(None),
    container: Container = Depends(get_container),
):
    """Store the kubeconfig pushed by the in-cluster agent."""
    cluster = await container.repository.get_cluster(cluster_id)
    if not cluster:
        raise HTTPException(status_code=404, detail="Cluster not found")
    if not x_cluster_agent_token or not hmac.compare_digest(
        x_cluster_agent_token, container.crypto.decrypt(cluster.agent_token)
    ):
        raise HTTPException(status_code=401, detail="Invalid cluster agent token")
    await container.repository.save_kubeconfig(cluster.uuid, container.crypto.encrypt(data.kubeconfig))
    logger.info(f"[{cluster.uuid}] Kubeconfig stored")
    return Response(status_code=204)


@router.get("/{cluster_id}/errors", response_model=List[ErrorResponse])
async def list_errors(
    cluster_id: str,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    cluster = await container.access.authorize(token, cluster_id)
    return [
        ErrorResponse(message=error.error_message, created_at=error.created_at)
        for error in await container.repository.list_errors(cluster.uuid)
    ]


@router.get("/{cluster_id}/audit-logs", response_model=List[AuditLogResponse])
async def list_audit_logs(
    cluster_id: str,
    token: str = Depends(get_auth_token),
    container: Container = Depends(get_container),
):
    cluster = await container.access.authorize(token, cluster_id)
    return [
        AuditLogResponse(event=entry.event, created_at=entry.created_at)
        for entry in await container.repository.list_audit_logs(cluster.uuid)
    ]
