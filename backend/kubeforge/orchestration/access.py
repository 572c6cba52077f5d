"""Tenant authorization against a cluster's owning project."""
from kubeforge.exceptions import AuthorizationError, NotFoundError
from kubeforge.models import Cluster


class ClusterAccess:
    def __init__(self, repository, identity):
        self.repository = repository
        self.identity = identity

    async def authorize(self, token: str, cluster_uuid: str) -> Cluster:
        """Load a cluster and confirm ``token`` belongs to its project."""
        if not token:
            raise AuthorizationError("Authentication token is missing")
        cluster = await self.repository.get_cluster(cluster_uuid)
        if not cluster:
            raise NotFoundError(f"Cluster {cluster_uuid} not found")
        await self.identity.check_auth_token(token, cluster.project_uuid)
        return cluster
