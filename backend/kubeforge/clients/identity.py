"""Keystone (identity v3) client."""
from typing import List, Tuple
import logging
import uuid

from kubeforge.clients.base import OpenStackService
from kubeforge.exceptions import AuthorizationError, CollaboratorError

logger = logging.getLogger(__name__)


class IdentityService(OpenStackService):
    service_name = "identity"

    async def check_auth_token(self, token: str, project_uuid: str) -> None:
        """Raise ``AuthorizationError`` unless ``token`` can read ``project_uuid``."""
        if not token:
            raise AuthorizationError("Authentication token is missing")
        if not project_uuid:
            raise AuthorizationError("Cluster has no owning project")

        response = await self._send("GET", f"v3/projects/{project_uuid}", token, (200, 401, 403))
        if response.status_code != 200:
            raise AuthorizationError("Authentication token validation failed")
        project = response.json().get("project", {})
        if project.get("id") != project_uuid:
            logger.warning(f"Token project mismatch: expected {project_uuid}, got {project.get('id')}")
            raise AuthorizationError("Invalid authentication token provided")

    async def get_token_user_id(self, token: str) -> str:
        data = await self._request("GET", "v3/auth/tokens", token, headers={"X-Subject-Token": token})
        user_id = data.get("token", {}).get("user", {}).get("id")
        if not user_id:
            raise CollaboratorError(self.service_name, "GET v3/auth/tokens", detail="token has no user")
        return user_id

    async def create_application_credential(self, token: str, user_id: str, name: str, roles: List[str]) -> Tuple[str, str]:
        """Mint a role-scoped credential and return ``(id, secret)``."""
        secret = str(uuid.uuid4())
        body = {
            "application_credential": {
                "name": name,
                "secret": secret,
                "roles": [{"name": role} for role in roles],
            }
        }
        data = await self._request(
            "POST", f"v3/users/{user_id}/application_credentials", token, expected=(201,), json=body
        )
        return data["application_credential"]["id"], secret

    async def delete_application_credential(self, token: str, user_id: str, credential_id: str) -> bool:
        return await self._delete(f"v3/users/{user_id}/application_credentials/{credential_id}", token)
