"""Domain exceptions.

Every exception carries the HTTP status the API answers with when it
escapes a route; see ``kubeforge.main.create_app``.
"""
from typing import Optional


class KubeForgeError(Exception):
    """Base class for all errors raised by the service."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationError(KubeForgeError):
    """Token missing, invalid, or not scoped to the cluster's project."""

    status_code = 401


class NotFoundError(KubeForgeError):
    status_code = 404


class InvalidRequestError(KubeForgeError):
    """Request rejected before any orchestration starts."""

    status_code = 422


class ClusterBusyError(KubeForgeError):
    """Another orchestration already holds the cluster lease."""

    status_code = 409

    def __init__(self, cluster_uuid: str):
        super().__init__(f"Cluster {cluster_uuid} has an operation in progress")
        self.cluster_uuid = cluster_uuid


class InvalidTransitionError(KubeForgeError):
    status_code = 409

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(f"Illegal {entity} status transition {current} -> {target}")
        self.entity = entity
        self.current = current
        self.target = target


class CollaboratorError(KubeForgeError):
    """Cloud or DNS API answered unexpectedly or could not be reached."""

    status_code = 502

    def __init__(self, service: str, operation: str, status: Optional[int] = None, detail: str = ""):
        message = f"{service} {operation} failed"
        if status is not None:
            message += f" with status {status}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.service = service
        self.operation = operation
        self.status = status
        self.detail = detail


class WaitTimeoutError(KubeForgeError):
    """Wait-until-ready budget exhausted."""

    status_code = 504

    def __init__(self, description: str, attempts: int):
        super().__init__(f"Timed out waiting for {description} after {attempts} attempts")
        self.description = description
        self.attempts = attempts


class TerminalStatusError(KubeForgeError):
    """Polled resource reported a status it can never recover from."""

    status_code = 502

    def __init__(self, description: str, status: str):
        super().__init__(f"{description} reported terminal status {status}")
        self.description = description
        self.status = status
