"""Audit trail and error history writes shared by the orchestrators."""
import logging

from kubeforge.orchestration.messages import error_message

logger = logging.getLogger(__name__)


class Recorder:
    def __init__(self, repository):
        self.repository = repository

    async def event(self, cluster_uuid: str, project_uuid: str, event: str) -> None:
        logger.info(f"[{cluster_uuid}] {event}")
        await self.repository.add_audit(cluster_uuid, project_uuid, event)

    async def failure(
        self, cluster_uuid: str, project_uuid: str, base: str, operation: str, error: Exception
    ) -> str:
        """Write an ErrorRecord and an audit entry for a failed step; returns the message."""
        message = error_message(base, operation, cluster_uuid, details=str(error))
        logger.error(f"[{cluster_uuid}] {message}")
        await self.repository.add_error(cluster_uuid, message)
        await self.repository.add_audit(cluster_uuid, project_uuid, f"{operation} failed: {error}")
        return message
