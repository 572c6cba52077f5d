"""Shared plumbing for the OpenStack REST clients."""
from typing import Any, Dict, Iterable, Optional
import logging

import httpx

from kubeforge.exceptions import CollaboratorError

logger = logging.getLogger(__name__)


class OpenStackService:
    """Thin call-and-decode wrapper around one OpenStack endpoint.

    Calls authenticate with the caller's token (``X-Auth-Token``). Any
    response outside ``expected`` and any transport failure become a
    ``CollaboratorError``.
    """

    service_name = "openstack"

    def __init__(self, http: httpx.AsyncClient, endpoint: str):
        self.http = http
        self.endpoint = endpoint.rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self.endpoint}/{path.lstrip('/')}"

    def _headers(self, token: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"X-Auth-Token": token, "Content-Type": "application/json"}
        if extra:
            headers.update(extra)
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        token: str,
        expected: Iterable[int],
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        operation = f"{method} {path}"
        try:
            response = await self.http.request(method, self._url(path), json=json, headers=self._headers(token, headers))
        except httpx.HTTPError as e:
            logger.error(f"{self.service_name} {operation} transport error: {type(e).__name__}: {e}")
            raise CollaboratorError(self.service_name, operation, detail=str(e)) from e

        if response.status_code not in expected and response.status_code != 404:
            logger.error(f"{self.service_name} {operation} returned {response.status_code}: {response.text[:300]}")
            raise CollaboratorError(self.service_name, operation, response.status_code, response.text[:300])
        return response

    async def _request(self, method: str, path: str, token: str, expected: Iterable[int] = (200,), **kwargs) -> Dict[str, Any]:
        """Send a request and decode its JSON body; 404 is an error here."""
        expected = tuple(expected)
        response = await self._send(method, path, token, expected, **kwargs)
        if response.status_code not in expected:
            raise CollaboratorError(self.service_name, f"{method} {path}", response.status_code, "not found")
        if not response.content:
            return {}
        return response.json()

    async def _get_optional(self, path: str, token: str, **kwargs) -> Optional[Dict[str, Any]]:
        """GET that answers ``None`` for a missing resource."""
        response = await self._send("GET", path, token, (200,), **kwargs)
        if response.status_code == 404:
            return None
        return response.json()

    async def _delete(self, path: str, token: str, expected: Iterable[int] = (204,), **kwargs) -> bool:
        """DELETE a resource. Returns False when it was already gone."""
        response = await self._send("DELETE", path, token, tuple(expected), **kwargs)
        if response.status_code == 404:
            logger.info(f"{self.service_name} DELETE {path}: already gone")
            return False
        return True
