"""Cloudflare DNS client."""
from typing import Tuple
import logging

import httpx

from kubeforge.exceptions import CollaboratorError

logger = logging.getLogger(__name__)


class DNSService:
    """A-record management in one Cloudflare zone."""

    service_name = "dns"

    def __init__(self, http: httpx.AsyncClient, api_url: str, api_token: str, zone_id: str, ttl: int = 3600):
        self.http = http
        self.api_url = api_url.rstrip("/")
        self.api_token = api_token
        self.zone_id = zone_id
        self.ttl = ttl

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_token}", "Content-Type": "application/json"}

    async def _call(self, method: str, path: str, expected: Tuple[int, ...], json: dict = None) -> httpx.Response:
        operation = f"{method} {path}"
        try:
            response = await self.http.request(
                method, f"{self.api_url}/{path}", json=json, headers=self._headers()
            )
        except httpx.HTTPError as e:
            logger.error(f"dns {operation} transport error: {type(e).__name__}: {e}")
            raise CollaboratorError(self.service_name, operation, detail=str(e)) from e
        if response.status_code not in expected:
            logger.error(f"dns {operation} returned {response.status_code}: {response.text[:300]}")
            raise CollaboratorError(self.service_name, operation, response.status_code, response.text[:300])
        return response

    async def create_a_record(self, name: str, address: str, comment: str) -> Tuple[str, str]:
        """Create an unproxied A record; returns ``(record_id, resolved_name)``."""
        body = {
            "type": "A",
            "name": name,
            "content": address,
            "ttl": self.ttl,
            "proxied": False,
            "comment": comment,
        }
        response = await self._call("POST", f"zones/{self.zone_id}/dns_records", (200,), json=body)
        result = response.json().get("result") or {}
        return result["id"], result["name"]

    async def delete_record(self, record_id: str) -> bool:
        """Delete a record. Returns False when it was already gone."""
        response = await self._call("DELETE", f"zones/{self.zone_id}/dns_records/{record_id}", (200, 404))
        return response.status_code == 200
