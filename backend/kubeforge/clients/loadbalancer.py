"""Octavia (load balancer v2) client."""
from typing import Any, Dict, List, Optional

from kubeforge.clients.base import OpenStackService

LBAAS = "v2/lbaas"


class LoadBalancerService(OpenStackService):
    service_name = "loadbalancer"

    async def create_load_balancer(self, token: str, name: str, vip_subnet_id: str) -> Dict[str, Any]:
        """Create a load balancer; the result carries ``id``, ``vip_port_id`` and ``vip_address``."""
        body = {"loadbalancer": {"name": name, "vip_subnet_id": vip_subnet_id, "admin_state_up": True}}
        data = await self._request("POST", f"{LBAAS}/loadbalancers", token, expected=(201,), json=body)
        return data["loadbalancer"]

    async def get_load_balancer(self, token: str, load_balancer_id: str) -> Dict[str, Any]:
        data = await self._request("GET", f"{LBAAS}/loadbalancers/{load_balancer_id}", token)
        return data["loadbalancer"]

    async def delete_load_balancer(self, token: str, load_balancer_id: str) -> bool:
        return await self._delete(f"{LBAAS}/loadbalancers/{load_balancer_id}", token)

    async def create_listener(
        self, token: str, name: str, load_balancer_id: str, port: int, allowed_cidrs: Optional[List[str]] = None
    ) -> str:
        listener = {
            "name": name,
            "loadbalancer_id": load_balancer_id,
            "protocol": "TCP",
            "protocol_port": port,
        }
        if allowed_cidrs:
            listener["allowed_cidrs"] = allowed_cidrs
        data = await self._request("POST", f"{LBAAS}/listeners", token, expected=(201,), json={"listener": listener})
        return data["listener"]["id"]

    async def get_listener(self, token: str, listener_id: str) -> Optional[Dict[str, Any]]:
        data = await self._get_optional(f"{LBAAS}/listeners/{listener_id}", token)
        return data["listener"] if data else None

    async def delete_listener(self, token: str, listener_id: str) -> bool:
        return await self._delete(f"{LBAAS}/listeners/{listener_id}", token)

    async def create_pool(self, token: str, name: str, listener_id: str) -> str:
        body = {
            "pool": {
                "name": name,
                "listener_id": listener_id,
                "protocol": "TCP",
                "lb_algorithm": "ROUND_ROBIN",
            }
        }
        data = await self._request("POST", f"{LBAAS}/pools", token, expected=(201,), json=body)
        return data["pool"]["id"]

    async def get_pool(self, token: str, pool_id: str) -> Optional[Dict[str, Any]]:
        data = await self._get_optional(f"{LBAAS}/pools/{pool_id}", token)
        return data["pool"] if data else None

    async def delete_pool(self, token: str, pool_id: str) -> bool:
        """Delete a pool; Octavia removes its members and health monitor with it."""
        return await self._delete(f"{LBAAS}/pools/{pool_id}", token)

    async def create_member(
        self, token: str, pool_id: str, name: str, address: str, port: int, subnet_id: str
    ) -> str:
        body = {
            "member": {
                "name": name,
                "address": address,
                "protocol_port": port,
                "monitor_port": port,
                "subnet_id": subnet_id,
            }
        }
        data = await self._request("POST", f"{LBAAS}/pools/{pool_id}/members", token, expected=(201,), json=body)
        return data["member"]["id"]

    async def create_tcp_health_monitor(self, token: str, pool_id: str, name: str) -> str:
        body = {
            "healthmonitor": {
                "name": name,
                "pool_id": pool_id,
                "type": "TCP",
                "delay": 10,
                "timeout": 10,
                "max_retries": 10,
                "max_retries_down": 3,
            }
        }
        data = await self._request("POST", f"{LBAAS}/healthmonitors", token, expected=(201,), json=body)
        return data["healthmonitor"]["id"]

    async def create_https_health_monitor(self, token: str, pool_id: str, name: str, domain_name: str) -> str:
        """HTTPS check of ``/``; the registration endpoint answers 404 when healthy."""
        body = {
            "healthmonitor": {
                "name": name,
                "pool_id": pool_id,
                "type": "HTTPS",
                "http_method": "GET",
                "url_path": "/",
                "expected_codes": "404",
                "http_version": 1.1,
                "domain_name": domain_name,
                "delay": 30,
                "timeout": 10,
                "max_retries": 10,
                "max_retries_down": 3,
            }
        }
        data = await self._request("POST", f"{LBAAS}/healthmonitors", token, expected=(201,), json=body)
        return data["healthmonitor"]["id"]
