"""Neutron (network v2.0) client."""
from typing import Any, Dict, List, Optional, Tuple

from kubeforge.clients.base import OpenStackService


class NetworkService(OpenStackService):
    service_name = "network"

    async def get_subnet(self, token: str, subnet_id: str) -> Dict[str, Any]:
        """Subnet detail; ``network_id`` and ``cidr`` are what callers need."""
        data = await self._request("GET", f"v2.0/subnets/{subnet_id}", token)
        return data["subnet"]

    async def create_port(
        self, token: str, name: str, network_id: str, subnet_id: str, security_groups: List[str]
    ) -> Tuple[str, str]:
        """Create a port with one fixed IP on ``subnet_id``; returns ``(id, ip)``."""
        body = {
            "port": {
                "name": name,
                "network_id": network_id,
                "admin_state_up": True,
                "fixed_ips": [{"subnet_id": subnet_id}],
                "security_groups": security_groups,
            }
        }
        data = await self._request("POST", "v2.0/ports", token, expected=(201,), json=body)
        port = data["port"]
        fixed_ips = port.get("fixed_ips") or [{}]
        return port["id"], fixed_ips[0].get("ip_address", "")

    async def delete_port(self, token: str, port_id: str) -> bool:
        return await self._delete(f"v2.0/ports/{port_id}", token)

    async def create_security_group(self, token: str, name: str, description: Optional[str] = None) -> str:
        body = {"security_group": {"name": name, "description": description or name}}
        data = await self._request("POST", "v2.0/security-groups", token, expected=(201,), json=body)
        return data["security_group"]["id"]

    async def delete_security_group(self, token: str, security_group_id: str) -> bool:
        return await self._delete(f"v2.0/security-groups/{security_group_id}", token)

    async def create_rule_for_cidr(
        self, token: str, security_group_id: str, cidr: str, port_min: int, port_max: int, protocol: str = "tcp"
    ) -> str:
        """Ingress rule admitting ``cidr`` on ``port_min``-``port_max``."""
        body = {
            "security_group_rule": {
                "direction": "ingress",
                "ethertype": "IPv4",
                "protocol": protocol,
                "port_range_min": port_min,
                "port_range_max": port_max,
                "remote_ip_prefix": cidr,
                "security_group_id": security_group_id,
            }
        }
        data = await self._request("POST", "v2.0/security-group-rules", token, expected=(201,), json=body)
        return data["security_group_rule"]["id"]

    async def create_rule_for_group(self, token: str, security_group_id: str, remote_group_id: str) -> str:
        """Ingress rule admitting all traffic from members of ``remote_group_id``."""
        body = {
            "security_group_rule": {
                "direction": "ingress",
                "ethertype": "IPv4",
                "remote_group_id": remote_group_id,
                "security_group_id": security_group_id,
            }
        }
        data = await self._request("POST", "v2.0/security-group-rules", token, expected=(201,), json=body)
        return data["security_group_rule"]["id"]

    async def create_floating_ip(self, token: str, floating_network_id: str, port_id: str) -> Tuple[str, str]:
        """Allocate a floating IP bound to ``port_id``; returns ``(id, address)``."""
        body = {"floatingip": {"floating_network_id": floating_network_id, "port_id": port_id}}
        data = await self._request("POST", "v2.0/floatingips", token, expected=(201,), json=body)
        floating_ip = data["floatingip"]
        return floating_ip["id"], floating_ip["floating_ip_address"]

    async def delete_floating_ip(self, token: str, floating_ip_id: str) -> bool:
        return await self._delete(f"v2.0/floatingips/{floating_ip_id}", token)
