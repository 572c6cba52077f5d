"""Nova (compute v2.1) client."""
from typing import List, Optional

from kubeforge.clients.base import OpenStackService


class ComputeService(OpenStackService):
    service_name = "compute"

    def __init__(self, http, endpoint: str, microversion: str):
        super().__init__(http, endpoint)
        self.microversion = microversion

    async def create_server(
        self,
        token: str,
        name: str,
        image_ref: str,
        flavor_ref: str,
        key_name: str,
        port_id: str,
        user_data: str,
        server_group_id: str,
        volume_size: int,
        availability_zone: str = "nova",
    ) -> str:
        """Boot an instance from an image-backed volume.

        The port already carries the security groups; ``user_data`` is base64.
        """
        body = {
            "server": {
                "name": name,
                "imageRef": image_ref,
                "flavorRef": flavor_ref,
                "key_name": key_name,
                "availability_zone": availability_zone,
                "networks": [{"port": port_id}],
                "user_data": user_data,
                "block_device_mapping_v2": [
                    {
                        "boot_index": 0,
                        "uuid": image_ref,
                        "source_type": "image",
                        "destination_type": "volume",
                        "volume_size": volume_size,
                        "delete_on_termination": True,
                    }
                ],
            },
            "os:scheduler_hints": {"group": server_group_id},
        }
        data = await self._request("POST", "v2.1/servers", token, expected=(202,), json=body)
        return data["server"]["id"]

    async def get_server(self, token: str, server_id: str) -> Optional[dict]:
        data = await self._get_optional(f"v2.1/servers/{server_id}", token)
        return data["server"] if data else None

    async def delete_server(self, token: str, server_id: str) -> bool:
        return await self._delete(f"v2.1/servers/{server_id}", token)

    async def create_server_group(self, token: str, name: str, policy: str = "soft-anti-affinity") -> str:
        data = await self._request(
            "POST",
            "v2.1/os-server-groups",
            token,
            expected=(200,),
            json={"server_group": {"name": name, "policy": policy}},
            headers={"x-openstack-nova-api-version": self.microversion},
        )
        return data["server_group"]["id"]

    async def get_server_group_members(self, token: str, server_group_id: str) -> Optional[List[str]]:
        """Instance ids placed in the group, or ``None`` if the group is gone."""
        data = await self._get_optional(f"v2.1/os-server-groups/{server_group_id}", token)
        if data is None:
            return None
        return list(data["server_group"].get("members", []))

    async def count_server_group_members(self, token: str, server_group_id: str) -> int:
        members = await self.get_server_group_members(token, server_group_id)
        return len(members or [])

    async def delete_server_group(self, token: str, server_group_id: str) -> bool:
        return await self._delete(f"v2.1/os-server-groups/{server_group_id}", token)

    async def list_interface_ports(self, token: str, server_id: str) -> List[str]:
        """Port ids attached to an instance; empty if the instance is gone."""
        data = await self._get_optional(f"v2.1/servers/{server_id}/os-interface", token)
        if data is None:
            return []
        return [attachment["port_id"] for attachment in data.get("interfaceAttachments", [])]
