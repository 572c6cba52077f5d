"""Collaborator clients handed to the orchestrators."""
from dataclasses import dataclass

import httpx

from kubeforge.clients.compute import ComputeService
from kubeforge.clients.dns import DNSService
from kubeforge.clients.identity import IdentityService
from kubeforge.clients.loadbalancer import LoadBalancerService
from kubeforge.clients.network import NetworkService


@dataclass
class CloudClients:
    identity: IdentityService
    compute: ComputeService
    network: NetworkService
    loadbalancer: LoadBalancerService
    dns: DNSService
    http: httpx.AsyncClient = None

    async def aclose(self) -> None:
        if self.http is not None:
            await self.http.aclose()


def build_cloud_clients(settings) -> CloudClients:
    """Create every client over one shared connection pool."""
    http = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    return CloudClients(
        identity=IdentityService(http, settings.IDENTITY_ENDPOINT),
        compute=ComputeService(http, settings.COMPUTE_ENDPOINT, settings.NOVA_MICROVERSION),
        network=NetworkService(http, settings.NETWORK_ENDPOINT),
        loadbalancer=LoadBalancerService(http, settings.LOADBALANCER_ENDPOINT),
        dns=DNSService(
            http,
            settings.CLOUDFLARE_API_URL,
            settings.CLOUDFLARE_API_TOKEN,
            settings.CLOUDFLARE_ZONE_ID,
            settings.DNS_RECORD_TTL,
        ),
        http=http,
    )
