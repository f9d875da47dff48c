"""Cloudflare Tunnel exposing api.<domain> from the container instance."""
import logging
from dataclasses import dataclass

from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.graph.deferred import Deferred, SecretValue, interpolate
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)


@dataclass
class TunnelResources:
    tunnel: ResourceDeclaration
    tunnel_config: ResourceDeclaration
    token: Deferred

    @property
    def hostname(self) -> Deferred:
        """CNAME target for the tunnel."""
        return interpolate("{}.cfargotunnel.com", self.tunnel.id, label="tunnelHostname")


def build_api_tunnel(graph: DeclarationGraph, config: PlatformConfig, secret: SecretValue) -> TunnelResources:
    """Declare the tunnel, its ingress rules and the connector token lookup."""
    name = f"{config.project_name}-api-tunnel"
    service_url = f"http://localhost:{config.container_port}"

    tunnel = graph.declare(name, "cloudflare", "ZeroTrustTunnelCloudflared", {
        "accountId": config.cloudflare_account_id,
        "name": name,
        "tunnelSecret": secret,
        "configSrc": "cloudflare",
    })

    tunnel_config = graph.declare(f"{name}-config", "cloudflare", "ZeroTrustTunnelCloudflaredConfig", {
        "accountId": config.cloudflare_account_id,
        "tunnelId": tunnel.id,
        "config": {
            "ingresses": [
                {"hostname": config.api_host, "service": service_url},
                {"service": "http_status:404"},
            ],
        },
    })

    token = graph.lookup(
        "tunnelToken",
        "cloudflare.getZeroTrustTunnelCloudflaredToken",
        {"accountId": config.cloudflare_account_id, "tunnelId": tunnel.id},
        attribute="token",
        secret=True,
    )
    logger.info(f"Declared tunnel {name}: {config.api_host} -> {service_url}")
    return TunnelResources(tunnel=tunnel, tunnel_config=tunnel_config, token=token)
