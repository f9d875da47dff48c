"""Cloudflare DNS records for the web front ends and the API."""
import logging
from typing import Any, List

from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)

AUTOMATIC_TTL = 1


def build_record(graph: DeclarationGraph, config: PlatformConfig, name: str, record_name: str,
                 record_type: str, content: Any, proxied: bool = False) -> ResourceDeclaration:
    return graph.declare(name, "cloudflare", "DnsRecord", {
        "zoneId": config.cloudflare_zone_id,
        "name": record_name,
        "type": record_type,
        "content": content,
        "proxied": proxied,
        "ttl": AUTOMATIC_TTL,
    })


def build_web_records(graph: DeclarationGraph, config: PlatformConfig) -> List[ResourceDeclaration]:
    """Apex A record and www/admin CNAMEs pointing at the front-end host."""
    prefix = config.project_name
    return [
        build_record(graph, config, f"{prefix}-root", "@", "A", config.web_apex_ip),
        build_record(graph, config, f"{prefix}-www", "www", "CNAME", config.web_www_target),
        build_record(graph, config, f"{prefix}-admin-dns", "admin", "CNAME", config.web_admin_target),
    ]


def build_api_record(graph: DeclarationGraph, config: PlatformConfig, target: Any) -> ResourceDeclaration:
    """Proxied api.<domain> CNAME to a tunnel or load balancer hostname."""
    return build_record(graph, config, f"{config.project_name}-api-dns", "api", "CNAME", target, proxied=True)
