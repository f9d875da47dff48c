"""Cloudflare R2 bucket for image storage, with public and custom domains."""
import logging
from dataclasses import dataclass

from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)

R2_LOCATION = "APAC"


@dataclass
class R2Resources:
    bucket: ResourceDeclaration
    managed_domain: ResourceDeclaration
    custom_domain: ResourceDeclaration


def build_images_bucket(graph: DeclarationGraph, config: PlatformConfig) -> R2Resources:
    """Declare the images bucket served at images.<domain>."""
    name = f"{config.project_name}-images"
    bucket = graph.declare(name, "cloudflare", "R2Bucket", {
        "accountId": config.cloudflare_account_id,
        "name": name,
        "location": R2_LOCATION,
    })
    managed_domain = graph.declare(f"{name}-public", "cloudflare", "R2ManagedDomain", {
        "accountId": config.cloudflare_account_id,
        "bucketName": bucket.output("name"),
        "enabled": True,
    })
    custom_domain = graph.declare(f"{name}-domain", "cloudflare", "R2CustomDomain", {
        "accountId": config.cloudflare_account_id,
        "bucketName": bucket.output("name"),
        "domain": config.images_host,
        "zoneId": config.cloudflare_zone_id,
        "enabled": True,
        "minTls": "1.2",
    })
    logger.info(f"Declared R2 bucket {name} at {config.images_host}")
    return R2Resources(bucket=bucket, managed_domain=managed_domain, custom_domain=custom_domain)
