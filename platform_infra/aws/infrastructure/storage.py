"""S3 bucket declarations for image storage in the Fargate topology."""
import logging
from dataclasses import dataclass

from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)


@dataclass
class BucketResources:
    bucket: ResourceDeclaration
    public_access_block: ResourceDeclaration


def build_images_bucket(graph: DeclarationGraph, config: PlatformConfig) -> BucketResources:
    """Private, versioned bucket for uploaded images."""
    name = f"{config.project_name}-images"
    bucket = graph.declare(name, "aws", "s3.Bucket", {
        "bucket": name,
        "forceDestroy": False,
        "tags": {"Name": name, "Environment": config.environment},
    })
    graph.declare(f"{name}-versioning", "aws", "s3.BucketVersioning", {
        "bucket": bucket.id,
        "versioningConfiguration": {"status": "Enabled"},
    })
    public_access_block = graph.declare(f"{name}-public-access", "aws", "s3.BucketPublicAccessBlock", {
        "bucket": bucket.id,
        "blockPublicAcls": True,
        "blockPublicPolicy": True,
        "ignorePublicAcls": True,
        "restrictPublicBuckets": True,
    })
    return BucketResources(bucket=bucket, public_access_block=public_access_block)
