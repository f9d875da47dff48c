"""ECR repository declaration with an image lifecycle policy."""
import json
import logging
from dataclasses import dataclass

from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)

KEEP_IMAGE_COUNT = 10


def lifecycle_policy(keep: int = KEEP_IMAGE_COUNT) -> str:
    return json.dumps({
        "rules": [{
            "rulePriority": 1,
            "description": f"Keep last {keep} images",
            "selection": {"tagStatus": "any", "countType": "imageCountMoreThan", "countNumber": keep},
            "action": {"type": "expire"},
        }],
    })


@dataclass
class RepositoryResources:
    repository: ResourceDeclaration
    lifecycle_policy: ResourceDeclaration


def build_server_repository(graph: DeclarationGraph, config: PlatformConfig) -> RepositoryResources:
    """Declare the server image repository and its lifecycle policy."""
    name = config.server_repository
    repository = graph.declare(name, "aws", "ecr.Repository", {
        "name": name,
        "imageTagMutability": "MUTABLE",
        "imageScanningConfiguration": {"scanOnPush": True},
        "tags": {"Name": name},
    })
    policy = graph.declare(f"{name}-lifecycle", "aws", "ecr.LifecyclePolicy", {
        "repository": repository.output("name"),
        "policy": lifecycle_policy(),
    })
    return RepositoryResources(repository=repository, lifecycle_policy=policy)
