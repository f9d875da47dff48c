"""
Deployment topologies.

Each topology assembles the same building blocks (network, IAM, registry,
cluster, DNS, secrets) into a different shape. build_descriptor() is the
entry point used by the CLI.
"""
import logging
from typing import Dict, Optional, Type

from platform_infra.exceptions import ConfigurationError
from platform_infra.graph.declarations import DeclarationGraph
from platform_infra.image.tag_resolver import ImageReference, ImageTagResolver
from platform_infra.settings import PlatformConfig
from platform_infra.topologies.base import TopologyBuilder
from platform_infra.topologies.ec2_tunnel import Ec2TunnelTopology
from platform_infra.topologies.fargate_alb import FargateAlbTopology
from platform_infra.topologies.hybrid import HybridTopology

logger = logging.getLogger(__name__)

TOPOLOGIES: Dict[str, Type[TopologyBuilder]] = {
    Ec2TunnelTopology.name: Ec2TunnelTopology,
    FargateAlbTopology.name: FargateAlbTopology,
    HybridTopology.name: HybridTopology,
}


def get_topology(name: str) -> Type[TopologyBuilder]:
    try:
        return TOPOLOGIES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown topology: {name}. Must be one of {sorted(TOPOLOGIES)}"
        ) from None


def build_descriptor(config: PlatformConfig,
                     topology: Optional[str] = None,
                     image_resolver: Optional[ImageTagResolver] = None,
                     image: Optional[ImageReference] = None) -> DeclarationGraph:
    """Build the declaration graph for ``topology`` (defaults to the configured one)."""
    builder_class = get_topology(topology or config.topology)
    return builder_class(config, image_resolver=image_resolver, image=image).build()
