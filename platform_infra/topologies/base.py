"""Shared assembly steps for deployment topologies."""
import logging
from typing import Any, Dict, Mapping, Optional

from platform_infra.aws.infrastructure.ecr import RepositoryResources
from platform_infra.aws.infrastructure.ecs import ClusterResources
from platform_infra.aws.infrastructure.network import NetworkResources
from platform_infra.aws.utils.decorators import log_operation
from platform_infra.cloudflare.dns import build_api_record, build_web_records
from platform_infra.cloudflare.tunnel import TunnelResources, build_api_tunnel
from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.image.tag_resolver import ImageReference, ImageTagResolver
from platform_infra.secrets import configured_secrets, provision_secret_parameters
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)


class TopologyBuilder:
    """Base class for deployment topologies.

    Subclasses implement ``_build`` and declare resources on ``self.graph`` in
    dependency order.
    """

    name: str = ""

    def __init__(self, config: PlatformConfig,
                 image_resolver: Optional[ImageTagResolver] = None,
                 image: Optional[ImageReference] = None):
        self.config = config
        self.prefix = config.project_name
        self.graph = DeclarationGraph(config.project_name, self.name)
        self.image_resolver = image_resolver or ImageTagResolver(config)
        self._image = image

    @property
    def image(self) -> ImageReference:
        """Server image, resolved once per build."""
        if self._image is None:
            self._image = self.image_resolver.resolve()
        return self._image

    @log_operation("Deployment descriptor build")
    def build(self) -> DeclarationGraph:
        logger.info(f"Building {self.name} descriptor for {self.config.project_name} ({self.image.uri})")
        self._build()
        self.graph.topological_order()
        logger.info(f"Declared {len(self.graph)} resources")
        return self.graph

    def _build(self) -> None:
        raise NotImplementedError

    def build_web_dns(self) -> None:
        build_web_records(self.graph, self.config)

    def build_tunnel(self) -> Optional[TunnelResources]:
        """Tunnel plus api CNAME, only when a tunnel secret is configured."""
        secret = self.config.tunnel_secret
        if secret is None:
            logger.warning("CLOUDFLARE_TUNNEL_SECRET not set; skipping tunnel and api DNS record")
            return None
        tunnel = build_api_tunnel(self.graph, self.config, secret)
        build_api_record(self.graph, self.config, tunnel.hostname)
        return tunnel

    def build_secrets(self, overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, ResourceDeclaration]:
        values = configured_secrets(self.config, overrides=overrides)
        return provision_secret_parameters(self.graph, self.config, values)

    def export_common(self, network: NetworkResources, repository: RepositoryResources,
                      cluster: ClusterResources, bucket_name: Any) -> None:
        domain = self.config.domain
        self.graph.export("vpcId", network.vpc.id)
        self.graph.export("ecrRepositoryUrl", repository.repository.output("repositoryUrl"))
        self.graph.export("ecsClusterArn", cluster.cluster.arn)
        self.graph.export("storageBucketName", bucket_name)
        self.graph.export("serverImage", self.image.uri)
        if f"{self.prefix}-api-dns" in self.graph:
            self.graph.export("apiUrl", f"https://{self.config.api_host}")
        self.graph.export("webUrl", f"https://{domain}")
        self.graph.export("adminUrl", f"https://admin.{domain}")
