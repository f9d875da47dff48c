"""Application Load Balancer declarations for the Fargate topology."""
import logging
from dataclasses import dataclass, field
from typing import List

from platform_infra.aws.infrastructure.ecs import HEALTH_CHECK_PATH
from platform_infra.aws.infrastructure.network import (
    ANYWHERE,
    NetworkResources,
    VPCNetworkBuilder,
    ingress_rule,
)
from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)

TLS_POLICY = "ELBSecurityPolicy-TLS13-1-2-2021-06"


@dataclass
class LoadBalancerResources:
    security_group: ResourceDeclaration
    load_balancer: ResourceDeclaration
    target_group: ResourceDeclaration
    listeners: List[ResourceDeclaration] = field(default_factory=list)


class LoadBalancerBuilder:
    """Builder for an internet-facing ALB forwarding to IP targets."""

    def __init__(self, graph: DeclarationGraph, config: PlatformConfig):
        self.graph = graph
        self.config = config
        self.prefix = config.project_name

    def build_load_balancer(self, network: NetworkResources) -> LoadBalancerResources:
        """Declare ALB security group, ALB, target group and listeners.

        With a certificate ARN the ALB terminates HTTPS and redirects HTTP;
        without one it forwards plain HTTP.
        """
        ingress = [ingress_rule(80, "HTTP", cidr_blocks=[ANYWHERE])]
        if self.config.certificate_arn:
            ingress.append(ingress_rule(443, "HTTPS", cidr_blocks=[ANYWHERE]))

        security_group = VPCNetworkBuilder(self.graph, self.config).build_security_group(
            network, f"{self.prefix}-alb-sg", f"{self.config.project_name} ALB", ingress,
        )

        load_balancer = self.graph.declare(f"{self.prefix}-alb", "aws", "lb.LoadBalancer", {
            "name": f"{self.prefix}-alb"[:32],
            "loadBalancerType": "application",
            "internal": False,
            "securityGroups": [security_group.id],
            "subnets": network.subnet_ids,
            "tags": {"Name": f"{self.prefix}-alb"},
        })

        target_group = self.graph.declare(f"{self.prefix}-tg", "aws", "lb.TargetGroup", {
            "name": f"{self.prefix}-tg"[:32],
            "port": self.config.container_port,
            "protocol": "HTTP",
            "targetType": "ip",
            "vpcId": network.vpc.id,
            "healthCheck": {
                "path": HEALTH_CHECK_PATH,
                "protocol": "HTTP",
                "interval": 30,
                "timeout": 5,
                "healthyThreshold": 2,
                "unhealthyThreshold": 3,
            },
            "deregistrationDelay": 60,
        })

        resources = LoadBalancerResources(
            security_group=security_group,
            load_balancer=load_balancer,
            target_group=target_group,
        )
        resources.listeners = self._build_listeners(load_balancer, target_group)
        return resources

    def _build_listeners(self, load_balancer: ResourceDeclaration,
                         target_group: ResourceDeclaration) -> List[ResourceDeclaration]:
        forward = [{"type": "forward", "targetGroupArn": target_group.arn}]

        if not self.config.certificate_arn:
            logger.warning("No certificate ARN configured; ALB serves plain HTTP only")
            return [self.graph.declare(f"{self.prefix}-http", "aws", "lb.Listener", {
                "loadBalancerArn": load_balancer.arn,
                "port": 80,
                "protocol": "HTTP",
                "defaultActions": forward,
            })]

        https = self.graph.declare(f"{self.prefix}-https", "aws", "lb.Listener", {
            "loadBalancerArn": load_balancer.arn,
            "port": 443,
            "protocol": "HTTPS",
            "sslPolicy": TLS_POLICY,
            "certificateArn": self.config.certificate_arn,
            "defaultActions": forward,
        })
        http = self.graph.declare(f"{self.prefix}-http", "aws", "lb.Listener", {
            "loadBalancerArn": load_balancer.arn,
            "port": 80,
            "protocol": "HTTP",
            "defaultActions": [{
                "type": "redirect",
                "redirect": {"port": "443", "protocol": "HTTPS", "statusCode": "HTTP_301"},
            }],
        })
        return [https, http]
