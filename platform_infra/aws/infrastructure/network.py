"""VPC network declarations: public subnets, internet gateway, security groups."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from platform_infra.exceptions import ConfigurationError
from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)

VPC_CIDR = "10.0.0.0/16"
ANYWHERE = "0.0.0.0/0"
# Second subnet lands in another AZ so ALB and RDS subnet groups are valid
AZ_SUFFIXES = ("a", "c")


def ingress_rule(port: int, description: str, cidr_blocks: Optional[List[str]] = None,
                 security_groups: Optional[List[Any]] = None, protocol: str = "tcp") -> Dict[str, Any]:
    """Build one security group ingress rule."""
    rule: Dict[str, Any] = {
        "protocol": protocol,
        "fromPort": port,
        "toPort": port,
        "description": description,
    }
    if cidr_blocks:
        rule["cidrBlocks"] = cidr_blocks
    if security_groups:
        rule["securityGroups"] = security_groups
    return rule


ALL_OUTBOUND = {
    "protocol": "-1",
    "fromPort": 0,
    "toPort": 0,
    "cidrBlocks": [ANYWHERE],
    "description": "All outbound",
}


@dataclass
class NetworkResources:
    vpc: ResourceDeclaration
    subnets: List[ResourceDeclaration]
    internet_gateway: ResourceDeclaration
    route_table: ResourceDeclaration
    security_groups: Dict[str, ResourceDeclaration] = field(default_factory=dict)

    @property
    def subnet(self) -> ResourceDeclaration:
        return self.subnets[0]

    @property
    def subnet_ids(self) -> List[Any]:
        return [subnet.id for subnet in self.subnets]


class VPCNetworkBuilder:
    """Builder for a public-subnet VPC."""

    def __init__(self, graph: DeclarationGraph, config: PlatformConfig):
        self.graph = graph
        self.config = config
        self.prefix = config.project_name

    def build_network(self, subnet_count: int = 1) -> NetworkResources:
        """Declare VPC, public subnets, internet gateway and default route."""
        if not 1 <= subnet_count <= len(AZ_SUFFIXES):
            raise ConfigurationError(f"subnet_count must be between 1 and {len(AZ_SUFFIXES)}")

        vpc = self.graph.declare(f"{self.prefix}-vpc", "aws", "ec2.Vpc", {
            "cidrBlock": VPC_CIDR,
            "enableDnsHostnames": True,
            "enableDnsSupport": True,
            "tags": {"Name": f"{self.prefix}-vpc"},
        })

        subnets = []
        for index in range(subnet_count):
            name = f"{self.prefix}-subnet" if index == 0 else f"{self.prefix}-subnet-{index + 1}"
            subnets.append(self.graph.declare(name, "aws", "ec2.Subnet", {
                "vpcId": vpc.id,
                "cidrBlock": f"10.0.{index + 1}.0/24",
                "availabilityZone": f"{self.config.aws_region}{AZ_SUFFIXES[index]}",
                "mapPublicIpOnLaunch": True,
                "tags": {"Name": name},
            }))

        internet_gateway = self.graph.declare(f"{self.prefix}-igw", "aws", "ec2.InternetGateway", {
            "vpcId": vpc.id,
            "tags": {"Name": f"{self.prefix}-igw"},
        })

        route_table = self.graph.declare(f"{self.prefix}-rt", "aws", "ec2.RouteTable", {
            "vpcId": vpc.id,
            "routes": [{"cidrBlock": ANYWHERE, "gatewayId": internet_gateway.id}],
            "tags": {"Name": f"{self.prefix}-rt"},
        })

        for index, subnet in enumerate(subnets):
            suffix = "" if index == 0 else f"-{index + 1}"
            self.graph.declare(f"{self.prefix}-rt-assoc{suffix}", "aws", "ec2.RouteTableAssociation", {
                "subnetId": subnet.id,
                "routeTableId": route_table.id,
            })

        logger.info(f"Declared VPC {vpc.name} with {subnet_count} public subnet(s)")
        return NetworkResources(
            vpc=vpc,
            subnets=subnets,
            internet_gateway=internet_gateway,
            route_table=route_table,
        )

    def build_security_group(self, network: NetworkResources, name: str, description: str,
                             ingress: List[Dict[str, Any]],
                             egress: Optional[List[Dict[str, Any]]] = None) -> ResourceDeclaration:
        """Declare a security group in the network's VPC."""
        security_group = self.graph.declare(name, "aws", "ec2.SecurityGroup", {
            "description": description,
            "vpcId": network.vpc.id,
            "ingress": ingress,
            "egress": egress if egress is not None else [dict(ALL_OUTBOUND)],
            "tags": {"Name": name},
        })
        network.security_groups[name] = security_group
        return security_group

    def build_ssh_security_group(self, network: NetworkResources) -> ResourceDeclaration:
        """SSH-only group for tunnel-fronted container instances."""
        return self.build_security_group(
            network,
            f"{self.prefix}-sg",
            f"{self.config.project_name} ECS Security Group",
            [ingress_rule(22, "SSH", cidr_blocks=[ANYWHERE])],
        )
