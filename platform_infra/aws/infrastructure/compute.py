"""EC2 container instance declaration and its startup script."""
import base64
import logging
from typing import Any, Optional

from platform_infra.aws.infrastructure.iam import InstanceRoleResources
from platform_infra.aws.infrastructure.network import NetworkResources
from platform_infra.exceptions import ConfigurationError
from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.graph.deferred import Deferred
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)

ECS_AMI_PARAMETER = "/aws/service/ecs/optimized-ami/amazon-linux-2023/arm64/recommended/image_id"
CLOUDFLARED_URL = "https://github.com/cloudflare/cloudflared/releases/latest/download/cloudflared-linux-arm64"
USER_DATA_LIMIT = 16384

ECS_AGENT_BLOCK = """#!/bin/bash
echo ECS_CLUSTER={cluster_name} >> /etc/ecs/ecs.config
"""

TUNNEL_BLOCK = """
# Install cloudflared (ARM64)
curl -L {cloudflared_url} -o /usr/local/bin/cloudflared
chmod +x /usr/local/bin/cloudflared

cat > /etc/systemd/system/cloudflared.service << EOF
[Unit]
Description=Cloudflare Tunnel
After=network.target

[Service]
Type=simple
ExecStart=/usr/local/bin/cloudflared tunnel --no-autoupdate run --token {token}
Restart=always
RestartSec=5

[Install]
WantedBy=multi-user.target
EOF

systemctl daemon-reload
systemctl enable cloudflared
systemctl start cloudflared
"""


def render_user_data(cluster_name: str, tunnel_token: Optional[str] = None) -> str:
    """Startup script joining the ECS cluster, plus cloudflared when a token is given."""
    script = ECS_AGENT_BLOCK.format(cluster_name=cluster_name)
    if tunnel_token:
        script += TUNNEL_BLOCK.format(cloudflared_url=CLOUDFLARED_URL, token=tunnel_token)
    return script


def render_tunnel_user_data(cluster_name: str, tunnel_token: Optional[str]) -> str:
    """Startup script for a host that must run cloudflared."""
    if not tunnel_token:
        raise ConfigurationError("Tunnel token resolved empty; refusing to render user data without cloudflared")
    return render_user_data(cluster_name, tunnel_token)


def encode_user_data(script: str) -> str:
    """Base64-encode a startup script for the instance's user data."""
    if len(script) > USER_DATA_LIMIT - 1024:
        logger.warning(f"User data script is {len(script)} bytes - approaching AWS 16KB limit")
    return base64.b64encode(script.encode('utf-8')).decode('utf-8')


class EC2InstanceBuilder:
    """Builder for the single ECS container instance."""

    def __init__(self, graph: DeclarationGraph, config: PlatformConfig):
        self.graph = graph
        self.config = config
        self.prefix = config.project_name

    def ecs_ami(self) -> Deferred:
        """ECS-optimized Amazon Linux 2023 arm64 AMI, read from the public parameter."""
        return self.graph.lookup(
            "ecsAmi", "aws.ssm.getParameter", {"name": ECS_AMI_PARAMETER}, attribute="value"
        )

    def user_data(self, cluster: ResourceDeclaration, tunnel_token: Optional[Any] = None) -> Deferred:
        """Base64 user data derived from the cluster name and optional tunnel token."""
        if tunnel_token is None:
            return cluster.output("name").apply(
                lambda name: encode_user_data(render_user_data(name)),
                label="userData",
            )
        return Deferred.all(cluster.output("name"), tunnel_token, label="userData").apply(
            lambda values: encode_user_data(render_tunnel_user_data(values[0], values[1])),
            label="userData",
        )

    def build_container_instance(self, network: NetworkResources, security_group: ResourceDeclaration,
                                 roles: InstanceRoleResources, cluster: ResourceDeclaration,
                                 tunnel_token: Optional[Any] = None) -> ResourceDeclaration:
        """Declare the EC2 host that runs the server's ECS tasks."""
        if tunnel_token is None:
            logger.info("No tunnel token; startup script renders without cloudflared")

        name = f"{self.prefix}-ecs-instance"
        instance = self.graph.declare(name, "aws", "ec2.Instance", {
            "ami": self.ecs_ami(),
            "instanceType": self.config.instance_type,
            "iamInstanceProfile": roles.instance_profile.output("name"),
            "subnetId": network.subnet.id,
            "vpcSecurityGroupIds": [security_group.id],
            "userData": self.user_data(cluster, tunnel_token),
            "associatePublicIpAddress": True,
            "rootBlockDevice": {"volumeSize": 30, "volumeType": "gp3"},
            "tags": {"Name": name},
        })
        logger.info(f"Declared container instance {name} ({self.config.instance_type})")
        return instance
