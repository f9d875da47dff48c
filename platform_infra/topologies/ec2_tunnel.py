"""Single EC2 container instance behind a Cloudflare Tunnel, images on R2."""
import logging

from platform_infra.aws.infrastructure import ecr
from platform_infra.aws.infrastructure.compute import EC2InstanceBuilder
from platform_infra.aws.infrastructure.ecs import LAUNCH_TYPE_EC2, ECSClusterBuilder, TaskDefinitionBuilder
from platform_infra.aws.infrastructure.iam import IAMRoleBuilder
from platform_infra.aws.infrastructure.network import VPCNetworkBuilder
from platform_infra.cloudflare import r2
from platform_infra.topologies.base import TopologyBuilder

logger = logging.getLogger(__name__)


class Ec2TunnelTopology(TopologyBuilder):
    """ECS on one t4g host; no inbound HTTP, the tunnel carries api traffic."""

    name = "ec2-tunnel"

    def _build(self) -> None:
        images = r2.build_images_bucket(self.graph, self.config)
        self.build_web_dns()
        tunnel = self.build_tunnel()

        network_builder = VPCNetworkBuilder(self.graph, self.config)
        network = network_builder.build_network(subnet_count=1)
        security_group = network_builder.build_ssh_security_group(network)

        iam = IAMRoleBuilder(self.graph, self.config)
        instance_roles = iam.build_ecs_instance_role()
        execution_role = iam.build_task_execution_role()

        self.build_secrets()

        repository = ecr.build_server_repository(self.graph, self.config)
        cluster = ECSClusterBuilder(self.graph, self.config).build_cluster()

        tasks = TaskDefinitionBuilder(self.graph, self.config)
        task_definition = tasks.build_server_task_definition(
            self.image, cluster.log_group, execution_role, launch_type=LAUNCH_TYPE_EC2
        )

        instance = EC2InstanceBuilder(self.graph, self.config).build_container_instance(
            network, security_group, instance_roles, cluster.cluster,
            tunnel_token=tunnel.token if tunnel else None,
        )

        tasks.build_service(self.config.server_repository, cluster.cluster, task_definition,
                            launch_type=LAUNCH_TYPE_EC2)

        self.export_common(network, repository, cluster, images.bucket.output("name"))
        self.graph.export("instancePublicIp", instance.output("publicIp"))
