"""Fargate service behind an ALB with RDS and S3."""
import logging

from platform_infra.aws.infrastructure import ecr, storage
from platform_infra.aws.infrastructure.database import DatabaseBuilder
from platform_infra.aws.infrastructure.ecs import LAUNCH_TYPE_FARGATE, ECSClusterBuilder, TaskDefinitionBuilder
from platform_infra.aws.infrastructure.iam import IAMRoleBuilder
from platform_infra.aws.infrastructure.load_balancer import LoadBalancerBuilder
from platform_infra.aws.infrastructure.network import VPCNetworkBuilder, ingress_rule
from platform_infra.cloudflare.dns import build_api_record
from platform_infra.topologies.base import TopologyBuilder

logger = logging.getLogger(__name__)


class FargateAlbTopology(TopologyBuilder):
    """Two-AZ VPC, public ALB, Fargate tasks in awsvpc mode, private PostgreSQL."""

    name = "fargate-alb"

    def _build(self) -> None:
        bucket = storage.build_images_bucket(self.graph, self.config)
        self.build_web_dns()

        network_builder = VPCNetworkBuilder(self.graph, self.config)
        network = network_builder.build_network(subnet_count=2)

        alb = LoadBalancerBuilder(self.graph, self.config).build_load_balancer(network)
        service_sg = network_builder.build_security_group(
            network,
            f"{self.prefix}-service-sg",
            f"{self.config.project_name} Fargate tasks",
            [ingress_rule(self.config.container_port, "From ALB",
                          security_groups=[alb.security_group.id])],
        )

        execution_role = IAMRoleBuilder(self.graph, self.config).build_task_execution_role()

        database = DatabaseBuilder(self.graph, self.config).build_database(
            network, [service_sg], password=self.config.secret("DB_PASSWORD")
        )
        # An explicit DATABASE_URL wins over the one derived from the instance
        self.build_secrets(overrides={"DATABASE_URL": self.config.secret("DATABASE_URL")
                                      or database.connection_url})

        repository = ecr.build_server_repository(self.graph, self.config)
        cluster = ECSClusterBuilder(self.graph, self.config).build_cluster()

        tasks = TaskDefinitionBuilder(self.graph, self.config)
        task_definition = tasks.build_server_task_definition(
            self.image, cluster.log_group, execution_role, launch_type=LAUNCH_TYPE_FARGATE
        )
        tasks.build_service(
            self.config.server_repository,
            cluster.cluster,
            task_definition,
            launch_type=LAUNCH_TYPE_FARGATE,
            subnet_ids=network.subnet_ids,
            security_groups=[service_sg.id],
            target_group=alb.target_group,
            depends_on=[listener.name for listener in alb.listeners],
        )

        dns_name = alb.load_balancer.output("dnsName")
        build_api_record(self.graph, self.config, dns_name)

        self.export_common(network, repository, cluster, bucket.bucket.id)
        self.graph.export("loadBalancerDnsName", dns_name)
        self.graph.export("databaseEndpoint", database.instance.output("endpoint"))
