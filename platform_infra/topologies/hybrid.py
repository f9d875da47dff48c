"""EC2 api host behind the tunnel plus a Fargate worker sharing one database."""
import logging

from platform_infra.aws.infrastructure import ecr
from platform_infra.aws.infrastructure.compute import EC2InstanceBuilder
from platform_infra.aws.infrastructure.database import DatabaseBuilder
from platform_infra.aws.infrastructure.ecs import (
    LAUNCH_TYPE_EC2,
    LAUNCH_TYPE_FARGATE,
    ECSClusterBuilder,
    TaskDefinitionBuilder,
)
from platform_infra.aws.infrastructure.iam import IAMRoleBuilder
from platform_infra.aws.infrastructure.network import VPCNetworkBuilder
from platform_infra.cloudflare import r2
from platform_infra.topologies.base import TopologyBuilder

logger = logging.getLogger(__name__)


class HybridTopology(TopologyBuilder):
    name = "hybrid"

    def _build(self) -> None:
        images = r2.build_images_bucket(self.graph, self.config)
        self.build_web_dns()
        tunnel = self.build_tunnel()

        network_builder = VPCNetworkBuilder(self.graph, self.config)
        network = network_builder.build_network(subnet_count=2)
        instance_sg = network_builder.build_ssh_security_group(network)
        # Worker only makes outbound calls
        worker_sg = network_builder.build_security_group(
            network, f"{self.prefix}-worker-sg", f"{self.config.project_name} worker tasks", [],
        )

        iam = IAMRoleBuilder(self.graph, self.config)
        instance_roles = iam.build_ecs_instance_role()
        execution_role = iam.build_task_execution_role()

        database = DatabaseBuilder(self.graph, self.config).build_database(
            network, [instance_sg, worker_sg], password=self.config.secret("DB_PASSWORD")
        )
        self.build_secrets(overrides={"DATABASE_URL": self.config.secret("DATABASE_URL")
                                      or database.connection_url})

        repository = ecr.build_server_repository(self.graph, self.config)
        cluster = ECSClusterBuilder(self.graph, self.config).build_cluster()

        tasks = TaskDefinitionBuilder(self.graph, self.config)
        server_task = tasks.build_server_task_definition(
            self.image, cluster.log_group, execution_role, launch_type=LAUNCH_TYPE_EC2
        )
        worker_task = tasks.build_worker_task_definition(self.image, cluster.log_group, execution_role)

        instance = EC2InstanceBuilder(self.graph, self.config).build_container_instance(
            network, instance_sg, instance_roles, cluster.cluster,
            tunnel_token=tunnel.token if tunnel else None,
        )

        tasks.build_service(self.config.server_repository, cluster.cluster, server_task,
                            launch_type=LAUNCH_TYPE_EC2)
        tasks.build_service(
            f"{self.config.server_repository}-worker",
            cluster.cluster,
            worker_task,
            launch_type=LAUNCH_TYPE_FARGATE,
            subnet_ids=network.subnet_ids,
            security_groups=[worker_sg.id],
        )

        self.export_common(network, repository, cluster, images.bucket.output("name"))
        self.graph.export("instancePublicIp", instance.output("publicIp"))
        self.graph.export("databaseEndpoint", database.instance.output("endpoint"))
