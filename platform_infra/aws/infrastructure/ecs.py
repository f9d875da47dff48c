"""
ECS Declarations

Purpose: Declares the ECS cluster, CloudWatch log group, task definitions and
services for the server (EC2 bridge or Fargate awsvpc) and the hybrid worker.

Main classes: TaskDefinitionConfig (task definition properties with launch-type
defaults), ECSClusterBuilder (log group + cluster) and TaskDefinitionBuilder
(build_*: returns declarations).

Key features: container definitions are rendered from the log group's deferred
name, so the JSON is only final once the engine has created the log group.
Secrets are passed by parameter store path, never by value.
"""
import json
import logging
import shlex
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.image.tag_resolver import ImageReference
from platform_infra.secrets import container_secrets
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)

LOG_RETENTION_DAYS = 14
HEALTH_CHECK_PATH = "/health"

LAUNCH_TYPE_EC2 = "EC2"
LAUNCH_TYPE_FARGATE = "FARGATE"


@dataclass
class TaskDefinitionConfig:
    """Configuration for an ECS task definition with launch-type defaults."""
    family: str
    launch_type: str = LAUNCH_TYPE_EC2
    cpu: Optional[str] = None
    memory: Optional[str] = None
    network_mode: Optional[str] = None
    execution_role_arn: Any = None
    task_role_arn: Any = None
    container_definitions: Any = None
    tags: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        """Fill in defaults implied by the launch type."""
        if not self.tags:
            self.tags = {"Name": f"{self.family}-task"}

        if self.network_mode is None:
            self.network_mode = "awsvpc" if self.launch_type == LAUNCH_TYPE_FARGATE else "bridge"

        # Fargate requires task-level sizing
        if self.launch_type == LAUNCH_TYPE_FARGATE:
            self.cpu = self.cpu or "256"
            self.memory = self.memory or "512"

    def to_properties(self) -> Dict[str, Any]:
        """Convert to a task definition property bag."""
        properties = {
            "family": self.family,
            "networkMode": self.network_mode,
            "requiresCompatibilities": [self.launch_type],
            "containerDefinitions": self.container_definitions,
            "tags": self.tags,
        }

        # Add optional fields if provided
        if self.cpu:
            properties["cpu"] = self.cpu
        if self.memory:
            properties["memory"] = self.memory
        if self.execution_role_arn is not None:
            properties["executionRoleArn"] = self.execution_role_arn
        if self.task_role_arn is not None:
            properties["taskRoleArn"] = self.task_role_arn

        return properties


def build_container_definition(name: str, image_uri: str, log_group_name: str, region: str,
                               environment: List[Dict[str, str]],
                               secrets: List[Dict[str, str]],
                               port: Optional[int] = None,
                               host_port: Optional[int] = None,
                               command: Optional[List[str]] = None,
                               memory: Optional[int] = None,
                               cpu: Optional[int] = None,
                               stream_prefix: str = "ecs") -> Dict[str, Any]:
    """Build one container definition dict."""
    container: Dict[str, Any] = {
        "name": name,
        "image": image_uri,
        "essential": True,
        "environment": environment,
        "secrets": secrets,
        "logConfiguration": {
            "logDriver": "awslogs",
            "options": {
                "awslogs-group": log_group_name,
                "awslogs-region": region,
                "awslogs-stream-prefix": stream_prefix,
            },
        },
    }
    if memory:
        container["memory"] = memory
    if cpu:
        container["cpu"] = cpu
    if command:
        container["command"] = command
    if port:
        container["portMappings"] = [{
            "containerPort": port,
            "hostPort": host_port if host_port is not None else port,
            "protocol": "tcp",
        }]
        container["healthCheck"] = {
            "command": ["CMD-SHELL", f"wget -q --spider http://localhost:{port}{HEALTH_CHECK_PATH} || exit 1"],
            "interval": 30,
            "timeout": 5,
            "retries": 3,
            "startPeriod": 60,
        }
    return container


@dataclass
class ClusterResources:
    log_group: ResourceDeclaration
    cluster: ResourceDeclaration


class ECSClusterBuilder:
    """Builder for the ECS cluster and its log group."""

    def __init__(self, graph: DeclarationGraph, config: PlatformConfig):
        self.graph = graph
        self.config = config
        self.prefix = config.project_name

    def build_log_group(self) -> ResourceDeclaration:
        return self.graph.declare(f"{self.prefix}-logs", "aws", "cloudwatch.LogGroup", {
            "name": self.config.log_group_name,
            "retentionInDays": LOG_RETENTION_DAYS,
        })

    def build_cluster(self) -> ClusterResources:
        """Declare log group and cluster (container insights off)."""
        log_group = self.build_log_group()
        cluster = self.graph.declare(f"{self.prefix}-cluster", "aws", "ecs.Cluster", {
            "name": f"{self.prefix}-cluster",
            "settings": [{"name": "containerInsights", "value": "disabled"}],
        })
        logger.info(f"Declared ECS cluster: {self.prefix}-cluster")
        return ClusterResources(log_group=log_group, cluster=cluster)


class TaskDefinitionBuilder:
    """Builder for server and worker task definitions and their services."""

    def __init__(self, graph: DeclarationGraph, config: PlatformConfig):
        self.graph = graph
        self.config = config
        self.prefix = config.project_name

    def server_environment(self) -> List[Dict[str, str]]:
        return [
            {"name": "PORT", "value": str(self.config.container_port)},
            {"name": "ENVIRONMENT", "value": self.config.environment},
            {"name": "FRONTEND_URL", "value": f"https://{self.config.domain}"},
        ]

    def _container_definitions(self, log_group: ResourceDeclaration, label: str, **container_kwargs) -> Any:
        region = self.config.aws_region

        def render(log_group_name: str) -> str:
            container = build_container_definition(
                log_group_name=log_group_name, region=region, **container_kwargs
            )
            return json.dumps([container], sort_keys=True)

        return log_group.output("name").apply(render, label=label)

    def build_server_task_definition(self, image: ImageReference, log_group: ResourceDeclaration,
                                     execution_role: ResourceDeclaration,
                                     launch_type: str = LAUNCH_TYPE_EC2) -> ResourceDeclaration:
        """Declare the server task definition for the given launch type."""
        family = self.config.server_repository
        port = self.config.container_port

        if launch_type == LAUNCH_TYPE_FARGATE:
            sizing = {}
            task_cpu, task_memory = str(self.config.fargate_cpu), str(self.config.fargate_memory)
        else:
            # Sized for a t4g.nano host
            sizing = {"memory": 256, "cpu": 128}
            task_cpu = task_memory = None

        container_definitions = self._container_definitions(
            log_group,
            f"{family}.containerDefinitions",
            name=family,
            image_uri=image.uri,
            environment=self.server_environment(),
            secrets=container_secrets(self.config),
            port=port,
            host_port=port,
            **sizing,
        )

        config = TaskDefinitionConfig(
            family=family,
            launch_type=launch_type,
            cpu=task_cpu,
            memory=task_memory,
            execution_role_arn=execution_role.arn,
            container_definitions=container_definitions,
        )
        task_definition = self.graph.declare(f"{family}-task", "aws", "ecs.TaskDefinition", config.to_properties())
        logger.info(f"Declared {launch_type} task definition: {family}")
        return task_definition

    def build_worker_task_definition(self, image: ImageReference, log_group: ResourceDeclaration,
                                     execution_role: ResourceDeclaration) -> ResourceDeclaration:
        """Declare the Fargate worker task running the server image with the worker command."""
        family = f"{self.config.server_repository}-worker"
        container_definitions = self._container_definitions(
            log_group,
            f"{family}.containerDefinitions",
            name=family,
            image_uri=image.uri,
            environment=self.server_environment(),
            secrets=container_secrets(self.config),
            command=shlex.split(self.config.worker_command),
            stream_prefix="worker",
        )
        config = TaskDefinitionConfig(
            family=family,
            launch_type=LAUNCH_TYPE_FARGATE,
            cpu=str(self.config.fargate_cpu),
            memory=str(self.config.fargate_memory),
            execution_role_arn=execution_role.arn,
            container_definitions=container_definitions,
        )
        task_definition = self.graph.declare(f"{family}-task", "aws", "ecs.TaskDefinition", config.to_properties())
        logger.info(f"Declared worker task definition: {family}")
        return task_definition

    def build_service(self, name: str, cluster: ResourceDeclaration, task_definition: ResourceDeclaration,
                      launch_type: str = LAUNCH_TYPE_EC2,
                      subnet_ids: Optional[List[Any]] = None,
                      security_groups: Optional[List[Any]] = None,
                      target_group: Optional[ResourceDeclaration] = None,
                      container_name: Optional[str] = None,
                      depends_on: Optional[List[str]] = None) -> ResourceDeclaration:
        """Declare an ECS service."""
        properties: Dict[str, Any] = {
            "name": name,
            "cluster": cluster.arn,
            "taskDefinition": task_definition.arn,
            "desiredCount": self.config.desired_count,
            "launchType": launch_type,
            "tags": {"Name": f"{name}-service"},
        }

        if launch_type == LAUNCH_TYPE_EC2:
            # Single host: stop the old task before starting the new one
            properties["deploymentMinimumHealthyPercent"] = 0
            properties["deploymentMaximumPercent"] = 100
        else:
            properties["deploymentMinimumHealthyPercent"] = 100
            properties["deploymentMaximumPercent"] = 200
            properties["networkConfiguration"] = {
                "subnets": subnet_ids or [],
                "securityGroups": security_groups or [],
                "assignPublicIp": True,
            }

        if target_group is not None:
            properties["loadBalancers"] = [{
                "targetGroupArn": target_group.arn,
                "containerName": container_name or self.config.server_repository,
                "containerPort": self.config.container_port,
            }]

        service = self.graph.declare(f"{name}-service", "aws", "ecs.Service", properties,
                                     depends_on=depends_on)
        logger.info(f"Declared {launch_type} service: {name}")
        return service
