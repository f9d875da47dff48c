"""IAM role declarations for ECS container instances and tasks."""
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.graph.deferred import Deferred
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)

ECS_FOR_EC2_POLICY = "arn:aws:iam::aws:policy/service-role/AmazonEC2ContainerServiceforEC2Role"
SSM_CORE_POLICY = "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"
TASK_EXECUTION_POLICY = "arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy"
ECR_READ_ONLY_POLICY = "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly"


def assume_role_policy(service: str) -> str:
    """Trust policy letting ``service`` assume the role."""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"Service": service},
            "Action": "sts:AssumeRole",
        }],
    })


def parameter_read_policy(region: str, account_id: str, project_name: str) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Action": ["ssm:GetParameters", "ssm:GetParameter"],
            "Resource": f"arn:aws:ssm:{region}:{account_id}:parameter/{project_name}/*",
        }],
    })


@dataclass
class InstanceRoleResources:
    role: ResourceDeclaration
    instance_profile: ResourceDeclaration


class IAMRoleBuilder:
    """Builder for the ECS instance role and the task execution role."""

    def __init__(self, graph: DeclarationGraph, config: PlatformConfig):
        self.graph = graph
        self.config = config
        self.prefix = config.project_name

    def _attach(self, name: str, role: ResourceDeclaration, policy_arn: str) -> ResourceDeclaration:
        return self.graph.declare(name, "aws", "iam.RolePolicyAttachment", {
            "role": role.output("name"),
            "policyArn": policy_arn,
        })

    def build_ecs_instance_role(self) -> InstanceRoleResources:
        """Role and instance profile for EC2 hosts joining the ECS cluster."""
        role = self.graph.declare(f"{self.prefix}-ecs-instance-role", "aws", "iam.Role", {
            "assumeRolePolicy": assume_role_policy("ec2.amazonaws.com"),
        })
        self._attach(f"{self.prefix}-ecs-instance-ecs", role, ECS_FOR_EC2_POLICY)
        self._attach(f"{self.prefix}-ecs-instance-ssm", role, SSM_CORE_POLICY)

        profile = self.graph.declare(f"{self.prefix}-ecs-instance-profile", "aws", "iam.InstanceProfile", {
            "role": role.output("name"),
        })
        return InstanceRoleResources(role=role, instance_profile=profile)

    def build_task_execution_role(self, account_id: Optional[Any] = None) -> ResourceDeclaration:
        """Execution role allowed to pull images and read the project's parameters.

        Args:
            account_id: Account id (plain or deferred); defaults to a caller-identity lookup
        """
        role = self.graph.declare(f"{self.prefix}-task-execution-role", "aws", "iam.Role", {
            "assumeRolePolicy": assume_role_policy("ecs-tasks.amazonaws.com"),
        })
        self._attach(f"{self.prefix}-task-execution-ecs", role, TASK_EXECUTION_POLICY)
        self._attach(f"{self.prefix}-task-execution-ecr", role, ECR_READ_ONLY_POLICY)

        if account_id is None:
            account_id = self.graph.lookup(
                "awsAccountId", "aws.getCallerIdentity", attribute="accountId"
            )

        region, project = self.config.aws_region, self.config.project_name
        if isinstance(account_id, Deferred):
            policy = account_id.apply(
                lambda account: parameter_read_policy(region, account, project),
                label="taskExecutionParameterPolicy",
            )
        else:
            policy = parameter_read_policy(region, account_id, project)

        self.graph.declare(f"{self.prefix}-task-execution-ssm", "aws", "iam.RolePolicy", {
            "role": role.output("name"),
            "policy": policy,
        })
        return role
