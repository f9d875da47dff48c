"""RDS PostgreSQL declarations and the derived connection string."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from platform_infra.aws.infrastructure.network import NetworkResources, VPCNetworkBuilder, ingress_rule
from platform_infra.exceptions import ConfigurationError
from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.graph.deferred import Deferred, SecretValue
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)

POSTGRES_PORT = 5432
POSTGRES_ENGINE_VERSION = "16"


def connection_url(username: str, password: str, host: str, db_name: str,
                   port: int = POSTGRES_PORT) -> str:
    """postgresql:// URL with the credentials percent-encoded."""
    return f"postgresql://{quote(username, safe='')}:{quote(password, safe='')}@{host}:{port}/{db_name}"


@dataclass
class DatabaseResources:
    subnet_group: ResourceDeclaration
    security_group: ResourceDeclaration
    instance: ResourceDeclaration
    connection_url: Optional[Deferred] = None


class DatabaseBuilder:
    """Builder for a private PostgreSQL instance reachable from the service groups."""

    def __init__(self, graph: DeclarationGraph, config: PlatformConfig):
        self.graph = graph
        self.config = config
        self.prefix = config.project_name

    def build_database(self, network: NetworkResources, client_security_groups: List[ResourceDeclaration],
                       password: Optional[SecretValue] = None) -> DatabaseResources:
        """Declare subnet group, security group and instance.

        Without a password the master password is managed by AWS and no
        connection string can be derived here.
        """
        if len(network.subnets) < 2:
            raise ConfigurationError("RDS needs subnets in at least two availability zones")

        subnet_group = self.graph.declare(f"{self.prefix}-db-subnets", "aws", "rds.SubnetGroup", {
            "subnetIds": network.subnet_ids,
            "tags": {"Name": f"{self.prefix}-db-subnets"},
        })

        security_group = VPCNetworkBuilder(self.graph, self.config).build_security_group(
            network,
            f"{self.prefix}-db-sg",
            "PostgreSQL from ECS tasks",
            [ingress_rule(POSTGRES_PORT, "PostgreSQL",
                          security_groups=[sg.id for sg in client_security_groups])],
        )

        properties: Dict[str, Any] = {
            "identifier": f"{self.prefix}-db",
            "engine": "postgres",
            "engineVersion": POSTGRES_ENGINE_VERSION,
            "instanceClass": self.config.db_instance_class,
            "allocatedStorage": 20,
            "storageType": "gp3",
            "dbName": self.config.db_name,
            "username": self.config.db_username,
            "dbSubnetGroupName": subnet_group.output("name"),
            "vpcSecurityGroupIds": [security_group.id],
            "publiclyAccessible": False,
            "skipFinalSnapshot": False,
            "finalSnapshotIdentifier": f"{self.prefix}-db-final",
            "backupRetentionPeriod": 7,
            "tags": {"Name": f"{self.prefix}-db"},
        }
        if password is not None:
            properties["password"] = password
        else:
            logger.warning("DB_PASSWORD not set; RDS will manage the master password and DATABASE_URL must be supplied")
            properties["manageMasterUserPassword"] = True

        instance = self.graph.declare(f"{self.prefix}-db", "aws", "rds.Instance", properties)

        url = None
        if password is not None:
            username, db_name = self.config.db_username, self.config.db_name
            url = Deferred.all(instance.output("address"), Deferred.from_secret(password),
                               label="DATABASE_URL").apply(
                lambda values: connection_url(username, values[1], values[0], db_name),
                label="DATABASE_URL",
            )

        return DatabaseResources(
            subnet_group=subnet_group,
            security_group=security_group,
            instance=instance,
            connection_url=url,
        )
