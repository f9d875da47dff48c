# platform_infra/settings.py
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping, Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from platform_infra.exceptions import ConfigurationError
from platform_infra.graph.deferred import SecretValue

logger = logging.getLogger(__name__)

TOPOLOGY_NAMES = ("ec2-tunnel", "fargate-alb", "hybrid")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Config keys that carry secret material, keyed by the name used for the
# parameter store entry / container secret.
SECRET_FIELDS = {
    "DATABASE_URL": "database_url",
    "JWT_SECRET": "jwt_secret",
    "DB_PASSWORD": "db_password",
    "CLOUDFLARE_TUNNEL_SECRET": "cloudflare_tunnel_secret",
}


@dataclass(frozen=True)
class PlatformConfig:
    """Immutable configuration handed to every descriptor builder."""
    project_name: str
    domain: str
    environment: str
    aws_region: str
    ecr_registry: str
    server_repository: str
    server_project_path: str
    cloudflare_account_id: str
    cloudflare_zone_id: str
    topology: str = "ec2-tunnel"
    server_fallback_path: Optional[str] = None
    server_image: Optional[str] = None
    image_tag: Optional[str] = None
    default_image_tag: str = "latest"
    verify_image: bool = False
    require_pinned_tag: bool = False
    instance_type: str = "t4g.nano"
    container_port: int = 8080
    fargate_cpu: int = 256
    fargate_memory: int = 512
    desired_count: int = 1
    worker_command: str = "worker"
    db_instance_class: str = "db.t4g.micro"
    db_name: str = "picouncil"
    db_username: str = "picouncil"
    certificate_arn: Optional[str] = None
    web_apex_ip: str = "216.198.79.1"
    web_www_target: str = "picouncil-web-pied.vercel.app"
    web_admin_target: str = "picouncil-admin.vercel.app"
    secrets: Mapping[str, SecretValue] = field(default_factory=lambda: MappingProxyType({}))

    def secret(self, name: str) -> Optional[SecretValue]:
        """Return the configured secret for ``name`` or None."""
        return self.secrets.get(name)

    @property
    def tunnel_secret(self) -> Optional[SecretValue]:
        return self.secret("CLOUDFLARE_TUNNEL_SECRET")

    @property
    def log_group_name(self) -> str:
        return f"/ecs/{self.server_repository}"

    @property
    def api_host(self) -> str:
        return f"api.{self.domain}"

    @property
    def images_host(self) -> str:
        return f"images.{self.domain}"


class Settings(BaseSettings):
    """
    Single source of truth for deployment descriptor settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from platform_infra.settings import get_settings
        config = get_settings().to_platform_config()
    """

    # Platform
    project_name: str = Field(
        default="picouncil",
        description="Prefix for every declared resource"
    )

    domain: str = Field(
        default="picouncil.com",
        description="Public apex domain served through Cloudflare"
    )

    environment: str = Field(
        default="production",
        description="Environment tag applied to parameters and containers"
    )

    topology: str = Field(
        default="ec2-tunnel",
        description="Deployment topology: ec2-tunnel, fargate-alb or hybrid"
    )

    # AWS
    aws_region: str = Field(
        default="ap-northeast-2",
        description="AWS region for every AWS declaration"
    )

    aws_account_id: str = Field(
        default="066047414165",
        description="AWS account that owns the container registry"
    )

    ecr_registry: Optional[str] = Field(
        default=None,
        description="Container registry host (derived from account and region if unset)"
    )

    # Server image
    server_repository: str = Field(
        default="picouncil-server",
        description="ECR repository holding the server image"
    )

    server_project_path: str = Field(
        default="../picouncil-server",
        description="Server checkout used to derive the image tag"
    )

    server_fallback_path: Optional[str] = Field(
        default=None,
        description="Secondary checkout tried when the primary one has no commit"
    )

    server_image: Optional[str] = Field(
        default=None,
        description="Full image URI override; skips tag resolution"
    )

    image_tag: Optional[str] = Field(
        default=None,
        description="Explicit image tag override"
    )

    default_image_tag: str = Field(
        default="latest",
        description="Tag used when no commit can be resolved"
    )

    verify_image: bool = Field(
        default=False,
        description="Check that the resolved image exists in ECR"
    )

    require_pinned_tag: bool = Field(
        default=False,
        description="Fail instead of deploying a floating tag"
    )

    # Compute sizing
    instance_type: str = Field(
        default="t4g.nano",
        description="EC2 instance type for ECS container instances"
    )

    container_port: int = Field(default=8080)
    fargate_cpu: int = Field(default=256)
    fargate_memory: int = Field(default=512)
    desired_count: int = Field(default=1)

    worker_command: str = Field(
        default="worker",
        description="Command run by the Fargate worker in the hybrid topology"
    )

    # Database
    db_instance_class: str = Field(default="db.t4g.micro")
    db_name: str = Field(default="picouncil")
    db_username: str = Field(default="picouncil")

    # Cloudflare
    cloudflare_account_id: Optional[str] = Field(default=None)
    cloudflare_zone_id: Optional[str] = Field(default=None)

    # Front ends (hosted on Vercel)
    web_apex_ip: str = Field(default="216.198.79.1")
    web_www_target: str = Field(default="picouncil-web-pied.vercel.app")
    web_admin_target: str = Field(default="picouncil-admin.vercel.app")

    # Secrets
    cloudflare_tunnel_secret: Optional[str] = Field(default=None, repr=False)
    database_url: Optional[str] = Field(default=None, repr=False)
    jwt_secret: Optional[str] = Field(default=None, repr=False)
    db_password: Optional[str] = Field(default=None, repr=False)
    certificate_arn: Optional[str] = Field(default=None)

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @validator('topology')
    def validate_topology(cls, v):
        """Validate topology is one of the known layouts."""
        if v not in TOPOLOGY_NAMES:
            raise ValueError(f"Invalid topology: {v}. Must be one of {list(TOPOLOGY_NAMES)}")
        return v

    @validator('log_level')
    def validate_log_level(cls, v):
        """Validate log level is a standard logging level name."""
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {list(LOG_LEVELS)}")
        return level

    @validator('container_port', 'fargate_cpu', 'fargate_memory')
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @property
    def registry_host(self) -> str:
        """Get ECR registry host."""
        if self.ecr_registry:
            return self.ecr_registry
        return f"{self.aws_account_id}.dkr.ecr.{self.aws_region}.amazonaws.com"

    def to_platform_config(self) -> PlatformConfig:
        """Freeze these settings into the config passed to builders."""
        missing = [
            key for key in ("cloudflare_account_id", "cloudflare_zone_id")
            if not getattr(self, key)
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(k.upper() for k in missing)}"
            )

        secrets = {}
        for name, attr in SECRET_FIELDS.items():
            value = getattr(self, attr)
            if value:
                secrets[name] = SecretValue(name, value)

        return PlatformConfig(
            project_name=self.project_name,
            domain=self.domain,
            environment=self.environment,
            aws_region=self.aws_region,
            ecr_registry=self.registry_host,
            server_repository=self.server_repository,
            server_project_path=self.server_project_path,
            server_fallback_path=self.server_fallback_path,
            server_image=self.server_image,
            image_tag=self.image_tag,
            default_image_tag=self.default_image_tag,
            verify_image=self.verify_image,
            require_pinned_tag=self.require_pinned_tag,
            cloudflare_account_id=self.cloudflare_account_id,
            cloudflare_zone_id=self.cloudflare_zone_id,
            topology=self.topology,
            instance_type=self.instance_type,
            container_port=self.container_port,
            fargate_cpu=self.fargate_cpu,
            fargate_memory=self.fargate_memory,
            desired_count=self.desired_count,
            worker_command=self.worker_command,
            db_instance_class=self.db_instance_class,
            db_name=self.db_name,
            db_username=self.db_username,
            certificate_arn=self.certificate_arn,
            web_apex_ip=self.web_apex_ip,
            web_www_target=self.web_www_target,
            web_admin_target=self.web_admin_target,
            secrets=MappingProxyType(secrets),
        )

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()


def get_settings_with_env_file(env_file: Optional[str] = None) -> Settings:
    """
    Get settings after loading an extra .env file into the environment.

    Args:
        env_file: Path to .env file (e.g., '.env.production')

    Returns:
        Fresh Settings instance
    """
    if env_file:
        from dotenv import load_dotenv
        if not load_dotenv(env_file, override=True):
            logger.warning(f"No variables loaded from {env_file}")

    get_settings.cache_clear()
    return get_settings()
