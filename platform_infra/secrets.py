"""
Conditional secret provisioning.

Every recognised secret is written to the parameter store only when a value
was configured. Container definitions reference the parameter paths of all
recognised secrets regardless, so a missing value surfaces when the engine
applies the task definition, not while the descriptor is built.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from platform_infra.graph.declarations import DeclarationGraph, ResourceDeclaration
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)

RECOGNIZED_SECRETS = ("DATABASE_URL", "JWT_SECRET")


def parameter_path(project_name: str, secret_name: str) -> str:
    """Parameter store path for a secret, e.g. /picouncil/JWT_SECRET."""
    return f"/{project_name}/{secret_name}"


def provision_secret_parameters(graph: DeclarationGraph,
                                config: PlatformConfig,
                                values: Mapping[str, Any],
                                names: Sequence[str] = RECOGNIZED_SECRETS) -> Dict[str, ResourceDeclaration]:
    """Declare a SecureString parameter for each recognised secret with a value.

    Args:
        graph: Graph to add declarations to
        config: Platform configuration
        values: Secret values by name (SecretValue or secret-tainted Deferred)
        names: Recognised secret names, in declaration order

    Returns:
        Declared parameters by secret name
    """
    parameters = {}
    for name in names:
        value = values.get(name)
        if value is None:
            logger.warning(f"No value for secret {name}; parameter {parameter_path(config.project_name, name)} not declared")
            continue

        parameters[name] = graph.declare(
            f"{config.project_name}-{name}",
            "aws",
            "ssm.Parameter",
            {
                "name": parameter_path(config.project_name, name),
                "type": "SecureString",
                "value": value,
                "tags": {"Environment": config.environment},
            },
        )
    logger.info(f"Declared {len(parameters)} of {len(names)} secret parameters")
    return parameters


def container_secrets(config: PlatformConfig,
                      names: Sequence[str] = RECOGNIZED_SECRETS) -> List[Dict[str, str]]:
    """Container ``secrets`` entries pointing at the parameter paths."""
    return [
        {"name": name, "valueFrom": parameter_path(config.project_name, name)}
        for name in names
    ]


def configured_secrets(config: PlatformConfig,
                       names: Sequence[str] = RECOGNIZED_SECRETS,
                       overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Collect configured values for ``names``; overrides win when not None."""
    values: Dict[str, Any] = {}
    for name in names:
        override = (overrides or {}).get(name)
        values[name] = override if override is not None else config.secret(name)
    return values
