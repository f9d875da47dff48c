"""AWS utility functions and client management."""
import os
import boto3
import logging
from typing import Any, Dict, Optional

from platform_infra.settings import get_settings

logger = logging.getLogger(__name__)


class AWSClientManager:
    """Singleton manager for AWS service clients."""
    _instance = None
    _clients: Dict[str, Any] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(AWSClientManager, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        """Initialize the client manager with settings."""
        self.settings = get_settings()
        self.region = self.settings.aws_region
        logger.info(f"Initializing AWSClientManager (region: {self.region})")

    def get_client(self, service_name: str, region: Optional[str] = None) -> Any:
        """Get or create an AWS service client."""
        region = region or self.region
        cache_key = f"{service_name}:{region}"
        if cache_key in self._clients:
            return self._clients[cache_key]

        # Check for AWS profile in environment (for SSO)
        aws_profile = os.environ.get('AWS_PROFILE')
        if aws_profile:
            try:
                session = boto3.Session(profile_name=aws_profile)
                client = session.client(service_name, region_name=region)
                self._clients[cache_key] = client
                logger.debug(f"Created {service_name} client using profile: {aws_profile}")
                return client
            except Exception as e:
                logger.warning(f"Failed to create client with profile {aws_profile}: {e}")

        try:
            client = boto3.client(service_name, region_name=region)
            self._clients[cache_key] = client
            logger.debug(f"Created {service_name} client")
            return client
        except Exception as e:
            logger.error(f"Error creating {service_name} client: {str(e)}")
            raise

    def clear_clients(self):
        """Clear all cached clients."""
        self._clients.clear()
        logger.debug("Cleared all AWS clients")


def get_ecr_client(region: Optional[str] = None):
    """Get the ECR client."""
    return AWSClientManager().get_client('ecr', region)
