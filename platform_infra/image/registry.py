"""Read-only ECR checks for resolved server images."""
import logging
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

MISSING_IMAGE_CODES = ("ImageNotFoundException", "RepositoryNotFoundException")


class RegistryClient:
    """Existence checks against an ECR registry."""

    def __init__(self, ecr_client: Any = None, region: Optional[str] = None):
        if ecr_client is None:
            from platform_infra.aws.utils.aws_clients import get_ecr_client
            ecr_client = get_ecr_client(region)
        self.ecr_client = ecr_client

    def image_exists(self, repository: str, tag: Optional[str] = None,
                     digest: Optional[str] = None) -> Optional[bool]:
        """Check if ``repository:tag`` (or ``repository@digest``) is present.

        Returns:
            True/False when the registry answered, None when it could not be asked
        """
        image_id = {'imageDigest': digest} if digest else {'imageTag': tag}
        label = f"{repository}@{digest}" if digest else f"{repository}:{tag}"
        try:
            response = self.ecr_client.describe_images(
                repositoryName=repository,
                imageIds=[image_id]
            )
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code')
            if code in MISSING_IMAGE_CODES:
                logger.info(f"Image not found in registry: {label}")
                return False
            logger.warning(f"Could not check for image {label}: {e}")
            return None
        except BotoCoreError as e:
            logger.warning(f"Could not check for image {label}: {e}")
            return None

        images = response.get('imageDetails', [])
        if not images:
            return False

        image_size_mb = images[0].get('imageSizeInBytes', 0) / (1024 * 1024)
        logger.info(
            f"Found image {label}: {image_size_mb:.1f} MB, "
            f"pushed {images[0].get('imagePushedAt', 'unknown time')}"
        )
        return True
