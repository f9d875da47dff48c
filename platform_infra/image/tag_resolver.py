"""
Image tag resolution.

The server image is addressed by the short commit of its checkout so every
deploy pins an immutable tag. Resolution never fails the build: when no
commit can be read the configured default tag is used and a warning is logged.
"""
import logging
import subprocess
from dataclasses import dataclass
from typing import Optional

from platform_infra.exceptions import ConfigurationError
from platform_infra.image.registry import RegistryClient
from platform_infra.settings import PlatformConfig

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_TAG = "latest"
FLOATING_TAGS = ("latest",)


@dataclass(frozen=True)
class ImageReference:
    """A deployable image: registry host, repository, tag and optional digest."""
    registry: str
    repository: str
    tag: str
    digest: Optional[str] = None

    @property
    def uri(self) -> str:
        name = f"{self.registry}/{self.repository}" if self.registry else self.repository
        if self.tag:
            name = f"{name}:{self.tag}"
        if self.digest:
            name = f"{name}@{self.digest}"
        return name

    @property
    def is_pinned(self) -> bool:
        return bool(self.digest) or self.tag not in FLOATING_TAGS

    @classmethod
    def parse(cls, uri: str) -> "ImageReference":
        """Split ``registry/repository[:tag][@digest]`` into its parts."""
        name, _, digest = uri.partition("@")
        head, sep, rest = name.partition("/")
        # First path segment is a registry host only if it looks like one
        if sep and ("." in head or ":" in head or head == "localhost"):
            registry, path = head, rest
        else:
            registry, path = "", name

        repository, sep, tag = path.rpartition(":")
        if not sep:
            repository, tag = path, ""
        if not tag and not digest:
            tag = DEFAULT_IMAGE_TAG
        return cls(registry=registry, repository=repository, tag=tag, digest=digest or None)

    def __str__(self) -> str:
        return self.uri


def get_git_commit(project_path: str) -> Optional[str]:
    """Read the short HEAD commit of a checkout; None if it cannot be read."""
    try:
        result = subprocess.run(
            ["git", "-C", str(project_path), "rev-parse", "--short", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.warning(f"Could not read git commit for {project_path}: {e}")
        return None

    commit = result.stdout.strip()
    return commit or None


def resolve_image_tag(project_path: str,
                      fallback_path: Optional[str] = None,
                      override: Optional[str] = None,
                      default: str = DEFAULT_IMAGE_TAG) -> str:
    """Resolve the image tag.

    Precedence: explicit override, primary checkout commit, fallback checkout
    commit, then ``default``.
    """
    if override:
        logger.info(f"Using image tag override: {override}")
        return override

    for path in (project_path, fallback_path):
        if not path:
            continue
        commit = get_git_commit(path)
        if commit:
            logger.info(f"Resolved image tag {commit} from {path}")
            return commit

    logger.warning(f"No git commit found, deploying unpinned tag '{default}'")
    return default


class ImageTagResolver:
    """Resolves the server image once per descriptor build."""

    def __init__(self, config: PlatformConfig, registry_client: Optional[RegistryClient] = None):
        self.config = config
        self._registry_client = registry_client
        self._image: Optional[ImageReference] = None

    @property
    def registry_client(self) -> RegistryClient:
        if self._registry_client is None:
            self._registry_client = RegistryClient(region=self.config.aws_region)
        return self._registry_client

    def resolve(self) -> ImageReference:
        """Resolve (and cache) the server image reference."""
        if self._image is not None:
            return self._image

        if self.config.server_image:
            image = ImageReference.parse(self.config.server_image)
        else:
            tag = resolve_image_tag(
                self.config.server_project_path,
                fallback_path=self.config.server_fallback_path,
                override=self.config.image_tag,
                default=self.config.default_image_tag,
            )
            image = ImageReference(
                registry=self.config.ecr_registry,
                repository=self.config.server_repository,
                tag=tag,
            )

        logger.info(f"Server image: {image.uri}")

        if self.config.require_pinned_tag and not image.is_pinned:
            raise ConfigurationError(f"Refusing to deploy floating image tag: {image.uri}")

        if self.config.verify_image:
            self.verify(image)

        self._image = image
        return image

    def verify(self, image: ImageReference) -> Optional[bool]:
        """Check the registry for the image; warn but never fail."""
        exists = self.registry_client.image_exists(image.repository, image.tag, digest=image.digest)
        if exists is False:
            logger.warning(f"Image {image.uri} is not in the registry yet; apply will fail until it is pushed")
        return exists
