import json

import boto3
from botocore.exceptions import ClientError

from platform_infra.image.registry import RegistryClient
from tests.consts import TEST_COMMIT, TEST_REGION, TEST_REPOSITORY

MANIFEST = json.dumps({
    "schemaVersion": 2,
    "mediaType": "application/vnd.docker.distribution.manifest.v2+json",
    "config": {
        "mediaType": "application/vnd.docker.container.image.v1+json",
        "size": 7023,
        "digest": "sha256:b5b2b2c507a0944348e0303114d8d93aaaa081732b86451d9bce1f432a537bc7",
    },
    "layers": [{
        "mediaType": "application/vnd.docker.image.rootfs.diff.tar.gzip",
        "size": 32654,
        "digest": "sha256:e692418e4cbaf90ca69d05a66403747baa33ee08806650b51fab815ad7fc331f",
    }],
})


def push_image(ecr_client, tag):
    ecr_client.create_repository(repositoryName=TEST_REPOSITORY)
    ecr_client.put_image(repositoryName=TEST_REPOSITORY, imageManifest=MANIFEST, imageTag=tag)


def test_image_exists(mocked_aws):
    ecr_client = boto3.client("ecr", region_name=TEST_REGION)
    push_image(ecr_client, TEST_COMMIT)

    assert RegistryClient(ecr_client=ecr_client).image_exists(TEST_REPOSITORY, TEST_COMMIT) is True


def test_missing_tag(mocked_aws):
    ecr_client = boto3.client("ecr", region_name=TEST_REGION)
    push_image(ecr_client, TEST_COMMIT)

    assert RegistryClient(ecr_client=ecr_client).image_exists(TEST_REPOSITORY, "def5678") is False


def test_missing_repository(mocked_aws):
    ecr_client = boto3.client("ecr", region_name=TEST_REGION)
    assert RegistryClient(ecr_client=ecr_client).image_exists(TEST_REPOSITORY, TEST_COMMIT) is False


class DeniedECR:
    def describe_images(self, **kwargs):
        raise ClientError(
            {"Error": {"Code": "AccessDeniedException", "Message": "not authorized"}},
            "DescribeImages",
        )


def test_unknown_when_registry_cannot_be_asked(caplog):
    assert RegistryClient(ecr_client=DeniedECR()).image_exists(TEST_REPOSITORY, TEST_COMMIT) is None
    assert "Could not check" in caplog.text


def test_image_exists_by_digest(mocked_aws):
    ecr_client = boto3.client("ecr", region_name=TEST_REGION)
    push_image(ecr_client, TEST_COMMIT)
    [image] = ecr_client.describe_images(repositoryName=TEST_REPOSITORY)["imageDetails"]

    registry = RegistryClient(ecr_client=ecr_client)

    assert registry.image_exists(TEST_REPOSITORY, digest=image["imageDigest"]) is True
