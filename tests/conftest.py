"""Shared fixtures for descriptor tests."""
import subprocess

import pytest
from moto import mock_aws

from platform_infra.image.tag_resolver import ImageReference
from platform_infra.settings import Settings, get_settings
from tests.consts import (
    CLOUDFLARE_ACCOUNT_ID,
    CLOUDFLARE_ZONE_ID,
    TEST_COMMIT,
    TEST_REGION,
    TEST_REGISTRY,
    TEST_REPOSITORY,
    TEST_SERVER_PATH,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the developer's shell and .env out of Settings."""
    for name in Settings.model_fields:
        monkeypatch.delenv(name.upper(), raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def mocked_aws(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    with mock_aws():
        yield


@pytest.fixture
def settings_factory():
    def make(**overrides) -> Settings:
        values = {
            "cloudflare_account_id": CLOUDFLARE_ACCOUNT_ID,
            "cloudflare_zone_id": CLOUDFLARE_ZONE_ID,
            "server_project_path": TEST_SERVER_PATH,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return make


@pytest.fixture
def config_factory(settings_factory):
    def make(**overrides):
        return settings_factory(**overrides).to_platform_config()
    return make


@pytest.fixture
def full_secrets():
    return {
        "cloudflare_tunnel_secret": "dHVubmVsLXNlY3JldA==",
        "database_url": "postgresql://picouncil:pw@db.example.com:5432/picouncil",
        "jwt_secret": "jwt-signing-key",
    }


@pytest.fixture
def server_image():
    return ImageReference(registry=TEST_REGISTRY, repository=TEST_REPOSITORY, tag=TEST_COMMIT)


class FakeGit:
    """Stands in for `git rev-parse`; answers from a {path: commit} dict."""

    def __init__(self):
        self.commits = {}
        self.calls = []

    def run(self, cmd, **kwargs):
        path = cmd[2]
        self.calls.append(path)
        if path not in self.commits:
            raise subprocess.CalledProcessError(128, cmd, stderr=f"fatal: not a git repository: {path}")
        return subprocess.CompletedProcess(cmd, 0, stdout=f"{self.commits[path]}\n", stderr="")


@pytest.fixture
def fake_git(monkeypatch):
    git = FakeGit()
    monkeypatch.setattr("platform_infra.image.tag_resolver.subprocess.run", git.run)
    return git
