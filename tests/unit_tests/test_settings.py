import dataclasses

import pytest
from pydantic import ValidationError

from platform_infra.exceptions import ConfigurationError
from platform_infra.graph.deferred import SecretValue
from platform_infra.settings import Settings, get_settings, get_settings_with_env_file
from tests.consts import TEST_REGISTRY


def test_defaults(settings_factory):
    settings = settings_factory()

    assert settings.project_name == "picouncil"
    assert settings.topology == "ec2-tunnel"
    assert settings.registry_host == TEST_REGISTRY


def test_explicit_registry(settings_factory):
    assert settings_factory(ecr_registry="registry.example.com").registry_host == "registry.example.com"


def test_environment_variables(monkeypatch):
    monkeypatch.setenv("PROJECT_NAME", "demo")
    monkeypatch.setenv("TOPOLOGY", "hybrid")
    monkeypatch.setenv("CONTAINER_PORT", "3000")

    settings = Settings(_env_file=None)

    assert settings.project_name == "demo"
    assert settings.topology == "hybrid"
    assert settings.container_port == 3000


def test_invalid_topology(settings_factory):
    with pytest.raises(ValidationError):
        settings_factory(topology="kubernetes")


def test_non_positive_port(settings_factory):
    with pytest.raises(ValidationError):
        settings_factory(container_port=0)


def test_log_level_normalized(settings_factory):
    assert settings_factory(log_level="debug").log_level == "DEBUG"


def test_unknown_log_level(settings_factory):
    with pytest.raises(ValidationError):
        settings_factory(log_level="verbose")


def test_cloudflare_ids_required():
    with pytest.raises(ConfigurationError, match="CLOUDFLARE_ACCOUNT_ID"):
        Settings(_env_file=None, cloudflare_zone_id="zone").to_platform_config()


def test_platform_config_is_frozen(config_factory):
    config = config_factory()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.project_name = "other"


def test_secrets_wrapped_and_hidden(settings_factory, full_secrets):
    settings = settings_factory(**full_secrets)
    config = settings.to_platform_config()

    assert isinstance(config.tunnel_secret, SecretValue)
    assert config.secret("JWT_SECRET").reveal() == "jwt-signing-key"
    assert config.secret("DB_PASSWORD") is None
    assert "jwt-signing-key" not in repr(settings)
    assert "jwt-signing-key" not in repr(config)


def test_empty_secret_treated_as_absent(config_factory):
    assert config_factory(jwt_secret="").secret("JWT_SECRET") is None


def test_derived_names(config_factory):
    config = config_factory(domain="example.org", server_repository="api-server")

    assert config.api_host == "api.example.org"
    assert config.images_host == "images.example.org"
    assert config.log_group_name == "/ecs/api-server"


def test_settings_from_env_file(tmp_path, monkeypatch):
    env_file = tmp_path / ".env.staging"
    env_file.write_text("PROJECT_NAME=staging-council\nENVIRONMENT=staging\n")
    # Registered so monkeypatch removes what load_dotenv sets
    monkeypatch.setenv("PROJECT_NAME", "placeholder")
    monkeypatch.setenv("ENVIRONMENT", "placeholder")

    settings = get_settings_with_env_file(str(env_file))

    assert settings.project_name == "staging-council"
    assert settings.environment == "staging"
    assert get_settings() is settings
