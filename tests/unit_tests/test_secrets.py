import pytest

from platform_infra.graph.declarations import DeclarationGraph
from platform_infra.graph.deferred import SecretValue
from platform_infra.secrets import (
    RECOGNIZED_SECRETS,
    configured_secrets,
    container_secrets,
    parameter_path,
    provision_secret_parameters,
)
from tests.consts import TEST_PROJECT


@pytest.fixture
def graph():
    return DeclarationGraph(TEST_PROJECT, "ec2-tunnel")


def test_parameter_path():
    assert parameter_path(TEST_PROJECT, "JWT_SECRET") == "/picouncil/JWT_SECRET"


@pytest.mark.parametrize("supplied", [
    (),
    ("JWT_SECRET",),
    ("DATABASE_URL",),
    ("DATABASE_URL", "JWT_SECRET"),
])
def test_parameter_declared_iff_value_supplied(graph, config_factory, supplied):
    values = {name: SecretValue(name, f"{name.lower()}-value") for name in supplied}

    parameters = provision_secret_parameters(graph, config_factory(), values)

    assert sorted(parameters) == sorted(supplied)
    assert sorted(d.name for d in graph.of_kind("ssm.Parameter")) == sorted(
        f"{TEST_PROJECT}-{name}" for name in supplied
    )


def test_missing_secret_logs_warning(graph, config_factory, caplog):
    provision_secret_parameters(graph, config_factory(), {"JWT_SECRET": SecretValue("JWT_SECRET", "k")})
    assert "/picouncil/DATABASE_URL not declared" in caplog.text


def test_parameter_properties_mask_value(graph, config_factory):
    provision_secret_parameters(graph, config_factory(), {"JWT_SECRET": SecretValue("JWT_SECRET", "k")})
    parameter = graph.get("picouncil-JWT_SECRET")

    assert parameter.to_dict()["properties"] == {
        "name": "/picouncil/JWT_SECRET",
        "type": "SecureString",
        "value": {"secret": "JWT_SECRET"},
        "tags": {"Environment": "production"},
    }
    assert parameter.to_dict(reveal_secrets=True)["properties"]["value"] == "k"


def test_container_secrets_reference_every_recognized_name(config_factory):
    assert container_secrets(config_factory()) == [
        {"name": "DATABASE_URL", "valueFrom": "/picouncil/DATABASE_URL"},
        {"name": "JWT_SECRET", "valueFrom": "/picouncil/JWT_SECRET"},
    ]


def test_configured_secrets_prefers_overrides(config_factory):
    config = config_factory(jwt_secret="from-env")
    derived = SecretValue("DATABASE_URL", "postgresql://derived")

    values = configured_secrets(config, overrides={"DATABASE_URL": derived, "JWT_SECRET": None})

    assert list(values) == list(RECOGNIZED_SECRETS)
    assert values["DATABASE_URL"] is derived
    assert values["JWT_SECRET"].reveal() == "from-env"
