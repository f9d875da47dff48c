"""End-to-end: config -> descriptor -> engine outputs -> resolved document."""
import base64
import json

import pytest

from platform_infra.settings import TOPOLOGY_NAMES
from platform_infra.topologies import build_descriptor
from tests.consts import TEST_COMMIT, TEST_REGISTRY, TEST_SERVER_PATH


def resolve_everything(graph):
    """Stand in for the provisioning engine: answer every pending root."""
    while graph.pending_values():
        for cell in graph.pending_values():
            cell.resolve(f"{cell.label}-value")


def test_bare_checkout_without_secrets(config_factory, fake_git):
    fake_git.commits[TEST_SERVER_PATH] = TEST_COMMIT
    config = config_factory()

    graph = build_descriptor(config)

    assert graph.outputs["serverImage"] == f"{TEST_REGISTRY}/picouncil-server:{TEST_COMMIT}"
    assert graph.of_kind("ssm.Parameter") == []
    assert "picouncil-api-tunnel" not in graph

    resolve_everything(graph)
    user_data = graph.get("picouncil-ecs-instance").properties["userData"].value
    script = base64.b64decode(user_data).decode("utf-8")
    assert "ECS_CLUSTER=picouncil-cluster.name-value" in script
    assert "cloudflared" not in script


@pytest.mark.parametrize("topology", TOPOLOGY_NAMES)
def test_descriptor_round_trip(topology, config_factory, full_secrets, fake_git):
    fake_git.commits[TEST_SERVER_PATH] = TEST_COMMIT
    config = config_factory(topology=topology, db_password="pw", **full_secrets)

    first = build_descriptor(config)
    second = build_descriptor(config)
    assert first.render_json() == second.render_json()

    rendered = first.render_json()
    for secret in full_secrets.values():
        assert secret not in rendered

    resolve_everything(first)
    document = json.loads(first.render_json())

    assert first.pending_values() == []
    assert '"ref":' not in json.dumps(document)
    assert '"deferred":' not in json.dumps(document)
    assert document["outputs"]["vpcId"] == "picouncil-vpc.id-value"
    assert first.digest() != second.digest()
