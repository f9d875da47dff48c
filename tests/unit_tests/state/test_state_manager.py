import json

import pytest

from platform_infra.state.state_manager import StateManager
from platform_infra.topologies import build_descriptor


@pytest.fixture
def manager(tmp_path):
    return StateManager(str(tmp_path / "state.json"))


@pytest.fixture
def graph(config_factory, server_image):
    return build_descriptor(config_factory(), image=server_image)


def test_fresh_state(manager):
    assert manager.status()["status"] == "not_synthesized"
    assert manager.status()["outputs"] == 0


def test_record_synthesis(manager, graph, server_image):
    manager.record_synthesis(graph, server_image.uri)

    reloaded = StateManager(manager.state_file)
    status = reloaded.status()
    assert status["status"] == "synthesized"
    assert status["topology"] == "ec2-tunnel"
    assert status["descriptor_digest"] == graph.digest()
    assert status["server_image"] == server_image.uri


def test_record_outputs_and_export(manager, graph, server_image, tmp_path):
    manager.record_synthesis(graph, server_image.uri)
    manager.record_outputs({
        "vpcId": "vpc-0abc",
        "ecrRepositoryUrl": "066047414165.dkr.ecr.ap-northeast-2.amazonaws.com/picouncil-server",
        "instancePublicIp": {"ref": "picouncil-ecs-instance", "attr": "publicIp"},
    })

    env_file = manager.export_env_file(str(tmp_path / ".env.platform"))

    content = (tmp_path / ".env.platform").read_text()
    assert env_file.endswith(".env.platform")
    assert "VPC_ID=vpc-0abc" in content
    assert "ECR_REPOSITORY_URL=066047414165.dkr.ecr.ap-northeast-2.amazonaws.com/picouncil-server" in content
    assert "INSTANCE_PUBLIC_IP" not in content
    assert manager.get_output("vpcId") == "vpc-0abc"
    assert manager.status()["status"] == "applied"


def test_export_without_outputs(manager, tmp_path):
    assert manager.export_env_file(str(tmp_path / ".env.platform")) is None
    assert not (tmp_path / ".env.platform").exists()


def test_clear_state(manager, graph, server_image):
    manager.record_synthesis(graph, server_image.uri)
    manager.clear_state()

    assert manager.status()["status"] == "not_synthesized"


def test_unreadable_state_file(tmp_path):
    state_file = tmp_path / "state.json"
    state_file.write_text("{not json")

    assert StateManager(str(state_file)).status()["status"] == "not_synthesized"


def test_state_file_is_json(manager, graph, server_image):
    manager.record_synthesis(graph, server_image.uri)
    with open(manager.state_file) as f:
        assert json.load(f)["project"] == "picouncil"
