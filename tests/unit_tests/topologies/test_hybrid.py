import json

import pytest

from platform_infra.exceptions import ConfigurationError
from platform_infra.topologies import TOPOLOGIES, build_descriptor, get_topology


@pytest.fixture
def graph(config_factory, full_secrets, server_image):
    config = config_factory(topology="hybrid", worker_command="python -m worker --queue 'image jobs'",
                            **full_secrets)
    return build_descriptor(config, image=server_image)


def test_registry():
    assert sorted(TOPOLOGIES) == ["ec2-tunnel", "fargate-alb", "hybrid"]
    with pytest.raises(ConfigurationError):
        get_topology("kubernetes")


def test_topology_argument_overrides_config(config_factory, server_image):
    graph = build_descriptor(config_factory(), topology="hybrid", image=server_image)
    assert graph.topology == "hybrid"


def test_api_on_ec2_behind_tunnel(graph):
    assert "picouncil-ecs-instance" in graph
    assert "picouncil-api-tunnel" in graph
    assert graph.get("picouncil-server-service").properties["launchType"] == "EC2"
    assert graph.of_kind("lb.LoadBalancer") == []


def test_worker_on_fargate(graph):
    service = graph.get("picouncil-server-worker-service").properties
    assert service["launchType"] == "FARGATE"
    assert [sg.resource_name for sg in service["networkConfiguration"]["securityGroups"]] == [
        "picouncil-worker-sg"
    ]
    assert "loadBalancers" not in service
    assert graph.get("picouncil-worker-sg").properties["ingress"] == []


def test_worker_command_split_like_a_shell(graph):
    task = graph.get("picouncil-server-worker-task").properties
    graph.apply_resolved_outputs({"resources": {"picouncil-logs": {"name": "/ecs/picouncil-server"}}})

    [container] = json.loads(task["containerDefinitions"].value)
    assert container["command"] == ["python", "-m", "worker", "--queue", "image jobs"]
    assert container["image"].endswith("picouncil-server:abc1234")
    assert "portMappings" not in container
    assert container["logConfiguration"]["options"]["awslogs-stream-prefix"] == "worker"


def test_database_shared_by_api_host_and_worker(graph):
    [rule] = graph.get("picouncil-db-sg").properties["ingress"]
    assert [sg.resource_name for sg in rule["securityGroups"]] == ["picouncil-sg", "picouncil-worker-sg"]
    assert len(graph.of_kind("rds.SubnetGroup")) == 1


def test_explicit_database_url_used(graph):
    value = graph.get("picouncil-DATABASE_URL").properties["value"]
    assert value.reveal().startswith("postgresql://picouncil:pw@db.example.com")


def test_outputs(graph):
    outputs = graph.to_document()["outputs"]
    assert outputs["instancePublicIp"] == {"ref": "picouncil-ecs-instance", "attr": "publicIp"}
    assert outputs["databaseEndpoint"] == {"ref": "picouncil-db", "attr": "endpoint"}
    assert outputs["storageBucketName"] == {"ref": "picouncil-images", "attr": "name"}
