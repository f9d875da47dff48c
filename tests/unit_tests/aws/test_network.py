import pytest

from platform_infra.aws.infrastructure.database import DatabaseBuilder
from platform_infra.aws.infrastructure.network import VPCNetworkBuilder
from platform_infra.exceptions import ConfigurationError
from platform_infra.graph.declarations import DeclarationGraph


@pytest.fixture
def graph():
    return DeclarationGraph("picouncil", "fargate-alb")


@pytest.mark.parametrize("subnet_count", [0, 3])
def test_subnet_count_out_of_range(graph, config_factory, subnet_count):
    with pytest.raises(ConfigurationError, match="subnet_count"):
        VPCNetworkBuilder(graph, config_factory()).build_network(subnet_count=subnet_count)


def test_two_subnets_in_separate_zones(graph, config_factory):
    network = VPCNetworkBuilder(graph, config_factory()).build_network(subnet_count=2)
    zones = [subnet.properties["availabilityZone"] for subnet in network.subnets]
    assert len(set(zones)) == 2


def test_database_needs_two_zones(graph, config_factory):
    config = config_factory()
    network = VPCNetworkBuilder(graph, config).build_network(subnet_count=1)

    with pytest.raises(ConfigurationError, match="two availability zones"):
        DatabaseBuilder(graph, config).build_database(network, [])
    assert "picouncil-db" not in graph
