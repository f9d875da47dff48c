import json

import pytest

from platform_infra.exceptions import CyclicReferenceError, DuplicateDeclarationError, UnknownReferenceError
from platform_infra.graph.declarations import DeclarationGraph
from platform_infra.graph.deferred import ResourceOutput


def small_graph() -> DeclarationGraph:
    graph = DeclarationGraph("demo", "ec2-tunnel")
    vpc = graph.declare("demo-vpc", "aws", "ec2.Vpc", {"cidrBlock": "10.0.0.0/16"})
    igw = graph.declare("demo-igw", "aws", "ec2.InternetGateway", {"vpcId": vpc.id})
    subnet = graph.declare("demo-subnet", "aws", "ec2.Subnet", {"vpcId": vpc.id, "cidrBlock": "10.0.1.0/24"})
    graph.declare("demo-rt", "aws", "ec2.RouteTable", {
        "vpcId": vpc.id,
        "routes": [{"cidrBlock": "0.0.0.0/0", "gatewayId": igw.id}],
    })
    graph.declare("demo-rt-assoc", "aws", "ec2.RouteTableAssociation", {
        "subnetId": subnet.id,
        "routeTableId": graph.get("demo-rt").id,
    })
    graph.export("vpcId", vpc.id)
    return graph


def test_references_are_discovered_from_properties():
    graph = small_graph()
    assert graph.get("demo-rt").references() == ["demo-vpc", "demo-igw"]
    assert graph.get("demo-rt-assoc").references() == ["demo-subnet", "demo-rt"]


def test_duplicate_declaration_rejected():
    graph = small_graph()
    with pytest.raises(DuplicateDeclarationError):
        graph.declare("demo-vpc", "aws", "ec2.Vpc", {})


def test_reference_to_undeclared_resource_rejected():
    graph = small_graph()
    with pytest.raises(UnknownReferenceError):
        graph.declare("demo-sg", "aws", "ec2.SecurityGroup", {"vpcId": ResourceOutput("ghost-vpc", "id")})
    with pytest.raises(UnknownReferenceError):
        graph.declare("demo-sg", "aws", "ec2.SecurityGroup", {}, depends_on=["ghost-vpc"])
    assert "demo-sg" not in graph


def test_topological_order_puts_dependencies_first():
    graph = small_graph()
    order = [declaration.name for declaration in graph.topological_order()]

    assert order == ["demo-vpc", "demo-igw", "demo-subnet", "demo-rt", "demo-rt-assoc"]
    for index, declaration in enumerate(graph):
        assert all(order.index(ref) < index for ref in declaration.references())


def test_cycle_detected():
    graph = small_graph()
    graph.get("demo-vpc").depends_on.append("demo-rt-assoc")

    with pytest.raises(CyclicReferenceError):
        graph.topological_order()


def test_dependency_closure():
    graph = small_graph()
    assert sorted(graph.dependency_closure("demo-rt-assoc")) == [
        "demo-igw", "demo-rt", "demo-subnet", "demo-vpc",
    ]


def test_document_shape():
    document = small_graph().to_document()

    assert document["version"] == 1
    assert document["project"] == "demo"
    assert document["topology"] == "ec2-tunnel"
    subnet = document["declarations"][2]
    assert subnet == {
        "name": "demo-subnet",
        "provider": "aws",
        "type": "ec2.Subnet",
        "properties": {"vpcId": {"ref": "demo-vpc", "attr": "id"}, "cidrBlock": "10.0.1.0/24"},
        "dependsOn": ["demo-vpc"],
    }
    assert document["outputs"] == {"vpcId": {"ref": "demo-vpc", "attr": "id"}}


def test_rendering_is_deterministic():
    first, second = small_graph(), small_graph()

    assert first.render_json() == second.render_json()
    assert first.digest() == second.digest()
    json.loads(first.render_json())


def test_lookups_are_shared_by_name():
    graph = small_graph()
    first = graph.lookup("awsAccountId", "aws.getCallerIdentity", attribute="accountId")
    second = graph.lookup("awsAccountId", "aws.getCallerIdentity", attribute="accountId")

    assert first is second
    assert graph.to_document()["lookups"] == [
        {"lookup": "aws.getCallerIdentity", "name": "awsAccountId", "args": {}, "attr": "accountId"},
    ]


def test_lookup_with_unknown_reference_rejected():
    graph = small_graph()
    with pytest.raises(UnknownReferenceError):
        graph.lookup("tunnelToken", "cloudflare.getZeroTrustTunnelCloudflaredToken",
                     {"tunnelId": ResourceOutput("ghost-tunnel", "id")})


def test_apply_resolved_outputs_round_trip():
    graph = small_graph()
    account = graph.lookup("awsAccountId", "aws.getCallerIdentity", attribute="accountId")
    graph.export("accountArn", account.apply(lambda value: f"arn:aws:iam::{value}:root", label="accountArn"))

    count = graph.apply_resolved_outputs({
        "resources": {
            "demo-vpc": {"id": "vpc-0abc"},
            "ghost": {"id": "ignored"},
        },
        "lookups": {"awsAccountId": "123456789012", "unknown": "ignored"},
    })

    assert count == 2
    document = graph.to_document()
    assert document["outputs"] == {"vpcId": "vpc-0abc", "accountArn": "arn:aws:iam::123456789012:root"}
    assert document["declarations"][1]["properties"]["vpcId"] == "vpc-0abc"
    assert {cell.label for cell in graph.pending_values()} == {
        "demo-igw.id", "demo-subnet.id", "demo-rt.id",
    }
