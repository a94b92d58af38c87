import pytest
from pydantic import ValidationError

from provisioning.models import (
    AmiType,
    CapacityType,
    ClusterSpec,
    NatGatewayStrategy,
    NetworkInput,
    NetworkSpec,
    NodeGroupSpec,
    SubnetResolved,
)
from provisioning.validation import (
    ConfigValidationError,
    cidrs_overlap,
    is_subnet_of,
    is_valid_cidr,
    validate_cluster,
    validate_network,
    validate_node_group,
    validate_zones,
)


def _subnet(cidr: str, az: str) -> SubnetResolved:
    return SubnetResolved(cidr_block=cidr, availability_zone=az, name=f"s-{cidr}", tags={})


def _network(private: list[str], public: list[str], zones=None, base="10.0.0.0/16") -> NetworkSpec:
    zones = zones or ["z1", "z2", "z3"]
    return NetworkSpec(
        name="net",
        cidr_block=base,
        availability_zones=zones,
        private_subnets=[_subnet(c, zones[i % len(zones)]) for i, c in enumerate(private)],
        public_subnets=[_subnet(c, zones[i % len(zones)]) for i, c in enumerate(public)],
        nat_gateway_strategy=NatGatewayStrategy.SINGLE,
        enable_dns_hostnames=True,
        enable_dns_support=True,
        tags={},
    )


def _node_group(name="example", min_size=1, desired_size=2, max_size=5, instance_types=None):
    return NodeGroupSpec(
        name=name,
        instance_types=["t3.medium"] if instance_types is None else instance_types,
        min_size=min_size,
        desired_size=desired_size,
        max_size=max_size,
        capacity_type=CapacityType.ON_DEMAND,
        ami_type=AmiType.AL2023_X86_64_STANDARD,
        disk_size=20,
        labels={},
        tags={},
    )


def _cluster(**overrides) -> ClusterSpec:
    values = dict(
        name="example-eks",
        version="1.32",
        endpoint_public_access=True,
        endpoint_private_access=True,
        bootstrap_cluster_creator_admin_permissions=True,
        authentication_mode="API_AND_CONFIG_MAP",
        node_groups={"example": _node_group()},
        enable_irsa=True,
        addons=["vpc-cni"],
        tags={},
    )
    values.update(overrides)
    return ClusterSpec(**values)


def test_reference_layout_is_valid():
    network = _network(
        ["10.0.1.0/24", "10.0.2.0/24", "10.0.3.0/24"],
        ["10.0.4.0/24", "10.0.5.0/24", "10.0.6.0/24"],
    )

    assert validate_network(network) == []


def test_subnet_outside_base_block():
    network = _network(
        ["10.0.1.0/24", "10.0.2.0/24", "10.1.3.0/24"],
        ["10.0.4.0/24", "10.0.5.0/24", "10.0.6.0/24"],
    )

    errors = validate_network(network)
    assert [e.field for e in errors] == ["network.private_subnets[2]"]
    assert "not within VPC CIDR" in errors[0].message


def test_malformed_subnet_cidr_names_field():
    network = _network(
        ["10.0.1.0/24", "10.0.2.0/33", "10.0.3.0/24"],
        ["10.0.4.0/24", "10.0.5.0/24", "10.0.6.0/24"],
    )

    errors = validate_network(network)
    assert errors[0].field == "network.private_subnets[1]"
    assert errors[0].value == "10.0.2.0/33"


def test_unequal_subnet_counts():
    network = _network(
        ["10.0.1.0/24", "10.0.2.0/24", "10.0.3.0/24"],
        ["10.0.4.0/24"],
    )

    errors = validate_network(network)
    assert errors[0].field == "network.public_subnets"
    assert "Expected 3" in errors[0].message


def test_validate_zones():
    assert validate_zones(3, ["a", "b", "c"]) == []
    assert validate_zones(4, ["a", "b", "c"])[0].field == "network.zone_count"
    assert validate_zones(2, ["a", "a"])[0].field == "network.availability_zones"


@pytest.mark.parametrize(
    "min_size,desired_size,max_size",
    [(0, 0, 0), (1, 1, 1), (1, 2, 5), (0, 3, 10)],
)
def test_node_group_bounds_accepted(min_size, desired_size, max_size):
    assert validate_node_group(_node_group(min_size=min_size, desired_size=desired_size, max_size=max_size)) == []


@pytest.mark.parametrize(
    "min_size,desired_size,max_size,field",
    [
        (3, 2, 5, "cluster.node_groups.example.desired_size"),
        (1, 6, 5, "cluster.node_groups.example.desired_size"),
        (-1, 0, 1, "cluster.node_groups.example.min_size"),
    ],
)
def test_node_group_bounds_rejected(min_size, desired_size, max_size, field):
    errors = validate_node_group(
        _node_group(min_size=min_size, desired_size=desired_size, max_size=max_size)
    )

    assert field in {e.field for e in errors}


def test_node_group_requires_instance_types():
    errors = validate_node_group(_node_group(instance_types=[]))

    assert errors[0].field == "cluster.node_groups.example.instance_types"


def test_cluster_name_and_version_format():
    errors = validate_cluster(_cluster(name="-bad name", version="latest"))

    assert {e.field for e in errors} == {"cluster.name", "cluster.version"}


def test_cluster_needs_an_endpoint():
    errors = validate_cluster(
        _cluster(endpoint_public_access=False, endpoint_private_access=False)
    )

    assert errors[0].field == "cluster.endpoint_public_access"


def test_cluster_needs_a_node_group():
    errors = validate_cluster(_cluster(node_groups={}))

    assert errors[0].field == "cluster.node_groups"


def test_error_message_lists_fields():
    error = ConfigValidationError.single("cluster.version", "bad version", "x")

    assert "cluster.version: bad version" in str(error)


def test_from_pydantic_prefixes_fields():
    with pytest.raises(ValidationError) as exc_info:
        NetworkInput(name="net", cidr_block="10.0.0.0/8")

    error = ConfigValidationError.from_pydantic(exc_info.value, prefix="network")
    assert error.errors[0].field == "network.cidr_block"
    assert error.errors[0].value == "10.0.0.0/8"


def test_cidr_helpers():
    assert is_valid_cidr("10.0.0.0/16") == (True, None)
    assert is_valid_cidr("10.0.0.1/16")[0] is False
    assert cidrs_overlap("10.0.0.0/16", "10.0.4.0/24")
    assert not cidrs_overlap("10.0.1.0/24", "10.0.2.0/24")
    assert is_subnet_of("10.0.1.0/24", "10.0.0.0/16")
    assert not is_subnet_of("10.1.0.0/24", "10.0.0.0/16")
