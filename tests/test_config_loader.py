import json

import pytest

from infra.config import getter_from_mapping, load_stack_input
from provisioning.config_resolver import resolve_stack
from provisioning.models import CapacityType, NatGatewayStrategy
from provisioning.validation import ConfigValidationError

ZONES = ["us-east-1a", "us-east-1b", "us-east-1c"]


def _getter(values: dict):
    return values.get


def test_minimal_config_uses_defaults():
    stack_input = load_stack_input(_getter({"clusterName": "example-eks"}))

    assert stack_input.environment == "dev"
    assert stack_input.region == "us-east-1"
    assert stack_input.network.name == "example-eks-vpc"
    assert stack_input.network.cidr_block == "10.0.0.0/16"
    assert stack_input.network.zone_count == 3
    assert stack_input.cluster.version == "1.32"
    assert list(stack_input.cluster.node_groups) == ["example"]


def test_full_config():
    values = {
        "clusterName": "prod-eks",
        "environment": "prod",
        "awsRegion": "eu-west-1",
        "vpcName": "prod-vpc",
        "vpcCidr": "10.20.0.0/16",
        "zoneCount": "2",
        "availabilityZones": "eu-west-1b, eu-west-1c",
        "natGatewayStrategy": "one_per_az",
        "enableDnsHostnames": "false",
        "kubernetesVersion": "1.31",
        "endpointPublicAccess": "false",
        "bootstrapClusterCreatorAdmin": "no",
        "nodeGroups": json.dumps(
            {
                "system": {"instance_types": ["m6i.large"], "min_size": 2, "max_size": 4, "desired_size": 2},
                "spot": {"instance_types": ["m6i.large", "m5.large"], "capacity_type": "SPOT"},
            }
        ),
        "clusterAddons": "vpc-cni,coredns",
        "tags": json.dumps({"Team": "platform"}),
    }

    stack_input = load_stack_input(_getter(values))

    assert stack_input.environment == "prod"
    assert stack_input.region == "eu-west-1"
    assert stack_input.network.availability_zones == ["eu-west-1b", "eu-west-1c"]
    assert stack_input.network.nat_gateway_strategy == NatGatewayStrategy.ONE_PER_AZ
    assert stack_input.network.enable_dns_hostnames is False
    assert stack_input.cluster.endpoint_public_access is False
    assert stack_input.cluster.bootstrap_cluster_creator_admin_permissions is False
    assert set(stack_input.cluster.node_groups) == {"system", "spot"}
    assert stack_input.cluster.node_groups["spot"].capacity_type == CapacityType.SPOT
    assert stack_input.cluster.addons == ["vpc-cni", "coredns"]
    assert stack_input.tags == {"Team": "platform"}


def test_cluster_name_required():
    with pytest.raises(ConfigValidationError) as exc_info:
        load_stack_input(_getter({}))

    assert exc_info.value.errors[0].field == "clusterName"


@pytest.mark.parametrize(
    "key,value",
    [
        ("zoneCount", "three"),
        ("endpointPublicAccess", "maybe"),
        ("nodeGroups", "{not json"),
        ("nodeGroups", "[1, 2]"),
        ("tags", "[]"),
    ],
)
def test_malformed_values_are_reported_not_defaulted(key, value):
    with pytest.raises(ConfigValidationError) as exc_info:
        load_stack_input(_getter({"clusterName": "eks", key: value}))

    assert exc_info.value.errors[0].field == key


def test_node_group_field_errors_are_prefixed():
    values = {
        "clusterName": "eks",
        "nodeGroups": json.dumps({"example": {"min_size": -1}}),
    }

    with pytest.raises(ConfigValidationError) as exc_info:
        load_stack_input(_getter(values))

    assert exc_info.value.errors[0].field == "cluster.node_groups.example.min_size"


def test_invalid_nat_strategy_names_field():
    with pytest.raises(ConfigValidationError) as exc_info:
        load_stack_input(_getter({"clusterName": "eks", "natGatewayStrategy": "none"}))

    assert exc_info.value.errors[0].field == "network.nat_gateway_strategy"


def test_getter_from_mapping_scopes_to_namespace():
    get = getter_from_mapping(
        {
            "eks-quickstart:clusterName": "eks",
            "aws:region": "us-west-2",
            "other:clusterName": "nope",
        },
        "eks-quickstart",
    )

    assert get("clusterName") == "eks"
    assert get("region") is None


def test_component_tags_are_scoped():
    values = {
        "clusterName": "eks",
        "tags": json.dumps({"Team": "platform"}),
        "vpcTags": json.dumps({"Tier": "network"}),
        "eksTags": json.dumps({"Tier": "compute"}),
    }

    spec = resolve_stack(load_stack_input(_getter(values)), available_zones=ZONES)

    assert spec.network.tags["Tier"] == "network"
    assert spec.cluster.tags["Tier"] == "compute"
    assert spec.network.tags["Team"] == spec.cluster.tags["Team"] == "platform"


def test_malformed_component_tags_name_key():
    with pytest.raises(ConfigValidationError) as exc_info:
        load_stack_input(_getter({"clusterName": "eks", "eksTags": "[]"}))

    assert exc_info.value.errors[0].field == "eksTags"
