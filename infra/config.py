import json
from typing import Callable, Mapping, Optional

import pulumi
from pydantic import ValidationError

from provisioning.models import (
    ClusterInput,
    NetworkInput,
    NodeGroupInput,
    StackInput,
)
from provisioning.validation import ConfigValidationError

ConfigGetter = Callable[[str], Optional[str]]


def _parse_list(value: Optional[str]) -> Optional[list[str]]:
    """Parse a comma-separated string into a list."""
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool(key: str, value: Optional[str], default: bool) -> bool:
    """Parse a string boolean value."""
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ConfigValidationError.single(key, "Expected a boolean (true/false)", value)


def _parse_int(key: str, value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigValidationError.single(key, "Expected an integer", value) from None


def _parse_json(key: str, value: Optional[str], expected: type) -> Optional[dict | list]:
    """Parse a JSON string, rejecting malformed input instead of defaulting."""
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise ConfigValidationError.single(key, f"Invalid JSON: {e}", value) from None
    if not isinstance(parsed, expected):
        raise ConfigValidationError.single(
            key, f"Expected a JSON {expected.__name__}", value
        )
    return parsed


def _load_network_input(get: ConfigGetter, cluster_name: str) -> dict:
    network: dict = {
        "name": get("vpcName") or f"{cluster_name}-vpc",
        "cidr_block": get("vpcCidr") or "10.0.0.0/16",
        "zone_count": _parse_int("zoneCount", get("zoneCount"), 3),
        "availability_zones": _parse_list(get("availabilityZones")),
        "private_subnets": _parse_list(get("privateSubnets")),
        "public_subnets": _parse_list(get("publicSubnets")),
        "subnet_mask": _parse_int("subnetMask", get("subnetMask"), 24),
        "nat_gateway_strategy": get("natGatewayStrategy") or "single",
        "enable_dns_hostnames": _parse_bool(
            "enableDnsHostnames", get("enableDnsHostnames"), True
        ),
        "enable_dns_support": _parse_bool("enableDnsSupport", get("enableDnsSupport"), True),
        "tags": _parse_json("vpcTags", get("vpcTags"), dict) or {},
    }
    return network


def _load_node_groups(get: ConfigGetter) -> Optional[dict[str, NodeGroupInput]]:
    """Load node groups from a JSON mapping of group name to settings."""
    groups_data = _parse_json("nodeGroups", get("nodeGroups"), dict)
    if groups_data is None:
        return None

    node_groups: dict[str, NodeGroupInput] = {}
    for group_name, group in groups_data.items():
        if not isinstance(group, dict):
            raise ConfigValidationError.single(
                f"nodeGroups.{group_name}", "Expected a JSON object", json.dumps(group)
            )
        try:
            node_groups[group_name] = NodeGroupInput(**group)
        except ValidationError as e:
            raise ConfigValidationError.from_pydantic(
                e, prefix=f"cluster.node_groups.{group_name}"
            ) from None
    return node_groups


def _load_cluster_input(get: ConfigGetter, cluster_name: str) -> dict:
    cluster: dict = {
        "name": cluster_name,
        "version": get("kubernetesVersion") or "1.32",
        "endpoint_public_access": _parse_bool(
            "endpointPublicAccess", get("endpointPublicAccess"), True
        ),
        "endpoint_private_access": _parse_bool(
            "endpointPrivateAccess", get("endpointPrivateAccess"), True
        ),
        "bootstrap_cluster_creator_admin_permissions": _parse_bool(
            "bootstrapClusterCreatorAdmin", get("bootstrapClusterCreatorAdmin"), True
        ),
        "authentication_mode": get("authenticationMode") or "API_AND_CONFIG_MAP",
        "enable_irsa": _parse_bool("enableIrsa", get("enableIrsa"), True),
        "tags": _parse_json("eksTags", get("eksTags"), dict) or {},
    }

    node_groups = _load_node_groups(get)
    if node_groups is not None:
        cluster["node_groups"] = node_groups

    addons = _parse_list(get("clusterAddons"))
    if addons is not None:
        cluster["addons"] = addons

    return cluster


def load_stack_input(get: ConfigGetter) -> StackInput:
    """Build the stack input from flat config values.

    ``get`` returns the raw string for a key or None when unset.
    """
    cluster_name = get("clusterName")
    if not cluster_name:
        raise ConfigValidationError.single("clusterName", "Cluster name is required")

    try:
        network = NetworkInput(**_load_network_input(get, cluster_name))
    except ValidationError as e:
        raise ConfigValidationError.from_pydantic(e, prefix="network") from None

    try:
        cluster = ClusterInput(**_load_cluster_input(get, cluster_name))
    except ValidationError as e:
        raise ConfigValidationError.from_pydantic(e, prefix="cluster") from None

    try:
        return StackInput(
            environment=get("environment") or "dev",
            region=get("awsRegion") or "us-east-1",
            network=network,
            cluster=cluster,
            tags=_parse_json("tags", get("tags"), dict) or {},
        )
    except ValidationError as e:
        raise ConfigValidationError.from_pydantic(e) from None


def getter_from_mapping(values: Mapping[str, str], namespace: str) -> ConfigGetter:
    """Getter over fully-qualified config keys such as ``project:clusterName``."""
    scoped = {
        key.split(":", 1)[1]: value
        for key, value in values.items()
        if ":" in key and key.split(":", 1)[0] == namespace
    }

    def get(key: str) -> Optional[str]:
        return scoped.get(key)

    return get


def load_pulumi_stack_input() -> StackInput:
    """Load stack input from Pulumi config for use in infrastructure code."""
    config = pulumi.Config()
    aws_config = pulumi.Config("aws")

    def get(key: str) -> Optional[str]:
        if key == "awsRegion":
            return config.get(key) or aws_config.get("region")
        return config.get(key)

    return load_stack_input(get)
