import ipaddress
from typing import Optional

from provisioning.models import (
    ClusterInput,
    ClusterSpec,
    NetworkInput,
    NetworkSpec,
    NodeGroupInput,
    NodeGroupSpec,
    StackInput,
    StackSpec,
    SubnetResolved,
)
from provisioning.validation import ConfigValidationError, ensure_valid, validate_zones

OWNERSHIP_TAGS = {"Terraform": "true"}


def build_tags(
    name: str,
    environment: str,
    extra: Optional[dict[str, str]] = None,
) -> dict[str, str]:
    """Tags attached to every provisioned entity: Name, Environment, ownership."""
    return {
        "Name": name,
        "Environment": environment,
        **OWNERSHIP_TAGS,
        **(extra or {}),
    }


def get_default_availability_zones(region: str, count: int = 3) -> list[str]:
    """Get default availability zones for a region."""
    suffixes = ["a", "b", "c", "d", "e", "f"][:count]
    return [f"{region}{suffix}" for suffix in suffixes]


def select_availability_zones(available_zones: list[str], zone_count: int) -> list[str]:
    """Take the first zone_count zones, failing if the region has fewer."""
    errors = validate_zones(zone_count, available_zones)
    if errors:
        raise ConfigValidationError(errors)
    return list(available_zones[:zone_count])


def calculate_subnet_cidrs(
    vpc_cidr: str,
    availability_zones: list[str],
    cidr_mask: int,
    offset_blocks: int = 0,
) -> list[tuple[str, str]]:
    """Calculate subnet CIDRs automatically from VPC CIDR.

    Block ``offset_blocks + i`` of size ``/cidr_mask`` goes to zone ``i``.
    Returns list of (cidr_block, availability_zone) tuples.
    """
    vpc_network = ipaddress.ip_network(vpc_cidr, strict=False)
    subnet_size = 2 ** (32 - cidr_mask)
    subnets = []

    for i, az in enumerate(availability_zones):
        block_index = offset_blocks + i
        subnet_addr = ipaddress.ip_address(
            int(vpc_network.network_address) + block_index * subnet_size
        )
        subnets.append((f"{subnet_addr}/{cidr_mask}", az))

    return subnets


def resolve_subnets(
    custom_cidrs: Optional[list[str]],
    vpc_cidr: str,
    availability_zones: list[str],
    subnet_type: str,
    cidr_mask: int,
    offset_blocks: int,
    network_name: str,
) -> list[SubnetResolved]:
    """Resolve subnets - use explicit CIDRs if provided, otherwise auto-calculate.

    Explicit CIDRs are paired with zones in order; any surplus or shortfall is
    left for validation to report.
    """
    if custom_cidrs:
        pairs = [
            (cidr, availability_zones[i % len(availability_zones)] if availability_zones else "")
            for i, cidr in enumerate(custom_cidrs)
        ]
    else:
        pairs = calculate_subnet_cidrs(vpc_cidr, availability_zones, cidr_mask, offset_blocks)

    if subnet_type == "public":
        role_tags = {"kubernetes.io/role/elb": "1"}
    else:
        role_tags = {"kubernetes.io/role/internal-elb": "1"}

    return [
        SubnetResolved(
            cidr_block=cidr,
            availability_zone=az,
            name=f"{network_name}-{subnet_type}-{az}",
            tags={"SubnetType": subnet_type, **role_tags},
        )
        for cidr, az in pairs
    ]


def resolve_network(
    network_input: NetworkInput,
    availability_zones: list[str],
    environment: str,
    global_tags: Optional[dict[str, str]] = None,
) -> NetworkSpec:
    """Resolve VPC configuration with all defaults filled.

    Private subnets take the blocks right after the first one, public subnets
    follow them, so a 3-zone /16 yields private 10.0.1-3.0/24 and public
    10.0.4-6.0/24.
    """
    zones = select_availability_zones(availability_zones, network_input.zone_count)
    zone_count = len(zones)

    private_subnets = resolve_subnets(
        custom_cidrs=network_input.private_subnets,
        vpc_cidr=network_input.cidr_block,
        availability_zones=zones,
        subnet_type="private",
        cidr_mask=network_input.subnet_mask,
        offset_blocks=1,
        network_name=network_input.name,
    )
    public_subnets = resolve_subnets(
        custom_cidrs=network_input.public_subnets,
        vpc_cidr=network_input.cidr_block,
        availability_zones=zones,
        subnet_type="public",
        cidr_mask=network_input.subnet_mask,
        offset_blocks=1 + zone_count,
        network_name=network_input.name,
    )

    return NetworkSpec(
        name=network_input.name,
        cidr_block=network_input.cidr_block,
        availability_zones=zones,
        private_subnets=private_subnets,
        public_subnets=public_subnets,
        nat_gateway_strategy=network_input.nat_gateway_strategy,
        enable_dns_hostnames=network_input.enable_dns_hostnames,
        enable_dns_support=network_input.enable_dns_support,
        tags=build_tags(
            network_input.name,
            environment,
            {**(global_tags or {}), **network_input.tags},
        ),
    )


def resolve_node_group(name: str, input_ng: NodeGroupInput) -> NodeGroupSpec:
    """Resolve a single node group configuration."""
    return NodeGroupSpec(
        name=name,
        instance_types=list(input_ng.instance_types),
        min_size=input_ng.min_size,
        max_size=input_ng.max_size,
        desired_size=input_ng.desired_size,
        capacity_type=input_ng.capacity_type,
        ami_type=input_ng.ami_type,
        disk_size=input_ng.disk_size,
        labels=dict(input_ng.labels),
        tags=dict(input_ng.tags),
    )


def resolve_cluster(
    cluster_input: ClusterInput,
    environment: str,
    global_tags: Optional[dict[str, str]] = None,
) -> ClusterSpec:
    """Resolve EKS configuration with all defaults filled."""
    return ClusterSpec(
        name=cluster_input.name,
        version=cluster_input.version,
        endpoint_public_access=cluster_input.endpoint_public_access,
        endpoint_private_access=cluster_input.endpoint_private_access,
        bootstrap_cluster_creator_admin_permissions=cluster_input.bootstrap_cluster_creator_admin_permissions,
        authentication_mode=cluster_input.authentication_mode,
        node_groups={
            name: resolve_node_group(name, ng)
            for name, ng in cluster_input.node_groups.items()
        },
        enable_irsa=cluster_input.enable_irsa,
        addons=list(dict.fromkeys(cluster_input.addons)),
        tags=build_tags(
            cluster_input.name,
            environment,
            {**(global_tags or {}), **cluster_input.tags},
        ),
    )


def resolve_stack(
    stack_input: StackInput,
    available_zones: Optional[list[str]] = None,
) -> StackSpec:
    """Transform stack input into a fully-resolved, validated stack.

    ``available_zones`` is the region's zone list as reported by AWS. An
    explicit ``network.availability_zones`` takes precedence. ``None`` means
    no lookup was made and zones are named after the region; an empty list
    means the region has no usable zones.

    Raises ConfigValidationError before anything is provisioned.
    """
    explicit_zones = stack_input.network.availability_zones
    if available_zones is None:
        zones = explicit_zones or get_default_availability_zones(
            stack_input.region, stack_input.network.zone_count
        )
    else:
        if explicit_zones:
            unknown = [z for z in explicit_zones if z not in available_zones]
            if unknown:
                raise ConfigValidationError.single(
                    "network.availability_zones",
                    f"Zones {unknown} are not available in {stack_input.region}: {available_zones}",
                    ",".join(unknown),
                )
        zones = explicit_zones or available_zones

    network = resolve_network(
        stack_input.network,
        zones,
        stack_input.environment,
        stack_input.tags,
    )
    cluster = resolve_cluster(
        stack_input.cluster,
        stack_input.environment,
        stack_input.tags,
    )

    spec = StackSpec(
        environment=stack_input.environment,
        region=stack_input.region,
        network=network,
        cluster=cluster,
        tags=dict(stack_input.tags),
    )
    return ensure_valid(spec)
