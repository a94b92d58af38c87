import ipaddress
import re
from typing import Optional

from pydantic import ValidationError

from provisioning.models import (
    ClusterSpec,
    NetworkSpec,
    NodeGroupSpec,
    StackSpec,
    SubnetResolved,
    ValidationErrorDetail,
)

CLUSTER_NAME_PATTERN = re.compile(r"^[0-9A-Za-z][A-Za-z0-9_-]{0,99}$")
NODE_GROUP_NAME_PATTERN = re.compile(r"^[0-9A-Za-z][A-Za-z0-9_-]{0,62}$")
VERSION_PATTERN = re.compile(r"^\d+\.\d+$")


class ConfigValidationError(Exception):
    """Exception raised when config validation fails."""

    def __init__(self, errors: list[ValidationErrorDetail]):
        self.errors = errors
        messages = [f"{e.field}: {e.message}" for e in errors]
        super().__init__(f"Configuration validation failed: {'; '.join(messages)}")

    @classmethod
    def from_pydantic(cls, exc: ValidationError, prefix: str = "") -> "ConfigValidationError":
        """Convert a pydantic error into field-named details."""
        errors = []
        for err in exc.errors():
            path = ".".join(str(part) for part in err["loc"])
            if prefix:
                path = f"{prefix}.{path}" if path else prefix
            value = err.get("input")
            errors.append(
                ValidationErrorDetail(
                    field=path or "<root>",
                    message=err["msg"],
                    value=None if value is None or isinstance(value, dict) else str(value),
                )
            )
        return cls(errors)

    @classmethod
    def single(cls, field: str, message: str, value: Optional[str] = None) -> "ConfigValidationError":
        return cls([ValidationErrorDetail(field=field, message=message, value=value)])


def is_valid_cidr(cidr: str) -> tuple[bool, Optional[str]]:
    """Check if a CIDR string is valid.

    Returns (is_valid, error_message).
    """
    try:
        ipaddress.IPv4Network(cidr, strict=True)
        return True, None
    except ValueError as e:
        return False, str(e)


def cidrs_overlap(cidr1: str, cidr2: str) -> bool:
    """Check if two CIDR blocks overlap."""
    try:
        net1 = ipaddress.ip_network(cidr1, strict=False)
        net2 = ipaddress.ip_network(cidr2, strict=False)
        return net1.overlaps(net2)
    except ValueError:
        return False  # Invalid CIDRs handled elsewhere


def is_subnet_of(subnet_cidr: str, vpc_cidr: str) -> bool:
    """Check if subnet CIDR is within VPC CIDR range."""
    try:
        subnet = ipaddress.IPv4Network(subnet_cidr, strict=False)
        vpc = ipaddress.IPv4Network(vpc_cidr, strict=False)
        return subnet.subnet_of(vpc)
    except (ValueError, ipaddress.AddressValueError):
        return False


def validate_zones(
    zone_count: int,
    available_zones: list[str],
    field: str = "network.zone_count",
) -> list[ValidationErrorDetail]:
    """Check the requested zone count against the zones on offer."""
    errors: list[ValidationErrorDetail] = []

    if len(set(available_zones)) != len(available_zones):
        errors.append(
            ValidationErrorDetail(
                field="network.availability_zones",
                message="Availability zones must be unique",
                value=",".join(available_zones),
            )
        )

    if zone_count > len(available_zones):
        errors.append(
            ValidationErrorDetail(
                field=field,
                message=(
                    f"Requested {zone_count} availability zones but only "
                    f"{len(available_zones)} are available: {available_zones}"
                ),
                value=str(zone_count),
            )
        )

    return errors


def validate_network(network: NetworkSpec) -> list[ValidationErrorDetail]:
    """Validate subnet layout of a resolved network."""
    errors: list[ValidationErrorDetail] = []

    valid, err = is_valid_cidr(network.cidr_block)
    if not valid:
        errors.append(
            ValidationErrorDetail(
                field="network.cidr_block",
                message=f"Invalid VPC CIDR: {err}",
                value=network.cidr_block,
            )
        )
        return errors

    zone_count = network.zone_count
    for kind, subnets in (
        ("private_subnets", network.private_subnets),
        ("public_subnets", network.public_subnets),
    ):
        if len(subnets) != zone_count:
            errors.append(
                ValidationErrorDetail(
                    field=f"network.{kind}",
                    message=f"Expected {zone_count} subnets (one per zone), got {len(subnets)}",
                )
            )

    all_subnets: list[tuple[str, SubnetResolved]] = []
    for i, subnet in enumerate(network.private_subnets):
        all_subnets.append((f"network.private_subnets[{i}]", subnet))
    for i, subnet in enumerate(network.public_subnets):
        all_subnets.append((f"network.public_subnets[{i}]", subnet))

    well_formed: list[tuple[str, SubnetResolved]] = []
    for field, subnet in all_subnets:
        valid, err = is_valid_cidr(subnet.cidr_block)
        if not valid:
            errors.append(
                ValidationErrorDetail(
                    field=field,
                    message=f"Invalid subnet CIDR: {err}",
                    value=subnet.cidr_block,
                )
            )
            continue
        if not is_subnet_of(subnet.cidr_block, network.cidr_block):
            errors.append(
                ValidationErrorDetail(
                    field=field,
                    message=f"Subnet CIDR {subnet.cidr_block} is not within VPC CIDR {network.cidr_block}",
                    value=subnet.cidr_block,
                )
            )
        well_formed.append((field, subnet))

    for i, (field1, subnet1) in enumerate(well_formed):
        for field2, subnet2 in well_formed[i + 1 :]:
            if cidrs_overlap(subnet1.cidr_block, subnet2.cidr_block):
                errors.append(
                    ValidationErrorDetail(
                        field=field1,
                        message=f"Subnet {subnet1.cidr_block} overlaps with {subnet2.cidr_block} ({field2})",
                        value=subnet1.cidr_block,
                    )
                )

    return errors


def validate_node_group(node_group: NodeGroupSpec) -> list[ValidationErrorDetail]:
    """Validate a single node group's scaling bounds."""
    errors: list[ValidationErrorDetail] = []
    prefix = f"cluster.node_groups.{node_group.name}"

    if not NODE_GROUP_NAME_PATTERN.match(node_group.name):
        errors.append(
            ValidationErrorDetail(
                field=prefix,
                message="Node group name must start with an alphanumeric character and contain only letters, digits, '-' and '_' (max 63)",
                value=node_group.name,
            )
        )

    if not node_group.instance_types:
        errors.append(
            ValidationErrorDetail(
                field=f"{prefix}.instance_types",
                message="At least one instance type is required",
            )
        )

    for attr in ("min_size", "desired_size", "max_size"):
        size = getattr(node_group, attr)
        if size < 0:
            errors.append(
                ValidationErrorDetail(
                    field=f"{prefix}.{attr}",
                    message=f"{attr} must not be negative",
                    value=str(size),
                )
            )

    if node_group.min_size > node_group.desired_size:
        errors.append(
            ValidationErrorDetail(
                field=f"{prefix}.desired_size",
                message=f"desired_size ({node_group.desired_size}) must not be below min_size ({node_group.min_size})",
                value=str(node_group.desired_size),
            )
        )

    if node_group.desired_size > node_group.max_size:
        errors.append(
            ValidationErrorDetail(
                field=f"{prefix}.desired_size",
                message=f"desired_size ({node_group.desired_size}) must not exceed max_size ({node_group.max_size})",
                value=str(node_group.desired_size),
            )
        )

    if node_group.min_size > node_group.max_size:
        errors.append(
            ValidationErrorDetail(
                field=f"{prefix}.min_size",
                message=f"min_size ({node_group.min_size}) must not exceed max_size ({node_group.max_size})",
                value=str(node_group.min_size),
            )
        )

    return errors


def validate_cluster(cluster: ClusterSpec) -> list[ValidationErrorDetail]:
    """Validate EKS configuration."""
    errors: list[ValidationErrorDetail] = []

    if not CLUSTER_NAME_PATTERN.match(cluster.name):
        errors.append(
            ValidationErrorDetail(
                field="cluster.name",
                message="Cluster name must start with an alphanumeric character and contain only letters, digits, '-' and '_' (max 100)",
                value=cluster.name,
            )
        )

    if not VERSION_PATTERN.match(cluster.version):
        errors.append(
            ValidationErrorDetail(
                field="cluster.version",
                message="Kubernetes version must look like '<major>.<minor>'",
                value=cluster.version,
            )
        )

    if not cluster.endpoint_public_access and not cluster.endpoint_private_access:
        errors.append(
            ValidationErrorDetail(
                field="cluster.endpoint_public_access",
                message="At least one of public or private endpoint access must be enabled",
            )
        )

    if not cluster.node_groups:
        errors.append(
            ValidationErrorDetail(
                field="cluster.node_groups",
                message="At least one managed node group is required",
            )
        )

    for node_group in cluster.node_groups.values():
        errors.extend(validate_node_group(node_group))

    return errors


def validate_stack(spec: StackSpec) -> list[ValidationErrorDetail]:
    """Perform comprehensive validation on a resolved stack.

    Returns a list of validation errors (empty if valid).
    """
    errors: list[ValidationErrorDetail] = []
    errors.extend(validate_network(spec.network))
    errors.extend(validate_cluster(spec.cluster))
    return errors


def ensure_valid(spec: StackSpec) -> StackSpec:
    """Raise ConfigValidationError if the resolved stack is not provisionable."""
    errors = validate_stack(spec)
    if errors:
        raise ConfigValidationError(errors)
    return spec
