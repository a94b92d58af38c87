import ipaddress
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class NatGatewayStrategy(str, Enum):
    """NAT Gateway deployment strategy."""

    SINGLE = "single"
    ONE_PER_AZ = "one_per_az"


class CapacityType(str, Enum):
    """EC2 capacity type for node groups."""

    ON_DEMAND = "ON_DEMAND"
    SPOT = "SPOT"


class AmiType(str, Enum):
    """AMI type for EKS nodes."""

    AL2023_X86_64_STANDARD = "AL2023_x86_64_STANDARD"
    AL2023_ARM_64_STANDARD = "AL2023_ARM_64_STANDARD"
    BOTTLEROCKET_X86_64 = "BOTTLEROCKET_x86_64"
    BOTTLEROCKET_ARM_64 = "BOTTLEROCKET_ARM_64"


DEFAULT_ADDONS = ["vpc-cni", "kube-proxy", "coredns"]


class SubnetResolved(BaseModel):
    """Fully resolved subnet configuration."""

    cidr_block: str
    availability_zone: str
    name: str
    tags: dict[str, str]


class NetworkInput(BaseModel):
    """VPC configuration input - only the name is required."""

    name: str = Field(..., min_length=1, max_length=200)
    cidr_block: str = Field(
        default="10.0.0.0/16",
        description="Base VPC CIDR block",
    )
    zone_count: int = Field(
        default=3,
        ge=1,
        le=6,
        description="Number of availability zones to spread subnets over",
    )
    availability_zones: Optional[list[str]] = Field(
        default=None,
        description="Explicit zone names (looked up from the region if not provided)",
    )

    # Optional explicit subnets - if not provided, auto-calculated
    private_subnets: Optional[list[str]] = Field(
        default=None,
        description="Private subnet CIDRs, one per zone",
    )
    public_subnets: Optional[list[str]] = Field(
        default=None,
        description="Public subnet CIDRs, one per zone",
    )
    subnet_mask: int = Field(
        default=24,
        ge=16,
        le=28,
        description="Prefix length of auto-calculated subnets",
    )

    nat_gateway_strategy: NatGatewayStrategy = Field(
        default=NatGatewayStrategy.SINGLE,
        description="NAT gateway strategy - single is cost-effective default",
    )

    enable_dns_hostnames: bool = Field(default=True)
    enable_dns_support: bool = Field(default=True)

    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("cidr_block")
    @classmethod
    def validate_vpc_cidr(cls, v: str) -> str:
        try:
            network = ipaddress.ip_network(v, strict=False)
            if network.prefixlen < 16 or network.prefixlen > 24:
                raise ValueError("VPC CIDR prefix must be between /16 and /24")
        except ValueError as e:
            raise ValueError(f"Invalid VPC CIDR: {e}") from e
        return v


class NetworkSpec(BaseModel):
    """Fully resolved VPC configuration - all fields populated."""

    name: str
    cidr_block: str
    availability_zones: list[str]

    private_subnets: list[SubnetResolved]
    public_subnets: list[SubnetResolved]

    nat_gateway_strategy: NatGatewayStrategy

    enable_dns_hostnames: bool
    enable_dns_support: bool

    tags: dict[str, str]

    @property
    def zone_count(self) -> int:
        return len(self.availability_zones)


class NodeGroupInput(BaseModel):
    """Managed node group input."""

    instance_types: list[str] = Field(default_factory=lambda: ["t3.medium"])
    min_size: int = Field(default=1, ge=0)
    max_size: int = Field(default=5, ge=0)
    desired_size: int = Field(default=2, ge=0)
    capacity_type: CapacityType = Field(default=CapacityType.ON_DEMAND)
    ami_type: AmiType = Field(default=AmiType.AL2023_X86_64_STANDARD)
    disk_size: int = Field(default=20, ge=20, le=1000)
    labels: dict[str, str] = Field(default_factory=dict)
    tags: dict[str, str] = Field(default_factory=dict)


class NodeGroupSpec(BaseModel):
    """Fully resolved node group configuration."""

    name: str
    instance_types: list[str]
    min_size: int
    max_size: int
    desired_size: int
    capacity_type: CapacityType
    ami_type: AmiType
    disk_size: int
    labels: dict[str, str]
    tags: dict[str, str]


def _default_node_groups() -> dict[str, NodeGroupInput]:
    return {
        "example": NodeGroupInput(
            instance_types=["t3.medium"],
            min_size=1,
            max_size=5,
            desired_size=2,
        )
    }


class ClusterInput(BaseModel):
    """EKS cluster configuration input."""

    name: str = Field(..., description="EKS cluster name")
    version: str = Field(default="1.32", description="Kubernetes version")

    endpoint_public_access: bool = Field(default=True)
    endpoint_private_access: bool = Field(default=True)
    bootstrap_cluster_creator_admin_permissions: bool = Field(
        default=True,
        description="Grant admin to cluster creator",
    )
    authentication_mode: str = Field(default="API_AND_CONFIG_MAP")

    node_groups: dict[str, NodeGroupInput] = Field(default_factory=_default_node_groups)

    enable_irsa: bool = Field(
        default=True,
        description="Create an OIDC provider for IAM roles for service accounts",
    )
    addons: list[str] = Field(default_factory=lambda: list(DEFAULT_ADDONS))

    tags: dict[str, str] = Field(default_factory=dict)


class ClusterSpec(BaseModel):
    """Fully resolved EKS configuration."""

    name: str
    version: str

    endpoint_public_access: bool
    endpoint_private_access: bool
    bootstrap_cluster_creator_admin_permissions: bool
    authentication_mode: str

    node_groups: dict[str, NodeGroupSpec]

    enable_irsa: bool
    addons: list[str]

    tags: dict[str, str]


class StackInput(BaseModel):
    """Everything one stack declares, before defaults and derived values."""

    environment: str = Field(default="dev", pattern=r"^[a-z0-9-]+$")
    region: str = Field(default="us-east-1")

    network: NetworkInput
    cluster: ClusterInput

    # Global tags applied to all resources
    tags: dict[str, str] = Field(default_factory=dict)


class StackSpec(BaseModel):
    """Fully resolved stack configuration.

    This is what the Pulumi program provisions from. Every field is
    explicitly set, no optionals.
    """

    environment: str
    region: str

    network: NetworkSpec
    cluster: ClusterSpec

    tags: dict[str, str]


class ValidationErrorDetail(BaseModel):
    """Single validation error detail."""

    field: str
    message: str
    value: Optional[str] = None
