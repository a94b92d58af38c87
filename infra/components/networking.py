from dataclasses import dataclass
from typing import Sequence

import pulumi
import pulumi_aws as aws

from provisioning.models import NatGatewayStrategy, NetworkSpec, SubnetResolved


@dataclass
class NetworkOutput:
    """Identifiers the cluster needs from the network."""

    vpc_id: pulumi.Input[str]
    private_subnet_ids: pulumi.Input[Sequence[str]]
    public_subnet_ids: pulumi.Input[Sequence[str]]


class Networking(pulumi.ComponentResource):
    """VPC with one public and one private subnet per availability zone."""

    def __init__(
        self,
        name: str,
        network: NetworkSpec,
        provider: aws.Provider,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("eks-quickstart:infrastructure:Networking", name, None, opts)

        self._name = name
        self._tags = network.tags
        self._provider = provider

        child_opts = pulumi.ResourceOptions(parent=self, provider=provider)

        self.vpc = aws.ec2.Vpc(
            f"{name}-vpc",
            cidr_block=network.cidr_block,
            enable_dns_hostnames=network.enable_dns_hostnames,
            enable_dns_support=network.enable_dns_support,
            tags=self._resource_tags(network.name),
            opts=child_opts,
        )
        self.vpc_id = self.vpc.id

        self.igw = aws.ec2.InternetGateway(
            f"{name}-igw",
            vpc_id=self.vpc_id,
            tags=self._resource_tags(f"{network.name}-igw"),
            opts=child_opts,
        )

        self.public_subnets = self._create_subnets(
            "public", network.public_subnets, map_public_ip=True, opts=child_opts
        )
        self.public_subnet_ids = pulumi.Output.all(
            *[s.id for s in self.public_subnets]
        ).apply(lambda ids: list(ids))

        self.public_route_table = aws.ec2.RouteTable(
            f"{name}-public-rt",
            vpc_id=self.vpc_id,
            tags=self._resource_tags(f"{network.name}-public"),
            opts=child_opts,
        )
        aws.ec2.Route(
            f"{name}-public-igw-route",
            route_table_id=self.public_route_table.id,
            destination_cidr_block="0.0.0.0/0",
            gateway_id=self.igw.id,
            opts=child_opts,
        )
        for i, subnet in enumerate(self.public_subnets):
            aws.ec2.RouteTableAssociation(
                f"{name}-public-rta-{i}",
                subnet_id=subnet.id,
                route_table_id=self.public_route_table.id,
                opts=child_opts,
            )

        self.nat_gateways: list[aws.ec2.NatGateway] = []
        self.nat_eips: list[aws.ec2.Eip] = []
        self._create_nat_gateways(network, child_opts)

        self.private_subnets = self._create_subnets(
            "private", network.private_subnets, map_public_ip=False, opts=child_opts
        )
        self.private_subnet_ids = pulumi.Output.all(
            *[s.id for s in self.private_subnets]
        ).apply(lambda ids: list(ids))

        self.private_route_tables: list[aws.ec2.RouteTable] = []
        self._create_private_routing(network, child_opts)

        self.output = NetworkOutput(
            vpc_id=self.vpc_id,
            private_subnet_ids=self.private_subnet_ids,
            public_subnet_ids=self.public_subnet_ids,
        )

        self.register_outputs(
            {
                "vpc_id": self.vpc_id,
                "public_subnet_ids": self.public_subnet_ids,
                "private_subnet_ids": self.private_subnet_ids,
            }
        )

    def _resource_tags(self, resource_name: str) -> dict[str, str]:
        return {**self._tags, "Name": resource_name}

    def _create_subnets(
        self,
        subnet_type: str,
        subnet_configs: list[SubnetResolved],
        map_public_ip: bool,
        opts: pulumi.ResourceOptions,
    ) -> list[aws.ec2.Subnet]:
        subnets = []
        for i, subnet_config in enumerate(subnet_configs):
            subnets.append(
                aws.ec2.Subnet(
                    f"{self._name}-{subnet_type}-subnet-{i}",
                    vpc_id=self.vpc_id,
                    cidr_block=subnet_config.cidr_block,
                    availability_zone=subnet_config.availability_zone,
                    map_public_ip_on_launch=map_public_ip,
                    tags={
                        **self._tags,
                        **subnet_config.tags,
                        "Name": subnet_config.name,
                    },
                    opts=opts,
                )
            )
        return subnets

    def _create_nat_gateways(
        self,
        network: NetworkSpec,
        opts: pulumi.ResourceOptions,
    ) -> None:
        """Create NAT gateways based on strategy."""
        if network.nat_gateway_strategy == NatGatewayStrategy.SINGLE:
            # one shared gateway in the first zone
            hosts = self.public_subnets[:1]
        else:
            hosts = self.public_subnets

        for i, subnet in enumerate(hosts):
            suffix = "" if network.nat_gateway_strategy == NatGatewayStrategy.SINGLE else f"-{i}"
            eip = aws.ec2.Eip(
                f"{self._name}-nat-eip{suffix}",
                domain="vpc",
                tags=self._resource_tags(f"{network.name}-nat{suffix}"),
                opts=opts,
            )
            self.nat_eips.append(eip)

            nat = aws.ec2.NatGateway(
                f"{self._name}-nat{suffix}",
                subnet_id=subnet.id,
                allocation_id=eip.id,
                tags=self._resource_tags(f"{network.name}-nat{suffix}"),
                opts=pulumi.ResourceOptions(
                    parent=self,
                    provider=self._provider,
                    depends_on=[self.igw],
                ),
            )
            self.nat_gateways.append(nat)

    def _create_private_routing(
        self,
        network: NetworkSpec,
        opts: pulumi.ResourceOptions,
    ) -> None:
        """Create private route tables with a default route through NAT.

        With a single gateway all private subnets share one table; per-zone
        gateways get one table each so traffic stays in its zone.
        """
        for i, nat in enumerate(self.nat_gateways):
            suffix = "" if len(self.nat_gateways) == 1 else f"-{i}"
            rt = aws.ec2.RouteTable(
                f"{self._name}-private-rt{suffix}",
                vpc_id=self.vpc_id,
                tags=self._resource_tags(f"{network.name}-private{suffix}"),
                opts=opts,
            )
            aws.ec2.Route(
                f"{self._name}-private-nat-route{suffix}",
                route_table_id=rt.id,
                destination_cidr_block="0.0.0.0/0",
                nat_gateway_id=nat.id,
                opts=opts,
            )
            self.private_route_tables.append(rt)

        for i, subnet in enumerate(self.private_subnets):
            rt = self.private_route_tables[i % len(self.private_route_tables)]
            aws.ec2.RouteTableAssociation(
                f"{self._name}-private-rta-{i}",
                subnet_id=subnet.id,
                route_table_id=rt.id,
                opts=opts,
            )
