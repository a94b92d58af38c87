"""EKS cluster infrastructure component."""

from typing import Optional, Sequence

import pulumi
import pulumi_aws as aws
import pulumi_tls as tls

from infra.components.networking import NetworkOutput
from provisioning.models import ClusterSpec, NodeGroupSpec
from provisioning.validation import ConfigValidationError

# Add-ons the nodes need before they can join the cluster.
PRE_COMPUTE_ADDONS = {"vpc-cni", "eks-pod-identity-agent"}


def check_network_output(network: Optional[NetworkOutput]) -> NetworkOutput:
    """Reject a missing or incomplete network before anything is registered."""
    if network is None:
        raise ConfigValidationError.single(
            "network",
            "Cluster requires the outputs of a provisioned network",
        )
    if not network.vpc_id:
        raise ConfigValidationError.single("network.vpc_id", "VPC id is missing")

    subnet_ids = network.private_subnet_ids
    if subnet_ids is None or (isinstance(subnet_ids, (list, tuple)) and not subnet_ids):
        raise ConfigValidationError.single(
            "network.private_subnet_ids",
            "At least one private subnet id is required to place the cluster",
        )
    return network


def _require_subnets(ids: Sequence[str]) -> list[str]:
    if not ids:
        raise ValueError("No private subnets available for the EKS cluster")
    return list(ids)


class EksCluster(pulumi.ComponentResource):
    """EKS control plane and managed node groups placed in private subnets."""

    def __init__(
        self,
        name: str,
        cluster: ClusterSpec,
        network: Optional[NetworkOutput],
        cluster_role_arn: pulumi.Input[str],
        node_role_arn: pulumi.Input[str],
        provider: aws.Provider,
        opts: pulumi.ResourceOptions | None = None,
    ):
        network = check_network_output(network)

        super().__init__("eks-quickstart:infrastructure:EksCluster", name, None, opts)

        child_opts = pulumi.ResourceOptions(parent=self, provider=provider)
        self._tags = cluster.tags
        self._name = name
        self._provider = provider

        self.subnet_ids = pulumi.Output.from_input(network.private_subnet_ids).apply(
            _require_subnets
        )

        self.cluster_sg = aws.ec2.SecurityGroup(
            f"{name}-eks-cluster-sg",
            vpc_id=network.vpc_id,
            description="Security group for EKS cluster control plane",
            egress=[
                aws.ec2.SecurityGroupEgressArgs(
                    protocol="-1",
                    from_port=0,
                    to_port=0,
                    cidr_blocks=["0.0.0.0/0"],
                    description="Allow all outbound traffic",
                ),
            ],
            tags={**self._tags, "Name": f"{cluster.name}-cluster"},
            opts=child_opts,
        )

        self.cluster = aws.eks.Cluster(
            f"{name}-eks-cluster",
            name=cluster.name,
            role_arn=cluster_role_arn,
            version=cluster.version,
            vpc_config=aws.eks.ClusterVpcConfigArgs(
                subnet_ids=self.subnet_ids,
                security_group_ids=[self.cluster_sg.id],
                endpoint_private_access=cluster.endpoint_private_access,
                endpoint_public_access=cluster.endpoint_public_access,
            ),
            access_config=aws.eks.ClusterAccessConfigArgs(
                authentication_mode=cluster.authentication_mode,
                bootstrap_cluster_creator_admin_permissions=cluster.bootstrap_cluster_creator_admin_permissions,
            ),
            tags=self._tags,
            opts=child_opts,
        )

        self.oidc_provider: Optional[aws.iam.OpenIdConnectProvider] = None
        if cluster.enable_irsa:
            self.oidc_provider = self._create_oidc_provider()

        self.addons: dict[str, aws.eks.Addon] = {}
        for addon_name in cluster.addons:
            if addon_name in PRE_COMPUTE_ADDONS:
                self.addons[addon_name] = self._create_addon(addon_name, depends_on=[])

        self.node_groups: dict[str, aws.eks.NodeGroup] = {}
        for ng_config in cluster.node_groups.values():
            self.node_groups[ng_config.name] = self._create_node_group(
                node_role_arn=node_role_arn,
                node_group_config=ng_config,
            )

        # coredns and friends need somewhere to schedule before they go ACTIVE
        for addon_name in cluster.addons:
            if addon_name not in PRE_COMPUTE_ADDONS:
                self.addons[addon_name] = self._create_addon(
                    addon_name, depends_on=list(self.node_groups.values())
                )

        self.cluster_name = self.cluster.name
        self.cluster_endpoint = self.cluster.endpoint
        self.cluster_ca_data = self.cluster.certificate_authority.data
        self.cluster_arn = self.cluster.arn
        self.cluster_security_group_id = self.cluster_sg.id
        self.oidc_provider_arn = self.oidc_provider.arn if self.oidc_provider else None

        self.register_outputs(
            {
                "cluster_name": self.cluster_name,
                "cluster_endpoint": self.cluster_endpoint,
                "cluster_arn": self.cluster_arn,
                "oidc_provider_arn": self.oidc_provider_arn,
            }
        )

    def _create_oidc_provider(self) -> aws.iam.OpenIdConnectProvider:
        """Create OIDC provider for IAM Roles for Service Accounts (IRSA)."""
        oidc_issuer = self.cluster.identities[0].oidcs[0].issuer

        tls_cert = oidc_issuer.apply(lambda url: tls.get_certificate(url=url))
        thumbprint = tls_cert.apply(lambda cert: cert.certificates[0].sha1_fingerprint)

        return aws.iam.OpenIdConnectProvider(
            f"{self._name}-oidc-provider",
            url=oidc_issuer,
            client_id_lists=["sts.amazonaws.com"],
            thumbprint_lists=[thumbprint],
            tags={**self._tags, "Name": f"{self._name}-oidc-provider"},
            opts=pulumi.ResourceOptions(
                parent=self,
                provider=self._provider,
                depends_on=[self.cluster],
            ),
        )

    def _create_addon(
        self,
        addon_name: str,
        depends_on: list[pulumi.Resource],
    ) -> aws.eks.Addon:
        return aws.eks.Addon(
            f"{self._name}-{addon_name}",
            cluster_name=self.cluster.name,
            addon_name=addon_name,
            resolve_conflicts_on_create="OVERWRITE",
            resolve_conflicts_on_update="PRESERVE",
            tags=self._tags,
            opts=pulumi.ResourceOptions(
                parent=self,
                provider=self._provider,
                depends_on=[self.cluster, *depends_on],
            ),
        )

    def _create_node_group(
        self,
        node_role_arn: pulumi.Input[str],
        node_group_config: NodeGroupSpec,
    ) -> aws.eks.NodeGroup:
        """Create a managed node group scaling between min_size and max_size."""
        ng_name = node_group_config.name

        depends: list[pulumi.Resource] = [self.cluster]
        if "vpc-cni" in self.addons:
            depends.append(self.addons["vpc-cni"])

        return aws.eks.NodeGroup(
            f"{self._name}-{ng_name}-node-group",
            cluster_name=self.cluster.name,
            node_group_name=ng_name,
            node_role_arn=node_role_arn,
            subnet_ids=self.subnet_ids,
            instance_types=node_group_config.instance_types,
            capacity_type=node_group_config.capacity_type.value,
            ami_type=node_group_config.ami_type.value,
            disk_size=node_group_config.disk_size,
            scaling_config=aws.eks.NodeGroupScalingConfigArgs(
                desired_size=node_group_config.desired_size,
                min_size=node_group_config.min_size,
                max_size=node_group_config.max_size,
            ),
            update_config=aws.eks.NodeGroupUpdateConfigArgs(
                max_unavailable_percentage=33,
            ),
            labels=node_group_config.labels or None,
            tags={**self._tags, **node_group_config.tags, "Name": f"{self._name}-{ng_name}"},
            opts=pulumi.ResourceOptions(
                parent=self,
                provider=self._provider,
                depends_on=depends,
            ),
        )
