import pulumi

from infra.components.eks import EksCluster
from infra.components.iam import EksIamRoles
from infra.components.networking import Networking
from infra.config import load_pulumi_stack_input
from infra.providers import create_aws_provider, get_available_zones
from provisioning.config_resolver import resolve_stack
from provisioning.kubeconfig import render_kubeconfig, update_kubeconfig_command

stack_input = load_pulumi_stack_input()

# Local checks first: node groups, CIDRs, names and versions need no AWS call.
resolve_stack(stack_input)

aws_provider = create_aws_provider(stack_input)

# Fails with ConfigValidationError before any resource is registered.
spec = resolve_stack(stack_input, available_zones=get_available_zones(aws_provider))

pulumi.log.info(
    f"Spreading {spec.network.name} over {', '.join(spec.network.availability_zones)}"
)

networking = Networking(
    name=spec.network.name,
    network=spec.network,
    provider=aws_provider,
)

iam = EksIamRoles(
    name=spec.cluster.name,
    provider=aws_provider,
    tags=spec.cluster.tags,
)

eks = EksCluster(
    name=spec.cluster.name,
    cluster=spec.cluster,
    network=networking.output,
    cluster_role_arn=iam.cluster_role_arn,
    node_role_arn=iam.node_role_arn,
    provider=aws_provider,
    opts=pulumi.ResourceOptions(depends_on=[networking, iam]),
)


pulumi.export("cluster_endpoint", eks.cluster_endpoint)
pulumi.export("cluster_name", eks.cluster_name)

pulumi.export("cluster_arn", eks.cluster_arn)
pulumi.export("cluster_urn", eks.urn)
pulumi.export("oidc_provider_arn", eks.oidc_provider_arn)

pulumi.export("vpc_id", networking.vpc_id)
pulumi.export("private_subnet_ids", networking.private_subnet_ids)
pulumi.export("public_subnet_ids", networking.public_subnet_ids)
pulumi.export("availability_zones", spec.network.availability_zones)

pulumi.export(
    "update_kubeconfig_command",
    eks.cluster_name.apply(lambda name: update_kubeconfig_command(name, spec.region)),
)
pulumi.export(
    "kubeconfig",
    pulumi.Output.secret(
        pulumi.Output.all(eks.cluster_name, eks.cluster_endpoint, eks.cluster_ca_data).apply(
            lambda args: render_kubeconfig(args[0], args[1], args[2], spec.region)
        )
    ),
)
