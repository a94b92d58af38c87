import pulumi
import pulumi_aws as aws

from provisioning.config_resolver import OWNERSHIP_TAGS
from provisioning.models import StackInput


def create_aws_provider(stack_input: StackInput) -> aws.Provider:
    """Create the AWS provider every resource in the stack is created through."""

    default_tags = {
        "Environment": stack_input.environment,
        **OWNERSHIP_TAGS,
        "Stack": pulumi.get_stack(),
    }

    all_tags = {**default_tags, **stack_input.tags}

    return aws.Provider(
        "aws",
        region=stack_input.region,
        default_tags=aws.ProviderDefaultTagsArgs(
            tags=all_tags,
        ),
    )


def get_available_zones(provider: aws.Provider) -> list[str]:
    """Zone names in the provider's region that are currently available.

    Local and wavelength zones need an opt-in and cannot host EKS subnets, so
    they are left out.
    """
    zones = aws.get_availability_zones(
        state="available",
        filters=[
            aws.GetAvailabilityZonesFilterArgs(
                name="opt-in-status",
                values=["opt-in-not-required"],
            )
        ],
        opts=pulumi.InvokeOptions(provider=provider),
    )
    return list(zones.names)
