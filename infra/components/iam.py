import json

import pulumi
import pulumi_aws as aws

CLUSTER_POLICIES = [
    "arn:aws:iam::aws:policy/AmazonEKSClusterPolicy",
    "arn:aws:iam::aws:policy/AmazonEKSVPCResourceController",
]

NODE_POLICIES = [
    "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy",
    "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy",
    "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly",
]


def _assume_role_policy(service: str) -> str:
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"Service": service},
                    "Action": "sts:AssumeRole",
                }
            ],
        }
    )


class EksIamRoles(pulumi.ComponentResource):
    """IAM roles required for EKS cluster and worker nodes."""

    def __init__(
        self,
        name: str,
        provider: aws.Provider,
        tags: dict[str, str] | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("eks-quickstart:infrastructure:EksIamRoles", name, None, opts)

        child_opts = pulumi.ResourceOptions(parent=self, provider=provider)
        tags = tags or {}

        self.cluster_role = aws.iam.Role(
            f"{name}-eks-cluster-role",
            assume_role_policy=_assume_role_policy("eks.amazonaws.com"),
            tags={**tags, "Name": f"{name}-eks-cluster-role"},
            opts=child_opts,
        )
        self.cluster_policy_attachments = [
            aws.iam.RolePolicyAttachment(
                f"{name}-eks-cluster-policy-{i}",
                role=self.cluster_role.name,
                policy_arn=policy_arn,
                opts=child_opts,
            )
            for i, policy_arn in enumerate(CLUSTER_POLICIES)
        ]

        self.node_role = aws.iam.Role(
            f"{name}-eks-node-role",
            assume_role_policy=_assume_role_policy("ec2.amazonaws.com"),
            tags={**tags, "Name": f"{name}-eks-node-role"},
            opts=child_opts,
        )
        self.node_policy_attachments = [
            aws.iam.RolePolicyAttachment(
                f"{name}-eks-node-policy-{i}",
                role=self.node_role.name,
                policy_arn=policy_arn,
                opts=child_opts,
            )
            for i, policy_arn in enumerate(NODE_POLICIES)
        ]

        self.cluster_role_arn = self.cluster_role.arn
        self.node_role_arn = self.node_role.arn

        self.register_outputs(
            {
                "cluster_role_arn": self.cluster_role_arn,
                "node_role_arn": self.node_role_arn,
            }
        )
