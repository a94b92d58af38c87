"""kubeconfig rendering for clusters created by this stack."""

from typing import Optional

import yaml


def update_kubeconfig_command(cluster_name: str, region: str) -> str:
    return f"aws eks update-kubeconfig --region {region} --name {cluster_name}"


def build_kubeconfig(
    cluster_name: str,
    endpoint: str,
    certificate_authority_data: str,
    region: str,
    aws_profile: Optional[str] = None,
) -> dict:
    """Build a kubeconfig document that authenticates through `aws eks get-token`."""
    env = None
    if aws_profile:
        env = [{"name": "AWS_PROFILE", "value": aws_profile}]

    user_exec: dict = {
        "apiVersion": "client.authentication.k8s.io/v1beta1",
        "command": "aws",
        "args": [
            "eks",
            "get-token",
            "--cluster-name",
            cluster_name,
            "--region",
            region,
            "--output",
            "json",
        ],
        "interactiveMode": "Never",
    }
    if env:
        user_exec["env"] = env

    return {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [
            {
                "name": cluster_name,
                "cluster": {
                    "server": endpoint,
                    "certificate-authority-data": certificate_authority_data,
                },
            }
        ],
        "contexts": [
            {
                "name": cluster_name,
                "context": {"cluster": cluster_name, "user": cluster_name},
            }
        ],
        "current-context": cluster_name,
        "preferences": {},
        "users": [{"name": cluster_name, "user": {"exec": user_exec}}],
    }


def render_kubeconfig(
    cluster_name: str,
    endpoint: str,
    certificate_authority_data: str,
    region: str,
    aws_profile: Optional[str] = None,
) -> str:
    doc = build_kubeconfig(
        cluster_name,
        endpoint,
        certificate_authority_data,
        region,
        aws_profile=aws_profile,
    )
    return yaml.safe_dump(doc, default_flow_style=False, sort_keys=False)
