from infra.components.eks import EksCluster
from infra.components.iam import EksIamRoles
from infra.components.networking import NetworkOutput, Networking

__all__ = ["Networking", "NetworkOutput", "EksIamRoles", "EksCluster"]
