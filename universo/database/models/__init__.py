from .user import User
from .role import Role
from .cluster import Cluster
from .domain import Domain
from .resource import Resource
from .association import ClusterMember, ClusterDomain, DomainResource

__all__ = [
    "User",
    "Role",
    "Cluster",
    "Domain",
    "Resource",
    "ClusterMember",
    "ClusterDomain",
    "DomainResource",
]
