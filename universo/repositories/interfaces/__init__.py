from .user import IUserRepository
from .role import IRoleRepository
from .cluster import IClusterRepository
from .domain import IDomainRepository
from .resource import IResourceRepository

__all__ = [
    "IUserRepository",
    "IRoleRepository",
    "IClusterRepository",
    "IDomainRepository",
    "IResourceRepository",
]
