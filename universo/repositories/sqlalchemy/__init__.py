from .sqlalchemy_user_repository import SqlalchemyUserRepository
from .sqlalchemy_role_repository import SqlalchemyRoleRepository
from .sqlalchemy_cluster_repository import SqlalchemyClusterRepository
from .sqlalchemy_domain_repository import SqlalchemyDomainRepository
from .sqlalchemy_resource_repository import SqlalchemyResourceRepository

__all__ = [
    "SqlalchemyUserRepository",
    "SqlalchemyRoleRepository",
    "SqlalchemyClusterRepository",
    "SqlalchemyDomainRepository",
    "SqlalchemyResourceRepository",
]
