from typing import List, Optional, Dict, Any, Tuple
from sqlalchemy import and_, select
from sqlalchemy.orm import Session
from universo.database import models
from universo.repositories.interfaces import IResourceRepository

class SqlalchemyResourceRepository(IResourceRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def create_in_domain(self, resource_model: models.Resource, domain_id: int) -> models.Resource:
        self.db.add(resource_model)
        self.db.flush()
        self.db.add(models.DomainResource(domain_id=domain_id, resource_id=resource_model.id))
        self.db.commit()
        self.db.refresh(resource_model)
        return resource_model

    def find_by_id(self, resource_id: int) -> Optional[models.Resource]:
        return self.db.query(models.Resource).filter(models.Resource.id == resource_id).first()

    def list_for_user(self, user_id: int, offset: int, limit: int, resource_type: Optional[str] = None) -> Tuple[List[models.Resource], int]:
        visible_ids = (
            select(models.DomainResource.resource_id)
            .join(models.ClusterDomain, models.ClusterDomain.domain_id == models.DomainResource.domain_id)
            .join(models.ClusterMember, models.ClusterMember.cluster_id == models.ClusterDomain.cluster_id)
            .where(models.ClusterMember.user_id == user_id)
        )
        query = self.db.query(models.Resource).filter(models.Resource.id.in_(visible_ids))
        return self._paginate(query, offset, limit, resource_type)

    def list_by_domain(self, domain_id: int, offset: int, limit: int, resource_type: Optional[str] = None) -> Tuple[List[models.Resource], int]:
        query = (
            self.db.query(models.Resource)
            .join(models.DomainResource, models.DomainResource.resource_id == models.Resource.id)
            .filter(models.DomainResource.domain_id == domain_id)
        )
        return self._paginate(query, offset, limit, resource_type)

    def _paginate(self, query, offset: int, limit: int, resource_type: Optional[str]) -> Tuple[List[models.Resource], int]:
        if resource_type:
            query = query.filter(models.Resource.resource_type == resource_type)
        total = query.count()
        items = query.order_by(models.Resource.name.asc(), models.Resource.id.asc()).offset(offset).limit(limit).all()
        return items, total

    def update(self, resource: models.Resource, fields: Dict[str, Any]) -> models.Resource:
        for key, value in fields.items():
            setattr(resource, key, value)
        self.db.commit()
        self.db.refresh(resource)
        return resource

    def delete(self, resource: models.Resource) -> bool:
        if resource:
            self.db.delete(resource)
            self.db.commit()
            return True
        return False

    def count_domains(self, resource_id: int) -> int:
        return self.db.query(models.DomainResource).filter(models.DomainResource.resource_id == resource_id).count()

    def is_linked(self, domain_id: int, resource_id: int) -> bool:
        return self.db.query(models.DomainResource).filter(
            models.DomainResource.domain_id == domain_id,
            models.DomainResource.resource_id == resource_id
        ).first() is not None

    def link(self, domain_id: int, resource_id: int):
        self.db.merge(models.DomainResource(domain_id=domain_id, resource_id=resource_id))
        self.db.commit()

    def unlink(self, domain_id: int, resource_id: int) -> bool:
        link = self.db.query(models.DomainResource).filter(
            models.DomainResource.domain_id == domain_id,
            models.DomainResource.resource_id == resource_id
        ).first()
        if not link:
            return False
        self.db.delete(link)
        self.db.commit()
        return True

    def list_cluster_roles(self, resource_id: int, user_id: int) -> List[Tuple[int, Optional[str]]]:
        rows = (
            self.db.query(models.ClusterDomain.cluster_id, models.Role.name)
            .select_from(models.DomainResource)
            .join(models.ClusterDomain, models.ClusterDomain.domain_id == models.DomainResource.domain_id)
            .outerjoin(models.ClusterMember, and_(
                models.ClusterMember.cluster_id == models.ClusterDomain.cluster_id,
                models.ClusterMember.user_id == user_id
            ))
            .outerjoin(models.Role, models.Role.id == models.ClusterMember.role_id)
            .filter(models.DomainResource.resource_id == resource_id)
            .distinct()
            .all()
        )
        return [(cluster_id, role_name) for cluster_id, role_name in rows]
