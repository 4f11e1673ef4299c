from typing import List, Optional, Dict, Any, Tuple
from sqlalchemy import and_, select
from sqlalchemy.orm import Session
from universo.database import models
from universo.repositories.interfaces import IDomainRepository

class SqlalchemyDomainRepository(IDomainRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def create_in_cluster(self, domain_model: models.Domain, cluster_id: int) -> models.Domain:
        self.db.add(domain_model)
        self.db.flush()
        self.db.add(models.ClusterDomain(cluster_id=cluster_id, domain_id=domain_model.id))
        self.db.commit()
        self.db.refresh(domain_model)
        return domain_model

    def find_by_id(self, domain_id: int) -> Optional[models.Domain]:
        return self.db.query(models.Domain).filter(models.Domain.id == domain_id).first()

    def list_for_user(self, user_id: int, offset: int, limit: int) -> Tuple[List[models.Domain], int]:
        visible_ids = (
            select(models.ClusterDomain.domain_id)
            .join(models.ClusterMember, models.ClusterMember.cluster_id == models.ClusterDomain.cluster_id)
            .where(models.ClusterMember.user_id == user_id)
        )
        query = self.db.query(models.Domain).filter(models.Domain.id.in_(visible_ids))
        return self._paginate(query, offset, limit)

    def list_by_cluster(self, cluster_id: int, offset: int, limit: int) -> Tuple[List[models.Domain], int]:
        query = (
            self.db.query(models.Domain)
            .join(models.ClusterDomain, models.ClusterDomain.domain_id == models.Domain.id)
            .filter(models.ClusterDomain.cluster_id == cluster_id)
        )
        return self._paginate(query, offset, limit)

    def _paginate(self, query, offset: int, limit: int) -> Tuple[List[models.Domain], int]:
        total = query.count()
        items = query.order_by(models.Domain.name.asc(), models.Domain.id.asc()).offset(offset).limit(limit).all()
        return items, total

    def update(self, domain: models.Domain, fields: Dict[str, Any]) -> models.Domain:
        for key, value in fields.items():
            setattr(domain, key, value)
        self.db.commit()
        self.db.refresh(domain)
        return domain

    def delete(self, domain: models.Domain) -> bool:
        if domain:
            self.db.delete(domain)
            self.db.commit()
            return True
        return False

    def count_resources(self, domain_id: int) -> int:
        return self.db.query(models.DomainResource).filter(models.DomainResource.domain_id == domain_id).count()

    def count_clusters(self, domain_id: int) -> int:
        return self.db.query(models.ClusterDomain).filter(models.ClusterDomain.domain_id == domain_id).count()

    def is_linked(self, cluster_id: int, domain_id: int) -> bool:
        return self.db.query(models.ClusterDomain).filter(
            models.ClusterDomain.cluster_id == cluster_id,
            models.ClusterDomain.domain_id == domain_id
        ).first() is not None

    def link(self, cluster_id: int, domain_id: int):
        self.db.merge(models.ClusterDomain(cluster_id=cluster_id, domain_id=domain_id))
        self.db.commit()

    def unlink(self, cluster_id: int, domain_id: int) -> bool:
        link = self.db.query(models.ClusterDomain).filter(
            models.ClusterDomain.cluster_id == cluster_id,
            models.ClusterDomain.domain_id == domain_id
        ).first()
        if not link:
            return False
        self.db.delete(link)
        self.db.commit()
        return True

    def list_cluster_roles(self, domain_id: int, user_id: int) -> List[Tuple[int, Optional[str]]]:
        rows = (
            self.db.query(models.ClusterDomain.cluster_id, models.Role.name)
            .select_from(models.ClusterDomain)
            .outerjoin(models.ClusterMember, and_(
                models.ClusterMember.cluster_id == models.ClusterDomain.cluster_id,
                models.ClusterMember.user_id == user_id
            ))
            .outerjoin(models.Role, models.Role.id == models.ClusterMember.role_id)
            .filter(models.ClusterDomain.domain_id == domain_id)
            .all()
        )
        return [(cluster_id, role_name) for cluster_id, role_name in rows]
