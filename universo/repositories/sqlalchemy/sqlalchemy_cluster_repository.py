from typing import List, Optional, Dict, Any, Tuple
from sqlalchemy.orm import Session, joinedload
from universo.database import models
from universo.repositories.interfaces import IClusterRepository
from universo.services.permissions import OWNER

class SqlalchemyClusterRepository(IClusterRepository):
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(self, cluster_model: models.Cluster, owner_role: models.Role) -> models.Cluster:
        self.db.add(cluster_model)
        self.db.flush()  # cluster id 할당
        self.db.add(models.ClusterMember(
            cluster_id=cluster_model.id,
            user_id=cluster_model.owner_id,
            role_id=owner_role.id,
        ))
        self.db.commit()
        self.db.refresh(cluster_model)
        return cluster_model

    def find_by_id(self, cluster_id: int) -> Optional[models.Cluster]:
        return self.db.query(models.Cluster).filter(models.Cluster.id == cluster_id).first()

    def find_by_name_and_owner(self, name: str, owner_id: int) -> Optional[models.Cluster]:
        return self.db.query(models.Cluster).filter(
            models.Cluster.name == name,
            models.Cluster.owner_id == owner_id
        ).first()

    def list_for_user(self, user_id: int, offset: int, limit: int) -> Tuple[List[Tuple[models.Cluster, str]], int]:
        query = (
            self.db.query(models.Cluster, models.Role.name)
            .join(models.ClusterMember, models.ClusterMember.cluster_id == models.Cluster.id)
            .join(models.Role, models.Role.id == models.ClusterMember.role_id)
            .filter(models.ClusterMember.user_id == user_id)
        )
        total = query.count()
        rows = query.order_by(models.Cluster.name.asc(), models.Cluster.id.asc()).offset(offset).limit(limit).all()
        return [(cluster, role_name) for cluster, role_name in rows], total

    def update(self, cluster: models.Cluster, fields: Dict[str, Any]) -> models.Cluster:
        for key, value in fields.items():
            setattr(cluster, key, value)
        self.db.commit()
        self.db.refresh(cluster)
        return cluster

    def delete(self, cluster: models.Cluster) -> bool:
        if cluster:
            self.db.delete(cluster)
            self.db.commit()
            return True
        return False

    def count_domains(self, cluster_id: int) -> int:
        return self.db.query(models.ClusterDomain).filter(models.ClusterDomain.cluster_id == cluster_id).count()

    def find_member_role(self, cluster_id: int, user_id: int) -> Optional[str]:
        row = (
            self.db.query(models.Role.name)
            .join(models.ClusterMember, models.ClusterMember.role_id == models.Role.id)
            .filter(
                models.ClusterMember.cluster_id == cluster_id,
                models.ClusterMember.user_id == user_id
            )
            .first()
        )
        return row[0] if row else None

    def list_members(self, cluster_id: int) -> List[Dict[str, Any]]:
        memberships = (
            self.db.query(models.ClusterMember)
            .options(joinedload(models.ClusterMember.user), joinedload(models.ClusterMember.role))
            .filter(models.ClusterMember.cluster_id == cluster_id)
            .all()
        )
        members = [
            {"id": m.user.id, "username": m.user.username, "role": m.role.name}
            for m in memberships
        ]
        return sorted(members, key=lambda m: m["username"])

    def count_owners(self, cluster_id: int) -> int:
        return (
            self.db.query(models.ClusterMember)
            .join(models.Role, models.Role.id == models.ClusterMember.role_id)
            .filter(models.ClusterMember.cluster_id == cluster_id, models.Role.name == OWNER)
            .count()
        )

    def list_owner_cluster_ids(self, user_id: int) -> List[int]:
        rows = (
            self.db.query(models.ClusterMember.cluster_id)
            .join(models.Role, models.Role.id == models.ClusterMember.role_id)
            .filter(models.ClusterMember.user_id == user_id, models.Role.name == OWNER)
            .all()
        )
        return [row[0] for row in rows]

    def set_member_role(self, cluster: models.Cluster, user: models.User, role: models.Role):
        membership = models.ClusterMember(cluster_id=cluster.id, user_id=user.id, role_id=role.id)
        self.db.merge(membership)  # (cluster_id, user_id) 기준 INSERT OR UPDATE
        self.db.commit()

    def remove_member(self, cluster_id: int, user_id: int) -> bool:
        membership = self.db.query(models.ClusterMember).filter(
            models.ClusterMember.cluster_id == cluster_id,
            models.ClusterMember.user_id == user_id
        ).first()
        if not membership:
            return False
        self.db.delete(membership)
        self.db.commit()
        return True

    def reassign_owner(self, cluster_id: int, departing_user_id: int) -> Optional[int]:
        cluster = self.find_by_id(cluster_id)
        if not cluster or cluster.owner_id != departing_user_id:
            return None
        successor = (
            self.db.query(models.ClusterMember.user_id)
            .join(models.Role, models.Role.id == models.ClusterMember.role_id)
            .filter(
                models.ClusterMember.cluster_id == cluster_id,
                models.ClusterMember.user_id != departing_user_id,
                models.Role.name == OWNER
            )
            .order_by(models.ClusterMember.user_id.asc())
            .first()
        )
        if not successor:
            return None
        cluster.owner_id = successor[0]
        self.db.commit()
        return successor[0]
