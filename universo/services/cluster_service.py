import logging
from typing import Dict, Any, List

from universo.database import models
from universo.repositories.interfaces import IClusterRepository, IUserRepository, IRoleRepository
from universo.services.exceptions import (
    ClusterNotFoundError, ClusterCreationError, ClusterNotEmptyError,
    UserNotFoundError, RoleNotFoundError, MemberNotFoundError,
    LastOwnerError, PermissionDeniedError
)
from universo.services.permissions import AccessContext, OWNER, can
from universo.services.validation import require_name, optional_text, reject_unknown
from universo.utils.pagination import Page, PageRequest

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description")


def cluster_to_dict(cluster: models.Cluster, role: str = None) -> Dict[str, Any]:
    data = {
        "id": cluster.id,
        "name": cluster.name,
        "description": cluster.description,
        "owner_id": cluster.owner_id,
        "created_at": cluster.created_at.isoformat() if cluster.created_at else None,
        "updated_at": cluster.updated_at.isoformat() if cluster.updated_at else None,
    }
    if role is not None:
        data["role"] = role
    return data


class ClusterService:
    """클러스터와 클러스터 멤버십(역할)을 관리합니다."""

    def __init__(self, cluster_repo: IClusterRepository, user_repo: IUserRepository, role_repo: IRoleRepository):
        self.cluster_repo = cluster_repo
        self.user_repo = user_repo
        self.role_repo = role_repo

    def authorize(self, ctx: AccessContext, cluster_id: int, action: str):
        """
        호출자가 클러스터에서 action을 수행할 수 있는지 검사합니다.

        멤버가 아닌 사용자에게는 클러스터의 존재 자체를 숨깁니다.

        Returns:
            (클러스터 모델, 호출자의 역할 이름) 튜플.

        Raises:
            ClusterNotFoundError: 클러스터가 없거나 호출자가 멤버가 아닐 때.
            PermissionDeniedError: 멤버이지만 역할이 부족할 때.
        """
        cluster = self.cluster_repo.find_by_id(cluster_id)
        role = self.cluster_repo.find_member_role(cluster_id, ctx.user_id) if cluster else None
        if not cluster or role is None:
            raise ClusterNotFoundError(f"Cluster with id '{cluster_id}' not found.")
        if not can(role, action):
            logger.warning("Permission denied: user=%s cluster=%s role=%s action=%s", ctx.user_id, cluster_id, role, action)
            raise PermissionDeniedError(f"Role '{role}' is not allowed to perform '{action}' on cluster '{cluster_id}'.")
        return cluster, role

    def create_cluster(self, ctx: AccessContext, name: str = None, description: str = None) -> Dict[str, Any]:
        """
        새로운 클러스터를 생성합니다. 호출자는 owner 멤버가 됩니다.

        Raises:
            ValidationError: 필드 값이 유효하지 않을 때.
            ClusterCreationError: 호출자가 같은 이름의 클러스터를 이미 소유하고 있을 때.
        """
        name = require_name(name)
        description = optional_text(description)
        if self.cluster_repo.find_by_name_and_owner(name, ctx.user_id):
            raise ClusterCreationError(f"Cluster with name '{name}' already exists.")

        owner_role = self._get_role(OWNER)
        cluster = self.cluster_repo.create(
            models.Cluster(name=name, description=description, owner_id=ctx.user_id), owner_role
        )
        logger.info("Cluster created: id=%s owner=%s", cluster.id, ctx.user_id)
        return cluster_to_dict(cluster, OWNER)

    def list_clusters(self, ctx: AccessContext, page: PageRequest) -> Page:
        """호출자가 멤버로 속한 클러스터만 조회합니다. 각 항목에는 호출자의 역할이 포함됩니다."""
        rows, total = self.cluster_repo.list_for_user(ctx.user_id, page.offset, page.limit)
        return Page(
            items=[cluster_to_dict(cluster, role) for cluster, role in rows],
            total=total, page=page.page, per_page=page.per_page
        )

    def get_cluster(self, ctx: AccessContext, cluster_id: int) -> Dict[str, Any]:
        cluster, role = self.authorize(ctx, cluster_id, "cluster:read")
        return cluster_to_dict(cluster, role)

    def update_cluster(self, ctx: AccessContext, cluster_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        클러스터의 이름/설명을 변경합니다.

        Raises:
            ValidationError: 허용되지 않은 필드이거나 값이 유효하지 않을 때.
            ClusterCreationError: 변경할 이름을 소유자가 이미 다른 클러스터에 사용 중일 때.
        """
        cluster, role = self.authorize(ctx, cluster_id, "cluster:update")
        reject_unknown(fields, UPDATABLE_FIELDS)

        changes = {}
        if "name" in fields:
            changes["name"] = require_name(fields["name"])
            existing = self.cluster_repo.find_by_name_and_owner(changes["name"], cluster.owner_id)
            if existing and existing.id != cluster.id:
                raise ClusterCreationError(f"Cluster with name '{changes['name']}' already exists.")
        if "description" in fields:
            changes["description"] = optional_text(fields["description"])

        cluster = self.cluster_repo.update(cluster, changes)
        return cluster_to_dict(cluster, role)

    def delete_cluster(self, ctx: AccessContext, cluster_id: int) -> bool:
        """
        클러스터를 삭제합니다. 단, 연결된 도메인이 없는 클러스터만 삭제 가능합니다.

        Raises:
            ClusterNotEmptyError: 클러스터에 도메인이 하나 이상 연결되어 있을 때.
        """
        cluster, _ = self.authorize(ctx, cluster_id, "cluster:delete")
        if self.cluster_repo.count_domains(cluster_id) > 0:
            raise ClusterNotEmptyError(f"Cluster '{cluster_id}' still has domains.")
        self.cluster_repo.delete(cluster)
        logger.info("Cluster deleted: id=%s by user=%s", cluster_id, ctx.user_id)
        return True

    def list_members(self, ctx: AccessContext, cluster_id: int) -> List[Dict[str, Any]]:
        self.authorize(ctx, cluster_id, "members:read")
        return self.cluster_repo.list_members(cluster_id)

    def set_member_role(self, ctx: AccessContext, cluster_id: int, user_id: int, role_name: str) -> Dict[str, Any]:
        """
        사용자에게 클러스터 역할을 부여하거나 변경합니다. 멤버가 아니면 새로 추가됩니다.

        owner 역할을 부여하거나, owner의 역할을 바꾸는 것은 owner만 할 수 있습니다.

        Raises:
            RoleNotFoundError: 해당 이름의 역할이 없을 때.
            UserNotFoundError: 대상 사용자를 찾을 수 없을 때.
            PermissionDeniedError: 호출자의 역할이 부족할 때.
            LastOwnerError: 마지막 owner를 강등하려고 할 때.
        """
        cluster, actor_role = self.authorize(ctx, cluster_id, "members:manage")
        role = self._get_role(role_name)
        user = self.user_repo.find_by_id(user_id)
        if not user:
            raise UserNotFoundError(f"User with id '{user_id}' not found.")

        current_role = self.cluster_repo.find_member_role(cluster_id, user_id)
        if OWNER in (role.name, current_role) and actor_role != OWNER:
            raise PermissionDeniedError("Only owners can grant or change the owner role.")

        if current_role == OWNER and role.name != OWNER:
            self._ensure_not_last_owner(cluster_id, user_id)

        self.cluster_repo.set_member_role(cluster, user, role)
        if current_role == OWNER and role.name != OWNER:
            self.cluster_repo.reassign_owner(cluster_id, user_id)
        logger.info("Member role set: cluster=%s user=%s role=%s by=%s", cluster_id, user_id, role.name, ctx.user_id)
        return {"id": user.id, "username": user.username, "role": role.name}

    def remove_member(self, ctx: AccessContext, cluster_id: int, user_id: int) -> bool:
        """
        멤버를 클러스터에서 제거합니다. 자기 자신은 역할과 관계없이 탈퇴할 수 있습니다.

        Raises:
            MemberNotFoundError: 대상 사용자가 클러스터의 멤버가 아닐 때.
            PermissionDeniedError: 호출자의 역할이 부족할 때.
            LastOwnerError: 마지막 owner를 제거하려고 할 때.
        """
        if user_id == ctx.user_id:
            self.authorize(ctx, cluster_id, "cluster:read")
            actor_role = self.cluster_repo.find_member_role(cluster_id, ctx.user_id)
        else:
            _, actor_role = self.authorize(ctx, cluster_id, "members:manage")

        target_role = self.cluster_repo.find_member_role(cluster_id, user_id)
        if target_role is None:
            raise MemberNotFoundError(f"User '{user_id}' is not a member of cluster '{cluster_id}'.")
        if target_role == OWNER and user_id != ctx.user_id and actor_role != OWNER:
            raise PermissionDeniedError("Only owners can remove an owner.")
        if target_role == OWNER:
            self._ensure_not_last_owner(cluster_id, user_id)
            self.cluster_repo.reassign_owner(cluster_id, user_id)

        self.cluster_repo.remove_member(cluster_id, user_id)
        logger.info("Member removed: cluster=%s user=%s by=%s", cluster_id, user_id, ctx.user_id)
        return True

    def _ensure_not_last_owner(self, cluster_id: int, user_id: int):
        if self.cluster_repo.count_owners(cluster_id) <= 1:
            raise LastOwnerError(f"User '{user_id}' is the last owner of cluster '{cluster_id}'.")

    def _get_role(self, role_name: str) -> models.Role:
        role = self.role_repo.find_by_name(role_name) if isinstance(role_name, str) else None
        if not role:
            raise RoleNotFoundError(f"Role '{role_name}' not found.")
        return role
