import logging
from typing import Dict, Any, List, Optional, Tuple

from universo.database import models
from universo.repositories.interfaces import IDomainRepository
from universo.services.cluster_service import ClusterService
from universo.services.exceptions import (
    DomainNotFoundError, DomainNotEmptyError, LastLinkError, PermissionDeniedError
)
from universo.services.permissions import AccessContext, can, highest_role
from universo.services.validation import require_name, optional_text, reject_unknown
from universo.utils.pagination import Page, PageRequest

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description")


def domain_to_dict(domain: models.Domain) -> Dict[str, Any]:
    return {
        "id": domain.id,
        "name": domain.name,
        "description": domain.description,
        "created_at": domain.created_at.isoformat() if domain.created_at else None,
        "updated_at": domain.updated_at.isoformat() if domain.updated_at else None,
    }


class DomainService:
    """
    도메인 CRUD와 클러스터-도메인 연결을 관리합니다.

    도메인에 대한 호출자의 권한은 도메인이 연결된 클러스터들에서의 역할로 결정됩니다.
    읽기/수정은 가장 높은 역할 기준이고, 삭제는 연결된 모든 클러스터에서 권한이 있어야 합니다.
    """

    def __init__(self, domain_repo: IDomainRepository, cluster_service: ClusterService):
        self.domain_repo = domain_repo
        self.cluster_service = cluster_service  # 클러스터 권한 검사는 ClusterService에 위임

    def _access(self, ctx: AccessContext, domain_id: int) -> Tuple[models.Domain, str, List[Tuple[int, Optional[str]]]]:
        domain = self.domain_repo.find_by_id(domain_id)
        cluster_roles = self.domain_repo.list_cluster_roles(domain_id, ctx.user_id) if domain else []
        role = highest_role(r for _, r in cluster_roles)
        if not domain or role is None:
            raise DomainNotFoundError(f"Domain with id '{domain_id}' not found.")
        return domain, role, cluster_roles

    def authorize(self, ctx: AccessContext, domain_id: int, action: str) -> Tuple[models.Domain, str]:
        """
        호출자의 도메인 내 유효 역할(연결된 클러스터 중 가장 높은 역할)로 action을 검사합니다.

        Raises:
            DomainNotFoundError: 도메인이 없거나, 호출자가 연결된 어느 클러스터의 멤버도 아닐 때.
            PermissionDeniedError: 유효 역할로 action을 수행할 수 없을 때.
        """
        domain, role, _ = self._access(ctx, domain_id)
        if not can(role, action):
            logger.warning("Permission denied: user=%s domain=%s role=%s action=%s", ctx.user_id, domain_id, role, action)
            raise PermissionDeniedError(f"Role '{role}' is not allowed to perform '{action}' on domain '{domain_id}'.")
        return domain, role

    def authorize_everywhere(self, ctx: AccessContext, domain_id: int, action: str) -> models.Domain:
        """연결된 모든 클러스터에서 action 권한이 있어야 통과합니다."""
        domain, _, cluster_roles = self._access(ctx, domain_id)
        if not all(can(role, action) for _, role in cluster_roles):
            raise PermissionDeniedError(
                f"'{action}' on domain '{domain_id}' requires permission in every linked cluster."
            )
        return domain

    def create_domain(self, ctx: AccessContext, cluster_id: int, name: str = None, description: str = None) -> Dict[str, Any]:
        """
        클러스터 안에 새 도메인을 생성합니다. 생성과 연결은 하나의 커밋으로 처리됩니다.

        Raises:
            ClusterNotFoundError: 클러스터가 없거나 호출자가 멤버가 아닐 때.
            PermissionDeniedError: 클러스터에서 domain:write 권한이 없을 때.
            ValidationError: 필드 값이 유효하지 않을 때.
        """
        self.cluster_service.authorize(ctx, cluster_id, "domain:write")
        domain = models.Domain(name=require_name(name), description=optional_text(description))
        domain = self.domain_repo.create_in_cluster(domain, cluster_id)
        logger.info("Domain created: id=%s cluster=%s by=%s", domain.id, cluster_id, ctx.user_id)
        return domain_to_dict(domain)

    def list_domains(self, ctx: AccessContext, page: PageRequest) -> Page:
        items, total = self.domain_repo.list_for_user(ctx.user_id, page.offset, page.limit)
        return Page(items=[domain_to_dict(d) for d in items], total=total, page=page.page, per_page=page.per_page)

    def list_cluster_domains(self, ctx: AccessContext, cluster_id: int, page: PageRequest) -> Page:
        self.cluster_service.authorize(ctx, cluster_id, "domain:read")
        items, total = self.domain_repo.list_by_cluster(cluster_id, page.offset, page.limit)
        return Page(items=[domain_to_dict(d) for d in items], total=total, page=page.page, per_page=page.per_page)

    def get_domain(self, ctx: AccessContext, domain_id: int) -> Dict[str, Any]:
        domain, _ = self.authorize(ctx, domain_id, "domain:read")
        return domain_to_dict(domain)

    def update_domain(self, ctx: AccessContext, domain_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        domain, _ = self.authorize(ctx, domain_id, "domain:write")
        reject_unknown(fields, UPDATABLE_FIELDS)
        changes = {}
        if "name" in fields:
            changes["name"] = require_name(fields["name"])
        if "description" in fields:
            changes["description"] = optional_text(fields["description"])
        return domain_to_dict(self.domain_repo.update(domain, changes))

    def delete_domain(self, ctx: AccessContext, domain_id: int) -> bool:
        """
        도메인을 삭제합니다. 단, 연결된 리소스가 없는 도메인만 삭제 가능합니다.

        Raises:
            PermissionDeniedError: 연결된 클러스터 중 하나라도 domain:delete 권한이 없을 때.
            DomainNotEmptyError: 도메인에 리소스가 하나 이상 연결되어 있을 때.
        """
        domain = self.authorize_everywhere(ctx, domain_id, "domain:delete")
        if self.domain_repo.count_resources(domain_id) > 0:
            raise DomainNotEmptyError(f"Domain '{domain_id}' still has resources.")
        self.domain_repo.delete(domain)
        logger.info("Domain deleted: id=%s by=%s", domain_id, ctx.user_id)
        return True

    def link_domain(self, ctx: AccessContext, cluster_id: int, domain_id: int) -> Dict[str, Any]:
        """
        기존 도메인을 다른 클러스터에 연결합니다. 이미 연결되어 있으면 아무것도 하지 않습니다.
        대상 클러스터와 도메인 양쪽에서 domain:write 권한이 필요합니다.
        """
        self.cluster_service.authorize(ctx, cluster_id, "domain:write")
        domain, _ = self.authorize(ctx, domain_id, "domain:write")
        if not self.domain_repo.is_linked(cluster_id, domain_id):
            self.domain_repo.link(cluster_id, domain_id)
            logger.info("Domain linked: domain=%s cluster=%s by=%s", domain_id, cluster_id, ctx.user_id)
        return domain_to_dict(domain)

    def unlink_domain(self, ctx: AccessContext, cluster_id: int, domain_id: int) -> bool:
        """
        클러스터에서 도메인 연결을 끊습니다.

        Raises:
            DomainNotFoundError: 도메인이 해당 클러스터에 연결되어 있지 않을 때.
            LastLinkError: 도메인의 마지막 클러스터 연결일 때 (도메인이 접근 불가능해지므로).
        """
        self.cluster_service.authorize(ctx, cluster_id, "domain:write")
        if not self.domain_repo.is_linked(cluster_id, domain_id):
            raise DomainNotFoundError(f"Domain '{domain_id}' is not linked to cluster '{cluster_id}'.")
        if self.domain_repo.count_clusters(domain_id) <= 1:
            raise LastLinkError(f"Domain '{domain_id}' is only linked to cluster '{cluster_id}'; delete it instead.")
        self.domain_repo.unlink(cluster_id, domain_id)
        logger.info("Domain unlinked: domain=%s cluster=%s by=%s", domain_id, cluster_id, ctx.user_id)
        return True
