import logging
from typing import Dict, Any, List, Optional, Tuple

from universo.database import models
from universo.repositories.interfaces import IResourceRepository
from universo.services.domain_service import DomainService
from universo.services.exceptions import (
    ResourceNotFoundError, LastLinkError, PermissionDeniedError
)
from universo.services.permissions import AccessContext, can, highest_role
from universo.services.validation import require_name, require_object, reject_unknown
from universo.utils.pagination import Page, PageRequest

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "resource_type", "config")
DEFAULT_RESOURCE_TYPE = "generic"


def resource_to_dict(resource: models.Resource) -> Dict[str, Any]:
    return {
        "id": resource.id,
        "name": resource.name,
        "resource_type": resource.resource_type,
        "config": resource.config or {},
        "created_at": resource.created_at.isoformat() if resource.created_at else None,
        "updated_at": resource.updated_at.isoformat() if resource.updated_at else None,
    }


class ResourceService:
    """
    리소스 CRUD와 도메인-리소스 연결을 관리합니다.
    권한은 리소스 -> 도메인 -> 클러스터 경로의 역할로 결정됩니다.
    """

    def __init__(self, resource_repo: IResourceRepository, domain_service: DomainService):
        self.resource_repo = resource_repo
        self.domain_service = domain_service

    def _access(self, ctx: AccessContext, resource_id: int) -> Tuple[models.Resource, str, List[Tuple[int, Optional[str]]]]:
        resource = self.resource_repo.find_by_id(resource_id)
        cluster_roles = self.resource_repo.list_cluster_roles(resource_id, ctx.user_id) if resource else []
        role = highest_role(r for _, r in cluster_roles)
        if not resource or role is None:
            raise ResourceNotFoundError(f"Resource with id '{resource_id}' not found.")
        return resource, role, cluster_roles

    def authorize(self, ctx: AccessContext, resource_id: int, action: str) -> models.Resource:
        resource, role, _ = self._access(ctx, resource_id)
        if not can(role, action):
            logger.warning("Permission denied: user=%s resource=%s role=%s action=%s", ctx.user_id, resource_id, role, action)
            raise PermissionDeniedError(f"Role '{role}' is not allowed to perform '{action}' on resource '{resource_id}'.")
        return resource

    def create_resource(self, ctx: AccessContext, domain_id: int, name: str = None,
                        resource_type: str = None, config: Dict[str, Any] = None) -> Dict[str, Any]:
        """
        도메인 안에 새 리소스를 생성합니다.

        Args:
            domain_id: 리소스를 연결할 도메인 ID.
            name: 리소스 이름.
            resource_type: 타입 태그. 없으면 'generic'.
            config: 자유 형식의 설정 객체. 없으면 빈 객체.

        Raises:
            DomainNotFoundError: 도메인이 호출자에게 보이지 않을 때.
            PermissionDeniedError: 도메인에서 resource:write 권한이 없을 때.
            ValidationError: 필드 값이 유효하지 않을 때.
        """
        self.domain_service.authorize(ctx, domain_id, "resource:write")
        resource = models.Resource(
            name=require_name(name),
            resource_type=require_name(resource_type, "resource_type", 64) if resource_type is not None else DEFAULT_RESOURCE_TYPE,
            config=require_object(config) if config is not None else {},
        )
        resource = self.resource_repo.create_in_domain(resource, domain_id)
        logger.info("Resource created: id=%s domain=%s by=%s", resource.id, domain_id, ctx.user_id)
        return resource_to_dict(resource)

    def list_resources(self, ctx: AccessContext, page: PageRequest, resource_type: str = None) -> Page:
        items, total = self.resource_repo.list_for_user(ctx.user_id, page.offset, page.limit, resource_type)
        return Page(items=[resource_to_dict(r) for r in items], total=total, page=page.page, per_page=page.per_page)

    def list_domain_resources(self, ctx: AccessContext, domain_id: int, page: PageRequest, resource_type: str = None) -> Page:
        self.domain_service.authorize(ctx, domain_id, "resource:read")
        items, total = self.resource_repo.list_by_domain(domain_id, page.offset, page.limit, resource_type)
        return Page(items=[resource_to_dict(r) for r in items], total=total, page=page.page, per_page=page.per_page)

    def get_resource(self, ctx: AccessContext, resource_id: int) -> Dict[str, Any]:
        return resource_to_dict(self.authorize(ctx, resource_id, "resource:read"))

    def update_resource(self, ctx: AccessContext, resource_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        """이름, 타입 태그, 설정을 변경합니다. config는 객체 전체가 교체됩니다."""
        resource = self.authorize(ctx, resource_id, "resource:write")
        reject_unknown(fields, UPDATABLE_FIELDS)
        changes = {}
        if "name" in fields:
            changes["name"] = require_name(fields["name"])
        if "resource_type" in fields:
            changes["resource_type"] = require_name(fields["resource_type"], "resource_type", 64)
        if "config" in fields:
            changes["config"] = require_object(fields["config"])
        return resource_to_dict(self.resource_repo.update(resource, changes))

    def delete_resource(self, ctx: AccessContext, resource_id: int) -> bool:
        """
        리소스를 삭제합니다. 리소스에 도달할 수 있는 모든 클러스터에서 resource:delete 권한이 필요합니다.
        """
        resource, _, cluster_roles = self._access(ctx, resource_id)
        if not all(can(role, "resource:delete") for _, role in cluster_roles):
            raise PermissionDeniedError(
                f"'resource:delete' on resource '{resource_id}' requires permission in every linked cluster."
            )
        self.resource_repo.delete(resource)
        logger.info("Resource deleted: id=%s by=%s", resource_id, ctx.user_id)
        return True

    def link_resource(self, ctx: AccessContext, domain_id: int, resource_id: int) -> Dict[str, Any]:
        """기존 리소스를 다른 도메인에 연결합니다. 이미 연결되어 있으면 아무것도 하지 않습니다."""
        self.domain_service.authorize(ctx, domain_id, "resource:write")
        resource = self.authorize(ctx, resource_id, "resource:write")
        if not self.resource_repo.is_linked(domain_id, resource_id):
            self.resource_repo.link(domain_id, resource_id)
            logger.info("Resource linked: resource=%s domain=%s by=%s", resource_id, domain_id, ctx.user_id)
        return resource_to_dict(resource)

    def unlink_resource(self, ctx: AccessContext, domain_id: int, resource_id: int) -> bool:
        """
        도메인에서 리소스 연결을 끊습니다.

        Raises:
            ResourceNotFoundError: 리소스가 해당 도메인에 연결되어 있지 않을 때.
            LastLinkError: 리소스의 마지막 도메인 연결일 때.
        """
        self.domain_service.authorize(ctx, domain_id, "resource:write")
        if not self.resource_repo.is_linked(domain_id, resource_id):
            raise ResourceNotFoundError(f"Resource '{resource_id}' is not linked to domain '{domain_id}'.")
        if self.resource_repo.count_domains(resource_id) <= 1:
            raise LastLinkError(f"Resource '{resource_id}' is only linked to domain '{domain_id}'; delete it instead.")
        self.resource_repo.unlink(domain_id, resource_id)
        logger.info("Resource unlinked: resource=%s domain=%s by=%s", resource_id, domain_id, ctx.user_id)
        return True
