# tests/services/test_domain_service.py
import pytest
from unittest.mock import MagicMock, ANY

from universo.services.domain_service import DomainService
from universo.services.cluster_service import ClusterService
from universo.services.exceptions import *
from universo.services.permissions import AccessContext
from universo.repositories.interfaces import IDomainRepository
from universo.utils.pagination import PageRequest
from universo.database import models

# ===================================================================
#  Fixture 설정
# ===================================================================

@pytest.fixture
def mock_domain_repo() -> MagicMock:
    return MagicMock(spec=IDomainRepository)

@pytest.fixture
def mock_cluster_service() -> MagicMock:
    """ClusterService에 대한 모의 객체. 기본적으로 모든 클러스터 권한 검사를 통과시킵니다."""
    return MagicMock(spec=ClusterService)

@pytest.fixture
def domain_service(mock_domain_repo, mock_cluster_service) -> DomainService:
    return DomainService(mock_domain_repo, mock_cluster_service)

@pytest.fixture
def ctx() -> AccessContext:
    return AccessContext(user_id=1, username="alice")

def make_domain(domain_id=20, name="networking"):
    return models.Domain(id=domain_id, name=name, description=None)

# ===================================================================
#  도메인 권한(Access) 테스트
# ===================================================================
class TestDomainAccess:
    def test_get_domain_uses_highest_role(self, domain_service, mock_domain_repo, ctx):
        """여러 클러스터에 연결된 도메인은 가장 높은 역할로 판단합니다."""
        mock_domain_repo.find_by_id.return_value = make_domain()
        mock_domain_repo.list_cluster_roles.return_value = [(10, None), (11, "member"), (12, "editor")]

        domain, role = domain_service.authorize(ctx, 20, "domain:write")

        assert role == "editor"
        assert domain.id == 20

    def test_domain_hidden_when_no_membership(self, domain_service, mock_domain_repo, ctx):
        mock_domain_repo.find_by_id.return_value = make_domain()
        mock_domain_repo.list_cluster_roles.return_value = [(10, None)]

        with pytest.raises(DomainNotFoundError):
            domain_service.get_domain(ctx, 20)

    def test_member_cannot_update_domain(self, domain_service, mock_domain_repo, ctx):
        mock_domain_repo.find_by_id.return_value = make_domain()
        mock_domain_repo.list_cluster_roles.return_value = [(10, "member")]

        with pytest.raises(PermissionDeniedError):
            domain_service.update_domain(ctx, 20, {"name": "renamed"})
        mock_domain_repo.update.assert_not_called()

# ===================================================================
#  도메인 CRUD 테스트
# ===================================================================
class TestDomainCrud:
    def test_create_domain_success(self, domain_service, mock_domain_repo, mock_cluster_service, ctx):
        mock_domain_repo.create_in_cluster.return_value = make_domain()

        domain = domain_service.create_domain(ctx, 10, "networking", "VPCs")

        mock_cluster_service.authorize.assert_called_once_with(ctx, 10, "domain:write")
        mock_domain_repo.create_in_cluster.assert_called_once_with(ANY, 10)
        assert domain["id"] == 20

    def test_create_domain_denied_by_cluster(self, domain_service, mock_domain_repo, mock_cluster_service, ctx):
        mock_cluster_service.authorize.side_effect = PermissionDeniedError("nope")

        with pytest.raises(PermissionDeniedError):
            domain_service.create_domain(ctx, 10, "networking")
        mock_domain_repo.create_in_cluster.assert_not_called()

    def test_list_cluster_domains(self, domain_service, mock_domain_repo, mock_cluster_service, ctx):
        mock_domain_repo.list_by_cluster.return_value = ([make_domain()], 1)

        page = domain_service.list_cluster_domains(ctx, 10, PageRequest(page=1, per_page=20))

        mock_cluster_service.authorize.assert_called_once_with(ctx, 10, "domain:read")
        assert page.total == 1
        assert page.items[0]["name"] == "networking"

    def test_delete_domain_success(self, domain_service, mock_domain_repo, ctx):
        domain = make_domain()
        mock_domain_repo.find_by_id.return_value = domain
        mock_domain_repo.list_cluster_roles.return_value = [(10, "admin"), (11, "owner")]
        mock_domain_repo.count_resources.return_value = 0

        assert domain_service.delete_domain(ctx, 20) is True
        mock_domain_repo.delete.assert_called_once_with(domain)

    def test_delete_domain_not_empty(self, domain_service, mock_domain_repo, ctx):
        """리소스가 연결된 도메인 삭제 시 DomainNotEmptyError 예외를 테스트합니다."""
        mock_domain_repo.find_by_id.return_value = make_domain()
        mock_domain_repo.list_cluster_roles.return_value = [(10, "owner")]
        mock_domain_repo.count_resources.return_value = 3

        with pytest.raises(DomainNotEmptyError):
            domain_service.delete_domain(ctx, 20)
        mock_domain_repo.delete.assert_not_called()

    def test_delete_domain_requires_every_cluster(self, domain_service, mock_domain_repo, ctx):
        """다른 테넌트의 클러스터에도 연결된 도메인은 삭제할 수 없습니다."""
        mock_domain_repo.find_by_id.return_value = make_domain()
        mock_domain_repo.list_cluster_roles.return_value = [(10, "owner"), (11, None)]

        with pytest.raises(PermissionDeniedError) as exc_info:
            domain_service.delete_domain(ctx, 20)
        # 멤버가 아닌 클러스터의 id는 메시지에 드러나지 않아야 합니다.
        assert "11" not in str(exc_info.value)
        mock_domain_repo.delete.assert_not_called()

# ===================================================================
#  클러스터-도메인 연결(Link) 테스트
# ===================================================================
class TestDomainLinks:
    def test_link_domain(self, domain_service, mock_domain_repo, mock_cluster_service, ctx):
        mock_domain_repo.find_by_id.return_value = make_domain()
        mock_domain_repo.list_cluster_roles.return_value = [(10, "editor")]
        mock_domain_repo.is_linked.return_value = False

        domain_service.link_domain(ctx, 11, 20)

        mock_cluster_service.authorize.assert_called_once_with(ctx, 11, "domain:write")
        mock_domain_repo.link.assert_called_once_with(11, 20)

    def test_link_domain_is_idempotent(self, domain_service, mock_domain_repo, ctx):
        mock_domain_repo.find_by_id.return_value = make_domain()
        mock_domain_repo.list_cluster_roles.return_value = [(10, "editor"), (11, "editor")]
        mock_domain_repo.is_linked.return_value = True

        domain_service.link_domain(ctx, 11, 20)

        mock_domain_repo.link.assert_not_called()

    def test_unlink_last_link_is_rejected(self, domain_service, mock_domain_repo, ctx):
        mock_domain_repo.is_linked.return_value = True
        mock_domain_repo.count_clusters.return_value = 1

        with pytest.raises(LastLinkError):
            domain_service.unlink_domain(ctx, 10, 20)
        mock_domain_repo.unlink.assert_not_called()

    def test_unlink_not_linked(self, domain_service, mock_domain_repo, ctx):
        mock_domain_repo.is_linked.return_value = False

        with pytest.raises(DomainNotFoundError):
            domain_service.unlink_domain(ctx, 10, 20)

    def test_unlink_success(self, domain_service, mock_domain_repo, ctx):
        mock_domain_repo.is_linked.return_value = True
        mock_domain_repo.count_clusters.return_value = 2

        assert domain_service.unlink_domain(ctx, 10, 20) is True
        mock_domain_repo.unlink.assert_called_once_with(10, 20)
