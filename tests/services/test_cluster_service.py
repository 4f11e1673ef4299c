# tests/services/test_cluster_service.py
import pytest
from datetime import datetime
from unittest.mock import MagicMock, ANY

from universo.services.cluster_service import ClusterService
from universo.services.exceptions import *
from universo.services.permissions import AccessContext
from universo.repositories.interfaces import IClusterRepository, IUserRepository, IRoleRepository
from universo.utils.pagination import PageRequest
from universo.database import models

ROLES = {name: models.Role(id=i, name=name) for i, name in enumerate(("owner", "admin", "editor", "member"), start=1)}

# ===================================================================
#  Fixture 설정
# ===================================================================

@pytest.fixture
def mock_cluster_repo() -> MagicMock:
    return MagicMock(spec=IClusterRepository)

@pytest.fixture
def mock_user_repo() -> MagicMock:
    return MagicMock(spec=IUserRepository)

@pytest.fixture
def mock_role_repo() -> MagicMock:
    repo = MagicMock(spec=IRoleRepository)
    repo.find_by_name.side_effect = ROLES.get
    return repo

@pytest.fixture
def cluster_service(mock_cluster_repo, mock_user_repo, mock_role_repo) -> ClusterService:
    return ClusterService(mock_cluster_repo, mock_user_repo, mock_role_repo)

@pytest.fixture
def ctx() -> AccessContext:
    return AccessContext(user_id=1, username="alice")

def make_cluster(cluster_id=10, owner_id=1, name="prod"):
    return models.Cluster(id=cluster_id, name=name, description=None, owner_id=owner_id,
                          created_at=datetime(2024, 1, 1), updated_at=datetime(2024, 1, 1))

# ===================================================================
#  클러스터 CRUD 테스트
# ===================================================================
class TestClusterCrud:
    def test_create_cluster_success(self, cluster_service, mock_cluster_repo, ctx):
        """클러스터 생성 시 호출자가 owner로 등록되는지 테스트합니다."""
        # === Arrange ===
        mock_cluster_repo.find_by_name_and_owner.return_value = None
        mock_cluster_repo.create.return_value = make_cluster()

        # === Act ===
        cluster = cluster_service.create_cluster(ctx, "  prod ", "Production")

        # === Assert ===
        assert cluster["id"] == 10
        assert cluster["role"] == "owner"
        mock_cluster_repo.find_by_name_and_owner.assert_called_once_with("prod", 1)
        mock_cluster_repo.create.assert_called_once_with(ANY, ROLES["owner"])
        created_model = mock_cluster_repo.create.call_args.args[0]
        assert created_model.owner_id == 1
        assert created_model.description == "Production"

    def test_create_cluster_fails_if_name_exists(self, cluster_service, mock_cluster_repo, ctx):
        mock_cluster_repo.find_by_name_and_owner.return_value = make_cluster()

        with pytest.raises(ClusterCreationError):
            cluster_service.create_cluster(ctx, "prod")
        mock_cluster_repo.create.assert_not_called()

    @pytest.mark.parametrize("name", [None, "", "   ", 42, "x" * 256])
    def test_create_cluster_validates_name(self, cluster_service, mock_cluster_repo, ctx, name):
        with pytest.raises(ValidationError):
            cluster_service.create_cluster(ctx, name)
        mock_cluster_repo.create.assert_not_called()

    def test_list_clusters_is_scoped_to_caller(self, cluster_service, mock_cluster_repo, ctx):
        """목록 조회는 호출자의 user_id로 범위가 지정되어야 합니다."""
        mock_cluster_repo.list_for_user.return_value = ([(make_cluster(), "editor")], 41)

        page = cluster_service.list_clusters(ctx, PageRequest(page=3, per_page=20))

        mock_cluster_repo.list_for_user.assert_called_once_with(1, 40, 20)
        assert page.total == 41
        assert page.items[0]["role"] == "editor"
        assert page.has_prev and not page.has_next

    def test_get_cluster_hidden_from_non_member(self, cluster_service, mock_cluster_repo, ctx):
        """멤버가 아닌 사용자에게는 클러스터가 존재하지 않는 것처럼 보여야 합니다."""
        mock_cluster_repo.find_by_id.return_value = make_cluster(owner_id=2)
        mock_cluster_repo.find_member_role.return_value = None

        with pytest.raises(ClusterNotFoundError):
            cluster_service.get_cluster(ctx, 10)

    def test_update_cluster_requires_admin(self, cluster_service, mock_cluster_repo, ctx):
        mock_cluster_repo.find_by_id.return_value = make_cluster()
        mock_cluster_repo.find_member_role.return_value = "editor"

        with pytest.raises(PermissionDeniedError):
            cluster_service.update_cluster(ctx, 10, {"name": "renamed"})
        mock_cluster_repo.update.assert_not_called()

    def test_update_cluster_rejects_unknown_fields(self, cluster_service, mock_cluster_repo, ctx):
        mock_cluster_repo.find_by_id.return_value = make_cluster()
        mock_cluster_repo.find_member_role.return_value = "owner"

        with pytest.raises(ValidationError, match="owner_id"):
            cluster_service.update_cluster(ctx, 10, {"owner_id": 5})

    def test_update_cluster_success(self, cluster_service, mock_cluster_repo, ctx):
        cluster = make_cluster()
        mock_cluster_repo.find_by_id.return_value = cluster
        mock_cluster_repo.find_member_role.return_value = "admin"
        mock_cluster_repo.find_by_name_and_owner.return_value = None
        mock_cluster_repo.update.return_value = cluster

        result = cluster_service.update_cluster(ctx, 10, {"name": "staging", "description": None})

        mock_cluster_repo.update.assert_called_once_with(cluster, {"name": "staging", "description": None})
        assert result["role"] == "admin"

    def test_delete_cluster_success(self, cluster_service, mock_cluster_repo, ctx):
        """도메인이 없는 클러스터 삭제 성공을 테스트합니다."""
        cluster = make_cluster()
        mock_cluster_repo.find_by_id.return_value = cluster
        mock_cluster_repo.find_member_role.return_value = "owner"
        mock_cluster_repo.count_domains.return_value = 0

        assert cluster_service.delete_cluster(ctx, 10) is True
        mock_cluster_repo.delete.assert_called_once_with(cluster)

    def test_delete_cluster_not_empty(self, cluster_service, mock_cluster_repo, ctx):
        """도메인이 연결된 클러스터 삭제 시 ClusterNotEmptyError 예외를 테스트합니다."""
        mock_cluster_repo.find_by_id.return_value = make_cluster()
        mock_cluster_repo.find_member_role.return_value = "owner"
        mock_cluster_repo.count_domains.return_value = 2

        with pytest.raises(ClusterNotEmptyError):
            cluster_service.delete_cluster(ctx, 10)
        mock_cluster_repo.delete.assert_not_called()

    def test_delete_cluster_requires_owner(self, cluster_service, mock_cluster_repo, ctx):
        mock_cluster_repo.find_by_id.return_value = make_cluster()
        mock_cluster_repo.find_member_role.return_value = "admin"

        with pytest.raises(PermissionDeniedError):
            cluster_service.delete_cluster(ctx, 10)
        mock_cluster_repo.count_domains.assert_not_called()

# ===================================================================
#  멤버십(Membership) 테스트
# ===================================================================
class TestMembership:
    def _arrange(self, mock_cluster_repo, mock_user_repo, actor_role, target_role, owners=2):
        roles = {1: actor_role, 2: target_role}
        mock_cluster_repo.find_by_id.return_value = make_cluster()
        mock_cluster_repo.find_member_role.side_effect = lambda cluster_id, user_id: roles.get(user_id)
        mock_cluster_repo.count_owners.return_value = owners
        mock_user_repo.find_by_id.return_value = models.User(id=2, username="bob")

    def test_admin_adds_editor(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        self._arrange(mock_cluster_repo, mock_user_repo, "admin", None)

        member = cluster_service.set_member_role(ctx, 10, 2, "editor")

        assert member == {"id": 2, "username": "bob", "role": "editor"}
        mock_cluster_repo.set_member_role.assert_called_once_with(ANY, mock_user_repo.find_by_id.return_value, ROLES["editor"])

    def test_admin_cannot_grant_owner(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        self._arrange(mock_cluster_repo, mock_user_repo, "admin", "member")

        with pytest.raises(PermissionDeniedError):
            cluster_service.set_member_role(ctx, 10, 2, "owner")
        mock_cluster_repo.set_member_role.assert_not_called()

    def test_admin_cannot_demote_owner(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        self._arrange(mock_cluster_repo, mock_user_repo, "admin", "owner")

        with pytest.raises(PermissionDeniedError):
            cluster_service.set_member_role(ctx, 10, 2, "member")

    def test_editor_cannot_manage_members(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        self._arrange(mock_cluster_repo, mock_user_repo, "editor", None)

        with pytest.raises(PermissionDeniedError):
            cluster_service.set_member_role(ctx, 10, 2, "member")

    def test_unknown_role(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        self._arrange(mock_cluster_repo, mock_user_repo, "owner", None)

        with pytest.raises(RoleNotFoundError):
            cluster_service.set_member_role(ctx, 10, 2, "superuser")

    def test_unknown_user(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        self._arrange(mock_cluster_repo, mock_user_repo, "owner", None)
        mock_user_repo.find_by_id.return_value = None

        with pytest.raises(UserNotFoundError):
            cluster_service.set_member_role(ctx, 10, 2, "member")

    def test_owner_cannot_demote_last_owner(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        """마지막 owner(자기 자신)를 강등하면 LastOwnerError가 발생해야 합니다."""
        self._arrange(mock_cluster_repo, mock_user_repo, "owner", None, owners=1)
        mock_user_repo.find_by_id.return_value = models.User(id=1, username="alice")

        with pytest.raises(LastOwnerError):
            cluster_service.set_member_role(ctx, 10, 1, "admin")
        mock_cluster_repo.set_member_role.assert_not_called()

    def test_demoting_owner_reassigns_ownership(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        self._arrange(mock_cluster_repo, mock_user_repo, "owner", "owner", owners=2)

        cluster_service.set_member_role(ctx, 10, 2, "admin")

        mock_cluster_repo.reassign_owner.assert_called_once_with(10, 2)

    def test_member_can_leave(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        """멤버는 역할과 관계없이 스스로 탈퇴할 수 있습니다."""
        self._arrange(mock_cluster_repo, mock_user_repo, "member", None)

        assert cluster_service.remove_member(ctx, 10, 1) is True
        mock_cluster_repo.remove_member.assert_called_once_with(10, 1)

    def test_last_owner_cannot_leave(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        self._arrange(mock_cluster_repo, mock_user_repo, "owner", None, owners=1)

        with pytest.raises(LastOwnerError):
            cluster_service.remove_member(ctx, 10, 1)
        mock_cluster_repo.remove_member.assert_not_called()

    def test_admin_cannot_remove_owner(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        self._arrange(mock_cluster_repo, mock_user_repo, "admin", "owner")

        with pytest.raises(PermissionDeniedError):
            cluster_service.remove_member(ctx, 10, 2)

    def test_remove_non_member(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        self._arrange(mock_cluster_repo, mock_user_repo, "owner", None)

        with pytest.raises(MemberNotFoundError):
            cluster_service.remove_member(ctx, 10, 2)

    def test_owner_removes_other_owner(self, cluster_service, mock_cluster_repo, mock_user_repo, ctx):
        self._arrange(mock_cluster_repo, mock_user_repo, "owner", "owner", owners=2)

        cluster_service.remove_member(ctx, 10, 2)

        mock_cluster_repo.reassign_owner.assert_called_once_with(10, 2)
        mock_cluster_repo.remove_member.assert_called_once_with(10, 2)
