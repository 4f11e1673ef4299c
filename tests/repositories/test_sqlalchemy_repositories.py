# tests/repositories/test_sqlalchemy_repositories.py
import pytest

from universo.database import models
from universo.repositories.sqlalchemy import (
    SqlalchemyUserRepository,
    SqlalchemyRoleRepository,
    SqlalchemyClusterRepository,
    SqlalchemyDomainRepository,
    SqlalchemyResourceRepository,
)
from universo.services.identity_service import hash_password

# ===================================================================
#  인메모리 SQLite 위에서 실제 쿼리를 검증합니다.
#  conftest의 session_factory가 역할과 admin 사용자, default 클러스터를 미리 넣어 둡니다.
# ===================================================================

@pytest.fixture
def repos(db_session):
    return {
        "user": SqlalchemyUserRepository(db_session),
        "role": SqlalchemyRoleRepository(db_session),
        "cluster": SqlalchemyClusterRepository(db_session),
        "domain": SqlalchemyDomainRepository(db_session),
        "resource": SqlalchemyResourceRepository(db_session),
    }

@pytest.fixture
def alice(repos):
    return repos["user"].create(models.User(username="alice", password_hash=hash_password("password123")))

@pytest.fixture
def bob(repos):
    return repos["user"].create(models.User(username="bob", password_hash=hash_password("password123")))

@pytest.fixture
def alice_cluster(repos, alice):
    owner = repos["role"].find_by_name("owner")
    return repos["cluster"].create(models.Cluster(name="alpha", owner_id=alice.id), owner)


class TestSeedData:
    def test_roles_seeded(self, repos):
        assert [r.name for r in repos["role"].list_all()] == ["owner", "admin", "editor", "member"]

    def test_initialize_is_idempotent(self, engine, session_factory, repos):
        from universo.database.db_init import initialize_db
        initialize_db(bind=engine, session_factory=session_factory, admin_password="another-password")
        assert len(repos["role"].list_all()) == 4
        assert repos["user"].find_by_username("admin") is not None


class TestClusterRepository:
    def test_create_registers_owner_member(self, repos, alice, alice_cluster):
        assert repos["cluster"].find_member_role(alice_cluster.id, alice.id) == "owner"
        assert repos["cluster"].count_owners(alice_cluster.id) == 1
        assert repos["cluster"].list_owner_cluster_ids(alice.id) == [alice_cluster.id]

    def test_list_for_user_is_membership_scoped(self, repos, alice, bob, alice_cluster):
        """다른 사용자의 클러스터는 목록에 나타나지 않아야 합니다."""
        owner = repos["role"].find_by_name("owner")
        repos["cluster"].create(models.Cluster(name="bravo", owner_id=bob.id), owner)

        rows, total = repos["cluster"].list_for_user(alice.id, 0, 20)

        assert total == 1
        assert [(c.name, role) for c, role in rows] == [("alpha", "owner")]

    def test_set_member_role_upserts(self, repos, bob, alice_cluster):
        editor = repos["role"].find_by_name("editor")
        admin = repos["role"].find_by_name("admin")

        repos["cluster"].set_member_role(alice_cluster, bob, editor)
        repos["cluster"].set_member_role(alice_cluster, bob, admin)

        assert repos["cluster"].find_member_role(alice_cluster.id, bob.id) == "admin"
        members = repos["cluster"].list_members(alice_cluster.id)
        assert [(m["username"], m["role"]) for m in members] == [("alice", "owner"), ("bob", "admin")]

    def test_reassign_owner(self, repos, alice, bob, alice_cluster):
        owner = repos["role"].find_by_name("owner")
        repos["cluster"].set_member_role(alice_cluster, bob, owner)

        assert repos["cluster"].reassign_owner(alice_cluster.id, alice.id) == bob.id
        assert repos["cluster"].find_by_id(alice_cluster.id).owner_id == bob.id
        # 소유자가 아닌 사용자에 대해서는 변경이 없습니다.
        assert repos["cluster"].reassign_owner(alice_cluster.id, alice.id) is None

    def test_remove_member(self, repos, bob, alice_cluster):
        repos["cluster"].set_member_role(alice_cluster, bob, repos["role"].find_by_name("member"))

        assert repos["cluster"].remove_member(alice_cluster.id, bob.id) is True
        assert repos["cluster"].remove_member(alice_cluster.id, bob.id) is False

    def test_delete_cascades_memberships(self, repos, db_session, alice_cluster):
        cluster_id = alice_cluster.id
        repos["cluster"].delete(alice_cluster)

        assert repos["cluster"].find_by_id(cluster_id) is None
        assert db_session.query(models.ClusterMember).filter_by(cluster_id=cluster_id).count() == 0


class TestDomainRepository:
    def test_create_in_cluster_links(self, repos, alice_cluster):
        domain = repos["domain"].create_in_cluster(models.Domain(name="net"), alice_cluster.id)

        assert repos["domain"].is_linked(alice_cluster.id, domain.id)
        assert repos["cluster"].count_domains(alice_cluster.id) == 1
        assert repos["domain"].count_clusters(domain.id) == 1

    def test_list_for_user_and_cluster_roles(self, repos, alice, bob, alice_cluster):
        """두 클러스터에 연결된 도메인은 한 번만 보이고, 클러스터별 역할이 조회되어야 합니다."""
        owner = repos["role"].find_by_name("owner")
        bob_cluster = repos["cluster"].create(models.Cluster(name="bravo", owner_id=bob.id), owner)
        domain = repos["domain"].create_in_cluster(models.Domain(name="shared"), alice_cluster.id)
        repos["domain"].link(bob_cluster.id, domain.id)
        repos["domain"].link(bob_cluster.id, domain.id)  # 중복 연결은 무시

        items, total = repos["domain"].list_for_user(alice.id, 0, 20)
        roles = dict(repos["domain"].list_cluster_roles(domain.id, alice.id))

        assert total == 1 and items[0].id == domain.id
        assert roles == {alice_cluster.id: "owner", bob_cluster.id: None}
        assert repos["domain"].count_clusters(domain.id) == 2

    def test_list_by_cluster_pagination(self, repos, alice_cluster):
        for name in ("c", "a", "b"):
            repos["domain"].create_in_cluster(models.Domain(name=name), alice_cluster.id)

        items, total = repos["domain"].list_by_cluster(alice_cluster.id, 1, 1)

        assert total == 3
        assert [d.name for d in items] == ["b"]

    def test_unlink(self, repos, alice_cluster):
        domain = repos["domain"].create_in_cluster(models.Domain(name="net"), alice_cluster.id)

        assert repos["domain"].unlink(alice_cluster.id, domain.id) is True
        assert repos["domain"].unlink(alice_cluster.id, domain.id) is False


class TestResourceRepository:
    def test_visibility_through_domains(self, repos, alice, bob, alice_cluster):
        domain = repos["domain"].create_in_cluster(models.Domain(name="net"), alice_cluster.id)
        repos["resource"].create_in_domain(models.Resource(name="vpc", resource_type="network", config={"cidr": "10.0.0.0/16"}), domain.id)
        repos["resource"].create_in_domain(models.Resource(name="db", resource_type="database", config={}), domain.id)

        items, total = repos["resource"].list_for_user(alice.id, 0, 20, "network")
        _, bob_total = repos["resource"].list_for_user(bob.id, 0, 20)

        assert total == 1
        assert items[0].config == {"cidr": "10.0.0.0/16"}
        assert bob_total == 0
        assert repos["domain"].count_resources(domain.id) == 2

    def test_cluster_roles_are_distinct(self, repos, alice, alice_cluster):
        """같은 클러스터의 두 도메인에 연결된 리소스도 클러스터는 한 번만 나와야 합니다."""
        d1 = repos["domain"].create_in_cluster(models.Domain(name="d1"), alice_cluster.id)
        d2 = repos["domain"].create_in_cluster(models.Domain(name="d2"), alice_cluster.id)
        resource = repos["resource"].create_in_domain(models.Resource(name="r", resource_type="generic", config={}), d1.id)
        repos["resource"].link(d2.id, resource.id)

        assert repos["resource"].list_cluster_roles(resource.id, alice.id) == [(alice_cluster.id, "owner")]
        assert repos["resource"].count_domains(resource.id) == 2
        assert [r.name for r in repos["resource"].list_by_domain(d2.id, 0, 20)[0]] == ["r"]
