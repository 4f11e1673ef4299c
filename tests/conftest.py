# tests/conftest.py
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from universo.database.db_init import initialize_db
from universo.services.identity_service import IdentityService

ADMIN_PASSWORD = "admin-password"


@pytest.fixture
def engine():
    """테스트마다 새로운 인메모리 SQLite 엔진을 만듭니다. (모든 세션이 같은 연결을 공유)"""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    """테이블과 기본 데이터(역할, admin 사용자, default 클러스터)가 준비된 세션 팩토리."""
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    initialize_db(bind=engine, session_factory=factory, admin_password=ADMIN_PASSWORD)
    return factory


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clear_token_cache():
    yield
    IdentityService._token_cache.clear()
