import logging

from .database import engine, SessionLocal, Base, settings
from .models import *
from universo.config import configure_logging
from universo.services.identity_service import hash_password
from universo.services.permissions import ROLE_NAMES, OWNER

logger = logging.getLogger(__name__)


def initialize_db(bind=None, session_factory=None, admin_password: str = None):
    """
    DB와 테이블을 생성하고, 기본 데이터를 삽입합니다.

    역할(owner/admin/editor/member)은 항상 빠짐없이 존재하도록 보충하고,
    사용자가 한 명도 없을 때만 데모 'admin' 사용자와 'default' 클러스터를 만듭니다.
    여러 번 실행해도 안전합니다.
    """
    bind = bind or engine
    session_factory = session_factory or SessionLocal
    admin_password = admin_password or settings.admin_password

    Base.metadata.create_all(bind=bind)
    logger.info("Tables created.")

    db = session_factory()
    try:
        existing = {role.name for role in db.query(Role).all()}
        for name in ROLE_NAMES:
            if name not in existing:
                db.add(Role(name=name))
        db.commit()

        if db.query(User).first():
            logger.info("Seed data already present; skipping demo data.")
            return

        admin_user = User(username='admin', password_hash=hash_password(admin_password))
        db.add(admin_user)
        db.flush()

        default_cluster = Cluster(name='default', description='Default cluster', owner_id=admin_user.id)
        db.add(default_cluster)
        db.flush()

        owner_role = db.query(Role).filter(Role.name == OWNER).one()
        db.add(ClusterMember(cluster_id=default_cluster.id, user_id=admin_user.id, role_id=owner_role.id))
        db.commit()
        logger.info("Seeded demo user 'admin' with cluster 'default'.")

    except Exception:
        logger.exception("Database initialization failed; rolling back.")
        db.rollback()
        raise
    finally:
        db.close()


def main():
    configure_logging(settings.log_level)
    initialize_db()


if __name__ == '__main__':
    main()
