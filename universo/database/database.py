from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from universo.config import load_settings

settings = load_settings()


def build_engine(database_url: str):
    # SQLite 연결은 요청마다 다른 스레드에서 사용될 수 있으므로 check_same_thread를 끕니다.
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_size=5,
        max_overflow=10,
    )


engine = build_engine(settings.database_url)

# autocommit=False, autoflush=False: 리포지토리가 명시적으로 commit을 호출해야 DB에 반영됩니다.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 모든 모델 클래스가 상속받을 Base 클래스
Base = declarative_base()
