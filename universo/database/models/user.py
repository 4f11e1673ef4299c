from sqlalchemy import Column, Integer, String, DateTime, func
from sqlalchemy.orm import relationship
from ..database import Base

class User(Base):
    """
    시스템에 로그인하고 클러스터를 소유하거나 멤버로 참여할 수 있는 사용자를 나타냅니다.
    사용자는 여러 클러스터에 각각 하나의 역할(Role)로 소속될 수 있습니다.
    """
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    memberships = relationship("ClusterMember", back_populates="user", cascade="all, delete-orphan")
