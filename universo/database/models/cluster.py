from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from ..database import Base

class Cluster(Base):
    """
    테넌트가 소유하는 최상위 컨테이너입니다.
    모든 멤버십과 도메인 연결은 이 Cluster를 기준으로 격리됩니다.
    """
    __tablename__ = "clusters"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User")
    memberships = relationship("ClusterMember", back_populates="cluster", cascade="all, delete-orphan")
    domain_links = relationship("ClusterDomain", back_populates="cluster", cascade="all, delete-orphan")
