from sqlalchemy import Column, Integer, String, Text, DateTime, func
from sqlalchemy.orm import relationship
from ..database import Base

class Domain(Base):
    """
    클러스터와 리소스 사이의 중간 그룹입니다.
    하나의 도메인은 여러 클러스터에 연결될 수 있고, 여러 리소스를 가질 수 있습니다.
    """
    __tablename__ = "domains"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    cluster_links = relationship("ClusterDomain", back_populates="domain", cascade="all, delete-orphan")
    resource_links = relationship("DomainResource", back_populates="domain", cascade="all, delete-orphan")
