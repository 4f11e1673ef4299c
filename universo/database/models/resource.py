from sqlalchemy import Column, Integer, String, DateTime, JSON, func
from sqlalchemy.orm import relationship
from ..database import Base

class Resource(Base):
    """
    설정의 최소 단위입니다. 타입 태그와 자유 형식의 설정(JSON 객체)을 가지며,
    하나 이상의 도메인에 소속됩니다.
    """
    __tablename__ = "resources"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    resource_type = Column(String(64), nullable=False, default="generic", index=True)
    config = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    domain_links = relationship("DomainResource", back_populates="resource", cascade="all, delete-orphan")
