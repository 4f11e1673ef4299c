from sqlalchemy import Column, Integer, String
from ..database import Base

class Role(Base):
    """
    사용자가 클러스터 내에서 가질 수 있는 권한의 집합을 정의합니다.
    ('owner', 'admin', 'editor', 'member').
    실제 권한 판단은 services.permissions의 권한 매트릭스가 담당합니다.
    """
    __tablename__ = "roles"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(32), unique=True, nullable=False)
