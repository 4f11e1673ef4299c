from sqlalchemy import Column, Integer, ForeignKey
from sqlalchemy.orm import relationship
from ..database import Base

class ClusterMember(Base):
    """
    사용자(User), 클러스터(Cluster), 역할(Role) 사이의 관계를 연결하는 연관 테이블입니다.
    한 사용자는 하나의 클러스터에서 정확히 하나의 역할을 가집니다.
    """
    __tablename__ = 'cluster_members'
    cluster_id = Column(Integer, ForeignKey('clusters.id'), primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), primary_key=True)
    role_id = Column(Integer, ForeignKey('roles.id'), nullable=False)

    cluster = relationship("Cluster", back_populates="memberships")
    user = relationship("User", back_populates="memberships")
    role = relationship("Role")


class ClusterDomain(Base):
    """클러스터와 도메인의 다대다 연결."""
    __tablename__ = 'cluster_domains'
    cluster_id = Column(Integer, ForeignKey('clusters.id'), primary_key=True)
    domain_id = Column(Integer, ForeignKey('domains.id'), primary_key=True)

    cluster = relationship("Cluster", back_populates="domain_links")
    domain = relationship("Domain", back_populates="cluster_links")


class DomainResource(Base):
    """도메인과 리소스의 다대다 연결."""
    __tablename__ = 'domain_resources'
    domain_id = Column(Integer, ForeignKey('domains.id'), primary_key=True)
    resource_id = Column(Integer, ForeignKey('resources.id'), primary_key=True)

    domain = relationship("Domain", back_populates="resource_links")
    resource = relationship("Resource", back_populates="domain_links")
