from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any, Tuple
from universo.database import models

class IDomainRepository(ABC):
    @abstractmethod
    def create_in_cluster(self, domain_model: models.Domain, cluster_id: int) -> models.Domain:
        """도메인을 생성하고 같은 커밋에서 클러스터에 연결합니다."""
        pass

    @abstractmethod
    def find_by_id(self, domain_id: int) -> Optional[models.Domain]:
        """고유 ID로 특정 도메인을 조회합니다."""
        pass

    @abstractmethod
    def list_for_user(self, user_id: int, offset: int, limit: int) -> Tuple[List[models.Domain], int]:
        """사용자가 멤버인 클러스터 중 하나 이상에 연결된 도메인을 조회합니다."""
        pass

    @abstractmethod
    def list_by_cluster(self, cluster_id: int, offset: int, limit: int) -> Tuple[List[models.Domain], int]:
        """특정 클러스터에 연결된 도메인을 조회합니다."""
        pass

    @abstractmethod
    def update(self, domain: models.Domain, fields: Dict[str, Any]) -> models.Domain:
        pass

    @abstractmethod
    def delete(self, domain: models.Domain) -> bool:
        pass

    @abstractmethod
    def count_resources(self, domain_id: int) -> int:
        """도메인에 연결된 리소스의 개수를 조회합니다."""
        pass

    @abstractmethod
    def count_clusters(self, domain_id: int) -> int:
        """도메인이 연결된 클러스터의 개수를 조회합니다."""
        pass

    @abstractmethod
    def is_linked(self, cluster_id: int, domain_id: int) -> bool:
        pass

    @abstractmethod
    def link(self, cluster_id: int, domain_id: int):
        """도메인을 클러스터에 연결합니다. 이미 연결되어 있으면 무시합니다."""
        pass

    @abstractmethod
    def unlink(self, cluster_id: int, domain_id: int) -> bool:
        pass

    @abstractmethod
    def list_cluster_roles(self, domain_id: int, user_id: int) -> List[Tuple[int, Optional[str]]]:
        """
        도메인이 연결된 각 클러스터에 대해 사용자의 역할을 조회합니다.

        Returns:
            (cluster_id, 역할 이름 또는 None) 튜플의 리스트.
        """
        pass
