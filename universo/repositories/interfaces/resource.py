from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any, Tuple
from universo.database import models

class IResourceRepository(ABC):
    @abstractmethod
    def create_in_domain(self, resource_model: models.Resource, domain_id: int) -> models.Resource:
        """리소스를 생성하고 같은 커밋에서 도메인에 연결합니다."""
        pass

    @abstractmethod
    def find_by_id(self, resource_id: int) -> Optional[models.Resource]:
        """고유 ID로 특정 리소스를 조회합니다."""
        pass

    @abstractmethod
    def list_for_user(self, user_id: int, offset: int, limit: int, resource_type: Optional[str] = None) -> Tuple[List[models.Resource], int]:
        """사용자에게 보이는(멤버 클러스터 -> 도메인 -> 리소스) 리소스를 조회합니다."""
        pass

    @abstractmethod
    def list_by_domain(self, domain_id: int, offset: int, limit: int, resource_type: Optional[str] = None) -> Tuple[List[models.Resource], int]:
        """특정 도메인에 연결된 리소스를 조회합니다."""
        pass

    @abstractmethod
    def update(self, resource: models.Resource, fields: Dict[str, Any]) -> models.Resource:
        pass

    @abstractmethod
    def delete(self, resource: models.Resource) -> bool:
        pass

    @abstractmethod
    def count_domains(self, resource_id: int) -> int:
        """리소스가 연결된 도메인의 개수를 조회합니다."""
        pass

    @abstractmethod
    def is_linked(self, domain_id: int, resource_id: int) -> bool:
        pass

    @abstractmethod
    def link(self, domain_id: int, resource_id: int):
        """리소스를 도메인에 연결합니다. 이미 연결되어 있으면 무시합니다."""
        pass

    @abstractmethod
    def unlink(self, domain_id: int, resource_id: int) -> bool:
        pass

    @abstractmethod
    def list_cluster_roles(self, resource_id: int, user_id: int) -> List[Tuple[int, Optional[str]]]:
        """
        리소스에 도달할 수 있는 모든 클러스터(연결된 도메인을 거쳐)에 대해 사용자의 역할을 조회합니다.

        Returns:
            (cluster_id, 역할 이름 또는 None) 튜플의 리스트. 클러스터는 중복되지 않습니다.
        """
        pass
