from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any, Tuple
from universo.database import models

class IClusterRepository(ABC):
    @abstractmethod
    def create(self, cluster_model: models.Cluster, owner_role: models.Role) -> models.Cluster:
        """
        새로운 클러스터를 생성하고, 소유자(owner_id)를 owner 역할의 멤버로 등록합니다.
        두 작업은 하나의 커밋으로 처리됩니다.
        """
        pass

    @abstractmethod
    def find_by_id(self, cluster_id: int) -> Optional[models.Cluster]:
        """고유 ID로 특정 클러스터를 조회합니다."""
        pass

    @abstractmethod
    def find_by_name_and_owner(self, name: str, owner_id: int) -> Optional[models.Cluster]:
        """소유자 범위 내에서 이름으로 클러스터를 조회합니다."""
        pass

    @abstractmethod
    def list_for_user(self, user_id: int, offset: int, limit: int) -> Tuple[List[Tuple[models.Cluster, str]], int]:
        """
        사용자가 멤버로 속한 클러스터를 페이지 단위로 조회합니다.

        Returns:
            ((클러스터, 사용자의 역할 이름) 튜플의 리스트, 전체 개수)
        """
        pass

    @abstractmethod
    def update(self, cluster: models.Cluster, fields: Dict[str, Any]) -> models.Cluster:
        """클러스터의 필드 값을 변경합니다."""
        pass

    @abstractmethod
    def delete(self, cluster: models.Cluster) -> bool:
        """클러스터와 그 멤버십, 도메인 연결을 삭제합니다."""
        pass

    @abstractmethod
    def count_domains(self, cluster_id: int) -> int:
        """클러스터에 연결된 도메인의 개수를 조회합니다."""
        pass

    @abstractmethod
    def find_member_role(self, cluster_id: int, user_id: int) -> Optional[str]:
        """사용자의 클러스터 내 역할 이름을 조회합니다. 멤버가 아니면 None."""
        pass

    @abstractmethod
    def list_members(self, cluster_id: int) -> List[Dict[str, Any]]:
        """
        클러스터에 속한 모든 사용자와 그들의 역할을 조회합니다.

        Returns:
            (예: [{'id': 1, 'username': 'admin', 'role': 'owner'}])
        """
        pass

    @abstractmethod
    def count_owners(self, cluster_id: int) -> int:
        """클러스터에서 owner 역할을 가진 멤버 수를 조회합니다."""
        pass

    @abstractmethod
    def list_owner_cluster_ids(self, user_id: int) -> List[int]:
        """사용자가 owner 역할을 가진 클러스터 ID 목록을 조회합니다."""
        pass

    @abstractmethod
    def set_member_role(self, cluster: models.Cluster, user: models.User, role: models.Role):
        """사용자의 클러스터 역할을 설정합니다. 멤버가 아니면 새로 추가합니다."""
        pass

    @abstractmethod
    def remove_member(self, cluster_id: int, user_id: int) -> bool:
        """사용자를 클러스터 멤버에서 제거합니다. 멤버가 아니었으면 False."""
        pass

    @abstractmethod
    def reassign_owner(self, cluster_id: int, departing_user_id: int) -> Optional[int]:
        """
        owner_id가 departing_user_id인 경우, 다른 owner 멤버에게 소유자를 넘깁니다.

        Returns:
            새 소유자의 ID. 변경이 없었으면 None.
        """
        pass
