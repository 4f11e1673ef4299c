# universo/services/exceptions.py

# --- Not Found Exceptions ---
class UserNotFoundError(Exception):
    """사용자를 찾을 수 없을 때"""
    pass

class RoleNotFoundError(Exception):
    """역할을 찾을 수 없을 때"""
    pass

class ClusterNotFoundError(Exception):
    """클러스터가 없거나, 호출자가 해당 클러스터의 멤버가 아닐 때"""
    pass

class DomainNotFoundError(Exception):
    """도메인이 없거나, 호출자에게 보이지 않을 때"""
    pass

class ResourceNotFoundError(Exception):
    """리소스가 없거나, 호출자에게 보이지 않을 때"""
    pass

class MemberNotFoundError(Exception):
    """사용자가 해당 클러스터의 멤버가 아닐 때"""
    pass

# --- Validation / Conflict Exceptions ---
class ValidationError(ValueError):
    """요청 필드 값이 유효하지 않을 때"""
    pass

class UserCreationError(Exception):
    """사용자 생성 실패 시 (중복 이름 등)"""
    pass

class ClusterCreationError(Exception):
    """클러스터 생성 실패 시 (같은 소유자 내 중복 이름 등)"""
    pass

class ClusterNotEmptyError(Exception):
    """도메인이 연결된 클러스터를 삭제하려고 할 때"""
    pass

class DomainNotEmptyError(Exception):
    """리소스가 연결된 도메인을 삭제하려고 할 때"""
    pass

class LastOwnerError(Exception):
    """클러스터의 마지막 owner를 제거하거나 강등하려고 할 때"""
    pass

class LastLinkError(Exception):
    """도메인/리소스의 마지막 연결을 끊어 접근 불가능한 상태로 만들려고 할 때"""
    pass

# --- Auth Exceptions ---
class TokenInvalidError(Exception):
    """토큰이 유효하지 않거나 없을 때"""
    pass

class AuthenticationError(Exception):
    """사용자 자격 증명 실패 시"""
    pass

class PermissionDeniedError(Exception):
    """멤버이지만 해당 작업을 수행할 역할이 아닐 때"""
    pass

class RateLimitExceededError(Exception):
    """요청 한도를 초과했을 때"""

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after
