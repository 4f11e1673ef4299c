# universo/services/permissions.py
"""
클러스터 역할과 권한 매트릭스.

테넌트 격리는 DB 세션 상태가 아니라 서비스 계층의 명시적인 검사로 이루어집니다.
모든 범위 지정 서비스 메서드는 첫 인자로 AccessContext를 받습니다.
"""
from dataclasses import dataclass
from typing import Iterable, Optional

OWNER = "owner"
ADMIN = "admin"
EDITOR = "editor"
MEMBER = "member"

ROLE_NAMES = (OWNER, ADMIN, EDITOR, MEMBER)

ROLE_RANK = {
    OWNER: 4,
    ADMIN: 3,
    EDITOR: 2,
    MEMBER: 1,
}

PERMISSIONS = {
    "cluster:read": {OWNER, ADMIN, EDITOR, MEMBER},
    "cluster:update": {OWNER, ADMIN},
    "cluster:delete": {OWNER},
    "members:read": {OWNER, ADMIN, EDITOR, MEMBER},
    "members:manage": {OWNER, ADMIN},
    "domain:read": {OWNER, ADMIN, EDITOR, MEMBER},
    "domain:write": {OWNER, ADMIN, EDITOR},
    "domain:delete": {OWNER, ADMIN},
    "resource:read": {OWNER, ADMIN, EDITOR, MEMBER},
    "resource:write": {OWNER, ADMIN, EDITOR},
    "resource:delete": {OWNER, ADMIN, EDITOR},
}


@dataclass(frozen=True)
class AccessContext:
    """요청마다 주입되는 호출자 정보."""
    user_id: int
    username: str = ""
    token: Optional[str] = None


def can(role: Optional[str], action: str) -> bool:
    if role is None:
        return False
    try:
        return role in PERMISSIONS[action]
    except KeyError:
        raise ValueError(f"Unknown action '{action}'.")


def highest_role(roles: Iterable[Optional[str]]) -> Optional[str]:
    """가장 높은 순위의 역할을 반환합니다. 역할이 하나도 없으면 None."""
    known = [r for r in roles if r in ROLE_RANK]
    if not known:
        return None
    return max(known, key=ROLE_RANK.__getitem__)
