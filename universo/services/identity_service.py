import hashlib
import hmac
import logging
import os
import re
import uuid
from datetime import datetime, timedelta
from typing import Dict, Any

from universo.database import models
from universo.repositories.interfaces import IUserRepository, IClusterRepository
from universo.services.exceptions import (
    UserCreationError, UserNotFoundError, AuthenticationError,
    TokenInvalidError, LastOwnerError, ValidationError
)
from universo.services.permissions import AccessContext

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,64}$")
MIN_PASSWORD_LENGTH = 8
PBKDF2_ITERATIONS = 260000


def hash_password(password: str, salt: bytes = None) -> str:
    """PBKDF2-SHA256으로 비밀번호를 해시합니다. 결과 형식: '<salt hex>$<hash hex>'."""
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"{salt.hex()}${digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        salt_hex, _ = password_hash.split("$", 1)
        salt = bytes.fromhex(salt_hex)
    except (ValueError, AttributeError):
        return False
    return hmac.compare_digest(hash_password(password, salt), password_hash)


class IdentityService:
    """사용자 계정과 인증 토큰을 관리합니다."""
    _token_cache = {}

    def __init__(self, user_repo: IUserRepository, cluster_repo: IClusterRepository, token_ttl_seconds: int = 3600):
        """
        IdentityService를 초기화합니다.

        Args:
            user_repo: 사용자 데이터에 접근하기 위한 리포지토리.
            cluster_repo: 클러스터 데이터에 접근하기 위한 리포지토리 (계정 삭제 시 owner 검증용).
            token_ttl_seconds: 발급하는 토큰의 유효 시간(초).
        """
        self.user_repo = user_repo
        self.cluster_repo = cluster_repo
        self.token_ttl = timedelta(seconds=token_ttl_seconds)

    def create_user(self, username: str = None, password: str = None) -> Dict[str, Any]:
        """
        새로운 사용자를 생성합니다. 비밀번호는 솔트와 함께 해시하여 저장합니다.

        Raises:
            ValidationError: 사용자 이름 또는 비밀번호 형식이 올바르지 않을 때.
            UserCreationError: 동일한 이름의 사용자가 이미 존재할 때.
        """
        if not isinstance(username, str) or not USERNAME_PATTERN.match(username):
            raise ValidationError("'username' must be 3-64 characters of letters, digits, '_', '.' or '-'.")
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"'password' must be at least {MIN_PASSWORD_LENGTH} characters.")

        if self.user_repo.find_by_username(username):
            raise UserCreationError(f"User with username '{username}' already exists.")

        new_user = models.User(username=username, password_hash=hash_password(password))
        created_user = self.user_repo.create(new_user)
        logger.info("User created: id=%s username=%s", created_user.id, created_user.username)
        return {"id": created_user.id, "username": created_user.username}

    def get_user(self, user_id: int) -> Dict[str, Any]:
        """
        ID로 특정 사용자를 조회합니다. (비밀번호 제외)

        Raises:
            UserNotFoundError: 해당 ID의 사용자를 찾을 수 없을 때.
        """
        user = self.user_repo.find_by_id(user_id)
        if not user:
            raise UserNotFoundError(f"User with id '{user_id}' not found.")
        return {"id": user.id, "username": user.username}

    def delete_user(self, ctx: AccessContext) -> bool:
        """
        호출자 자신의 계정을 삭제합니다. 클러스터 멤버십도 함께 삭제되고, 발급된 토큰은 모두 폐기됩니다.

        Raises:
            UserNotFoundError: 계정을 찾을 수 없을 때.
            LastOwnerError: 호출자가 어떤 클러스터의 마지막 owner일 때.
        """
        user = self.user_repo.find_by_id(ctx.user_id)
        if not user:
            raise UserNotFoundError(f"User with id '{ctx.user_id}' not found.")

        owned = self.cluster_repo.list_owner_cluster_ids(user.id)
        for cluster_id in owned:
            if self.cluster_repo.count_owners(cluster_id) <= 1:
                raise LastOwnerError(
                    f"User '{user.username}' is the last owner of cluster '{cluster_id}'. "
                    "Transfer ownership or delete the cluster first."
                )
        for cluster_id in owned:
            self.cluster_repo.reassign_owner(cluster_id, user.id)

        self.user_repo.delete(user)
        self._revoke_user_tokens(user.id)
        logger.info("User deleted: id=%s", user.id)
        return True

    def authenticate(self, username: str = None, password: str = None) -> Dict[str, str]:
        """
        자격증명을 검증하고, 성공 시 사용자 범위의 인증 토큰을 발급합니다.
        테넌트(클러스터) 범위는 토큰이 아니라 요청마다 서비스 계층에서 검사합니다.

        Raises:
            AuthenticationError: 사용자 이름 또는 비밀번호가 올바르지 않을 때.
        """
        if not isinstance(username, str) or not isinstance(password, str):
            raise AuthenticationError("Invalid username or password.")

        user = self.user_repo.find_by_username(username)
        if not user or not verify_password(password, user.password_hash):
            logger.warning("Authentication failed for username=%s", username)
            raise AuthenticationError("Invalid username or password.")

        token = str(uuid.uuid4())
        expires_at = datetime.now() + self.token_ttl
        self._token_cache[token] = {
            'user_id': user.id,
            'username': user.username,
            'expires_at': expires_at
        }
        return {"token": token, "expires_at": expires_at.isoformat()}

    def validate_token(self, token: str) -> AccessContext:
        """
        인증 토큰의 유효성을 검증하고, 유효하면 요청에 주입할 AccessContext를 반환합니다.

        Raises:
            TokenInvalidError: 토큰을 찾을 수 없거나 만료되었을 때.
        """
        token_data = self._token_cache.get(token) if token else None
        if not token_data:
            raise TokenInvalidError("Token not found or invalid.")

        if datetime.now() > token_data['expires_at']:
            del self._token_cache[token]
            raise TokenInvalidError("Token has expired.")

        return AccessContext(user_id=token_data['user_id'], username=token_data['username'], token=token)

    def revoke_token(self, token: str) -> bool:
        """토큰을 폐기합니다 (로그아웃)."""
        return self._token_cache.pop(token, None) is not None

    def _revoke_user_tokens(self, user_id: int):
        for token in [t for t, data in self._token_cache.items() if data['user_id'] == user_id]:
            del self._token_cache[token]
