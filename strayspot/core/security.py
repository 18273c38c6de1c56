# strayspot/core/security.py
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from flask_jwt_extended import create_access_token, get_jwt, get_jwt_identity

from strayspot.core.errors import AuthorizationError
from strayspot.models.user import UserType

USER_TYPE_CLAIM = "user_type"


@dataclass(frozen=True)
class Actor:
    """요청을 보낸 주체. 외부 인증 계층이 발급한 JWT에서 복원됩니다."""
    actor_id: str
    actor_type: UserType

    @property
    def is_adopter(self) -> bool:
        return self.actor_type == UserType.ADOPTER

    @property
    def is_organization(self) -> bool:
        return self.actor_type == UserType.ORGANIZATION


def current_actor() -> Actor:
    """
    @jwt_required()로 보호된 핸들러 안에서 호출해야 합니다.
    identity는 사용자 ID, 'user_type' 클레임은 adopter/organization 입니다.
    """
    user_id = get_jwt_identity()
    user_type = get_jwt().get(USER_TYPE_CLAIM)
    try:
        actor_type = UserType(user_type)
    except ValueError:
        raise AuthorizationError("Invalid user type", error_code="INVALID_USER_TYPE")
    return Actor(actor_id=str(user_id), actor_type=actor_type)


def create_actor_token(user_id: str, user_type: UserType, expires_delta: Optional[timedelta] = None) -> str:
    """인증 계층과 동일한 형식의 access token을 발급합니다. (테스트/운영 도구용)"""
    return create_access_token(
        identity=user_id,
        additional_claims={USER_TYPE_CLAIM: user_type.value},
        expires_delta=expires_delta if expires_delta is not None else timedelta(hours=1)
    )
