# strayspot/api/users/services.py
import logging
from typing import Optional, Dict, Any

from strayspot.core.errors import AuthorizationError, ConflictError, DuplicateDocumentError, NotFoundError
from strayspot.core.security import Actor
from strayspot.models.user import User, UserStatus, UserType
from strayspot.services.document_store import Collections, DocumentStore
from strayspot.services.sequence_service import SequenceService


class UserService:
    """
    사용자 조회 서비스.
    회원 가입/로그인은 외부 인증 계층의 몫이며, 이 서비스는 그 계층이 만든 사용자 문서를 읽기만 합니다.
    provision_user는 인증 계층과 테스트가 사용자 문서를 만들 때 사용하는 헬퍼입니다.
    """

    def __init__(self, store: DocumentStore, sequence_service: SequenceService):
        self.store = store
        self.sequences = sequence_service

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.store.get(Collections.USERS, user_id)
        return User.from_dict(data) if data else None

    def get_active_user(self, actor: Actor) -> User:
        """요청자의 사용자 문서를 읽고, 토큰의 사용자 유형과 계정 상태를 확인합니다."""
        user = self.get_user(actor.actor_id)
        if not user:
            raise NotFoundError("User", actor.actor_id)
        if user.user_type != actor.actor_type:
            raise AuthorizationError("Invalid user type", error_code="INVALID_USER_TYPE")
        if user.status != UserStatus.ACTIVE:
            raise AuthorizationError("Your account is suspended", error_code="ACCOUNT_SUSPENDED")
        return user

    def get_verified_organization(self, actor: Actor) -> User:
        if not actor.is_organization:
            raise AuthorizationError("Only organizations can perform this action", error_code="ORGANIZATION_ONLY")
        user = self.get_active_user(actor)
        if not user.is_verified:
            raise AuthorizationError("Your organization is not verified yet", error_code="ORGANIZATION_NOT_VERIFIED")
        return user

    def provision_user(self, user_id: str, email: str, user_type: UserType, **profile: Any) -> User:
        """인증 계층이 발급한 user_id로 사용자 문서를 만들고 표시용 순번(display_id)을 부여합니다."""
        display_id = self.sequences.allocate('users')
        user = User(user_id=user_id, display_id=display_id, email=email, user_type=user_type, **profile)
        try:
            self.store.create(Collections.USERS, user_id, user.to_dict())
        except DuplicateDocumentError:
            raise ConflictError("User already exists", error_code="USER_EXISTS", context={"user_id": user_id})
        logging.info(f"User provisioned: {user_id} ({user_type.value}, display_id={display_id})")
        return user

    def set_status(self, user_id: str, status: UserStatus) -> User:
        updated: Optional[Dict[str, Any]] = self.store.update_where(
            Collections.USERS, user_id, [], {'status': status.value}
        )
        if not updated:
            raise NotFoundError("User", user_id)
        logging.info(f"User {user_id} status changed to {status.value}")
        return User.from_dict(updated)
