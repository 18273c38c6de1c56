# strayspot/models/user.py
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any


class UserType(Enum):
    ADOPTER = "adopter"
    ORGANIZATION = "organization"


class UserStatus(Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


@dataclass
class User:
    """
    Firestore 'users' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    문서 ID는 인증 계층이 발급한 사용자 ID(user_id)입니다.
    """
    user_id: str
    display_id: int
    email: str
    user_type: UserType
    status: UserStatus = UserStatus.ACTIVE
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    organization_name: Optional[str] = None
    is_verified: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def display_name(self) -> str:
        if self.user_type == UserType.ORGANIZATION and self.organization_name:
            return self.organization_name
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.user_id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        processed = data.copy()
        processed['user_type'] = UserType(processed['user_type'])
        processed['status'] = UserStatus(processed.get('status') or UserStatus.ACTIVE.value)
        return cls(**processed)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['user_type'] = self.user_type.value
        data['status'] = self.status.value
        return data
