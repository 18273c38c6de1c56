# strayspot/models/adoption_application.py
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any


class ApplicationStatus(Enum):
    PENDING = "pending"
    REVIEWING = "reviewing"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


# 아직 심사가 끝나지 않은 상태
OPEN_STATUSES = (ApplicationStatus.PENDING, ApplicationStatus.REVIEWING)
# (입양자, 반려동물) 쌍의 '활성' 신청서 판단에서 제외되는 상태
INACTIVE_STATUSES = (ApplicationStatus.REJECTED, ApplicationStatus.WITHDRAWN)

# 심사 가능한 상태에서 단체가 바꿀 수 있는 상태
ORGANIZATION_TRANSITIONS = {
    ApplicationStatus.PENDING: {ApplicationStatus.REVIEWING, ApplicationStatus.APPROVED, ApplicationStatus.REJECTED},
    ApplicationStatus.REVIEWING: {ApplicationStatus.REVIEWING, ApplicationStatus.APPROVED, ApplicationStatus.REJECTED},
}

ADOPTED_BY_ANOTHER_REASON = "This pet has been adopted by another applicant."


class HousingStatus(Enum):
    OWN = "own"
    RENT = "rent"
    WITH_FRIENDS_OR_RELATIVES = "live with friends/relatives"
    OTHER = "other"


@dataclass
class AdoptionApplication:
    """
    Firestore 'applications' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    문서 ID는 str(application_id) 입니다.
    """
    application_id: int
    adopter_id: str
    pet_id: str
    organization_id: str  # 생성 시점에 반려동물 문서에서 복사
    housing_status: str
    pets_allowed: str
    pet_location: str
    primary_caregiver: str
    other_pets: str
    financially_prepared: str
    emergency_pet_care: str
    reference: Dict[str, Any]  # {'name', 'email', 'phone'}
    terms_accepted: bool
    status: ApplicationStatus = ApplicationStatus.PENDING
    organization_notes: str = ""
    reviewed_by: str = ""
    rejection_reason: str = ""
    payment_id: Optional[int] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdoptionApplication":
        processed = data.copy()
        processed['status'] = ApplicationStatus(processed.get('status') or ApplicationStatus.PENDING.value)
        return cls(**processed)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data
