# strayspot/models/pet.py
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from enum import Enum
import logging


class PetStatus(Enum):
    REHABILITATING = "rehabilitating"
    AVAILABLE = "available"
    ADOPTED = "adopted"


class PetGender(Enum):
    MALE = "male"
    FEMALE = "female"
    UNKNOWN = "unknown"


@dataclass
class Pet:
    """
    Firestore 'pets' 컬렉션 문서 구조.
    pet_id는 변하지 않는 문서 ID(uuid), display_id는 화면 표시용 순번입니다.
    status를 'adopted'로 바꾸는 것은 입양 승인 캐스케이드뿐입니다.
    """
    pet_id: str
    display_id: int
    organization_id: str
    name: str
    species: str
    breed: str
    gender: PetGender
    adoption_fee: float
    info: str = ""
    status: PetStatus = PetStatus.REHABILITATING
    image_urls: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    adopted_application_id: Optional[int] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_adopted(self) -> bool:
        return self.status == PetStatus.ADOPTED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pet":
        """
        Firestore에서 받은 딕셔너리로부터 Pet 인스턴스를 생성합니다.
        문자열로 저장된 Enum 값을 변환합니다.
        """
        processed_data = data.copy()
        processed_data['status'] = PetStatus(processed_data.get('status') or PetStatus.REHABILITATING.value)

        gender_str = processed_data.get('gender')
        try:
            processed_data['gender'] = PetGender(gender_str)
        except ValueError:
            logging.warning(f"Invalid PetGender value '{gender_str}' for pet {processed_data.get('pet_id')}. Defaulting to UNKNOWN.")
            processed_data['gender'] = PetGender.UNKNOWN

        for list_field in ('image_urls', 'tags'):
            if processed_data.get(list_field) is None:
                processed_data[list_field] = []

        return cls(**processed_data)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        data['gender'] = self.gender.value
        return data
