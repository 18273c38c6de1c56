# strayspot/models/payment.py
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any


class PaymentStatus(Enum):
    """결제 상태. pending → submitted → verified | rejected 순으로만 진행됩니다."""
    PENDING = "pending"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    REJECTED = "rejected"


TERMINAL_PAYMENT_STATUSES = (PaymentStatus.VERIFIED, PaymentStatus.REJECTED)


@dataclass
class Payment:
    """
    Firestore 'payments' 컬렉션의 문서 구조를 정의하는 데이터클래스.
    amount는 setup 시점의 adoption_fee 스냅샷이며 이후 입양비 변경을 따라가지 않습니다.
    """
    payment_id: int
    application_id: int
    pet_id: str
    adopter_id: str
    organization_id: str
    amount: float
    qr_image: str
    status: PaymentStatus = PaymentStatus.PENDING
    payment_instructions: str = ""
    proof_of_transaction: Optional[str] = None
    transaction_id: Optional[str] = None
    organization_notes: str = ""
    verified_by: Optional[str] = None
    date_created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    date_submitted: Optional[datetime] = None
    date_verified: Optional[datetime] = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PAYMENT_STATUSES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Payment":
        processed = data.copy()
        processed['status'] = PaymentStatus(processed.get('status') or PaymentStatus.PENDING.value)
        return cls(**processed)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data
