# strayspot/api/payments/services.py

import logging
from typing import Optional, List

from strayspot.core.errors import (
    AdoptionServiceError, AuthorizationError, ConflictError, NotFoundError,
    PreconditionFailedError, ValidationError
)
from strayspot.core.security import Actor
from strayspot.models.adoption_application import ApplicationStatus
from strayspot.models.payment import Payment, PaymentStatus
from strayspot.api.adoptions.services import ApplicationService
from strayspot.api.pets.services import PetService
from strayspot.api.users.services import UserService
from strayspot.services.document_store import Collections, DocumentStore
from strayspot.services.idempotency_service import IdempotencyService
from strayspot.services.sequence_service import SequenceService
from strayspot.services.storage_service import ImageUpload, StorageService
from strayspot.utils.datetime_utils import DateTimeUtils

PAYMENT_EXISTS_MESSAGE = "A payment has already been set up for this application"
NOT_PENDING_MESSAGE = "Only pending payments can accept a proof of transaction"
NOT_SUBMITTED_MESSAGE = "Only submitted payments can be verified or rejected"

VERIFICATION_DECISIONS = (PaymentStatus.VERIFIED, PaymentStatus.REJECTED)


class PaymentService:
    """
    승인된 입양 신청서에 연결된 결제(수동 송금 확인) 워크플로우를 담당하는 서비스 클래스.
    pending → (입양자 증빙 제출) submitted → (단체 확인) verified | rejected 순서로만 진행됩니다.

    이미지 업로드는 항상 의존하는 문서 쓰기보다 먼저 끝나며, 쓰기가 실패해 남는 고아 파일은 허용합니다.
    """

    def __init__(self, store: DocumentStore, sequence_service: SequenceService,
                 idempotency_service: IdempotencyService, user_service: UserService,
                 pet_service: PetService, application_service: ApplicationService,
                 storage_service: StorageService, claim_stale_seconds: int = 60):
        self.store = store
        self.sequences = sequence_service
        self.idempotency = idempotency_service
        self.users = user_service
        self.pets = pet_service
        self.applications = application_service
        self.storage = storage_service
        self.claim_stale_seconds = claim_stale_seconds

    def load_payment(self, payment_id: int) -> Payment:
        data = self.store.get(Collections.PAYMENTS, str(payment_id))
        if not data:
            raise NotFoundError("Payment", payment_id)
        return Payment.from_dict(data)

    # --- 결제 생성 ---

    def setup(self, application_id: int, qr_image: ImageUpload, instructions: str, actor: Actor,
              idempotency_key: Optional[str] = None) -> Payment:
        """[소유 단체 전용] 승인된 신청서에 결제 정보(QR 코드, 안내문)를 등록합니다."""
        if not actor.is_organization:
            raise AuthorizationError("Only organizations can set up payments", error_code="ORGANIZATION_ONLY")
        self.users.get_active_user(actor)
        application = self.applications.load_application(application_id)
        if application.organization_id != actor.actor_id:
            raise AuthorizationError("You are not allowed to set up a payment for this application")

        return self.idempotency.run(
            'payments', actor.actor_id, idempotency_key,
            create_fn=lambda: self._setup(application_id, qr_image, instructions, actor),
            load_fn=self.load_payment,
            resource_id_of=lambda payment: payment.payment_id
        )

    def _setup(self, application_id: int, qr_image: ImageUpload, instructions: str, actor: Actor) -> Payment:
        application = self.applications.load_application(application_id)
        if application.status != ApplicationStatus.APPROVED:
            raise PreconditionFailedError("Payments can only be set up for approved applications",
                                          error_code="APPLICATION_NOT_APPROVED")

        # 현재 결제가 거절된 경우에만 새 결제로 대체할 수 있음.
        # payment_id만 있고 문서가 없으면 다른 요청이 생성 중인 것으로 보되,
        # claim_stale_seconds가 지나도록 문서가 없으면 중단된 setup으로 보고 넘겨받음
        prior_payment_id = application.payment_id
        if prior_payment_id is not None:
            prior = self.store.get(Collections.PAYMENTS, str(prior_payment_id))
            if prior is None:
                elapsed = DateTimeUtils.seconds_since(application.updated_at)
                if elapsed is None or elapsed < self.claim_stale_seconds:
                    raise ConflictError(PAYMENT_EXISTS_MESSAGE, error_code="PAYMENT_EXISTS",
                                        context={"payment_id": prior_payment_id})
                logging.warning(f"Payment {prior_payment_id} claimed by application {application_id} "
                                f"was never written ({elapsed:.0f}s); taking the claim over")
            elif prior.get('status') != PaymentStatus.REJECTED.value:
                raise ConflictError(PAYMENT_EXISTS_MESSAGE, error_code="PAYMENT_EXISTS",
                                    context={"payment_id": prior_payment_id})

        # 입양비는 setup 시점의 값으로 고정
        pet = self.pets.load_pet(application.pet_id)
        qr_url = self.storage.upload_image(
            actor.actor_id, 'payment_qr', qr_image.filename, qr_image.content_type, qr_image.data
        )

        def _create(payment_id: int) -> Payment:
            claimed = self.store.update_where(
                Collections.APPLICATIONS, str(application_id),
                [('status', '==', ApplicationStatus.APPROVED.value), ('payment_id', '==', prior_payment_id)],
                {'payment_id': payment_id, 'updated_at': DateTimeUtils.now()}
            )
            if not claimed:
                raise ConflictError(PAYMENT_EXISTS_MESSAGE, error_code="PAYMENT_EXISTS",
                                    context={"application_id": application_id})

            payment = Payment(
                payment_id=payment_id,
                application_id=application_id,
                pet_id=application.pet_id,
                adopter_id=application.adopter_id,
                organization_id=application.organization_id,
                amount=pet.adoption_fee,
                qr_image=qr_url,
                payment_instructions=instructions or "",
            )
            try:
                self.store.create(Collections.PAYMENTS, str(payment_id), payment.to_dict())
            except AdoptionServiceError:
                # 결제 문서가 만들어지지 않았으므로 신청서의 payment_id를 되돌림 (중복 ID면 새 ID로 재시도)
                self.store.update_where(
                    Collections.APPLICATIONS, str(application_id),
                    [('payment_id', '==', payment_id)], {'payment_id': prior_payment_id}
                )
                raise
            return payment

        payment = self.sequences.create_with_sequence('payments', _create)
        logging.info(f"Payment {payment.payment_id} set up for application {application_id} "
                     f"(amount={payment.amount}, superseded={prior_payment_id})")
        return payment

    # --- 상태 전이 ---

    def submit_proof(self, payment_id: int, proof_image: ImageUpload, transaction_id: str, actor: Actor) -> Payment:
        """[입양자 전용] 송금 증빙 이미지와 거래 번호를 제출합니다."""
        if not actor.is_adopter:
            raise AuthorizationError("Only adopters can submit payment proofs", error_code="ADOPTER_ONLY")
        payment = self.load_payment(payment_id)
        if payment.adopter_id != actor.actor_id:
            raise AuthorizationError("You are not allowed to submit a proof for this payment")
        if payment.status != PaymentStatus.PENDING:
            raise ConflictError(NOT_PENDING_MESSAGE, error_code="PAYMENT_NOT_PENDING")

        proof_url = self.storage.upload_image(
            actor.actor_id, 'payment_proof', proof_image.filename, proof_image.content_type, proof_image.data
        )
        now = DateTimeUtils.now()
        updated = self.store.update_where(
            Collections.PAYMENTS, str(payment_id),
            [('status', '==', PaymentStatus.PENDING.value), ('date_submitted', '==', None)],
            {
                'status': PaymentStatus.SUBMITTED.value,
                'proof_of_transaction': proof_url,
                'transaction_id': transaction_id,
                'date_submitted': now,
                'updated_at': now,
            }
        )
        if not updated:
            logging.warning(f"Proof submission for payment {payment_id} lost the race")
            raise ConflictError(NOT_PENDING_MESSAGE, error_code="PAYMENT_NOT_PENDING")
        logging.info(f"Payment {payment_id} proof submitted by {actor.actor_id}")
        return Payment.from_dict(updated)

    def verify(self, payment_id: int, decision: PaymentStatus, notes: Optional[str], actor: Actor) -> Payment:
        """[소유 단체 전용] 제출된 증빙을 확인하여 verified 또는 rejected로 확정합니다. 한 번만 가능합니다."""
        if decision not in VERIFICATION_DECISIONS:
            raise ValidationError("Decision must be either verified or rejected", error_code="INVALID_DECISION")
        if not actor.is_organization:
            raise AuthorizationError("Only organizations can verify payments", error_code="ORGANIZATION_ONLY")
        self.users.get_active_user(actor)
        payment = self.load_payment(payment_id)
        if payment.organization_id != actor.actor_id:
            raise AuthorizationError("You are not allowed to verify this payment")
        if payment.status != PaymentStatus.SUBMITTED:
            raise ConflictError(NOT_SUBMITTED_MESSAGE, error_code="PAYMENT_NOT_SUBMITTED")

        now = DateTimeUtils.now()
        updated = self.store.update_where(
            Collections.PAYMENTS, str(payment_id),
            [('status', '==', PaymentStatus.SUBMITTED.value), ('date_verified', '==', None)],
            {
                'status': decision.value,
                'date_verified': now,
                'organization_notes': notes or "",
                'verified_by': actor.actor_id,
                'updated_at': now,
            }
        )
        if not updated:
            logging.warning(f"Verification of payment {payment_id} lost the race")
            raise ConflictError(NOT_SUBMITTED_MESSAGE, error_code="PAYMENT_NOT_SUBMITTED")
        logging.info(f"Payment {payment_id} {decision.value} by {actor.actor_id}")
        return Payment.from_dict(updated)

    # --- 조회 ---

    def get(self, payment_id: int, actor: Actor) -> Payment:
        payment = self.load_payment(payment_id)
        if actor.is_adopter and payment.adopter_id == actor.actor_id:
            return payment
        if actor.is_organization and payment.organization_id == actor.actor_id:
            return payment
        raise AuthorizationError("You are not allowed to view this payment")

    def check_for_application(self, application_id: int, actor: Actor) -> Optional[Payment]:
        """신청서의 현재 결제를 반환합니다. 아직 없으면 None."""
        application = self.applications.get(application_id, actor)
        if application.payment_id is None:
            return None
        data = self.store.get(Collections.PAYMENTS, str(application.payment_id))
        return Payment.from_dict(data) if data else None

    def list_for_actor(self, actor: Actor) -> List[Payment]:
        owner_field = 'adopter_id' if actor.is_adopter else 'organization_id'
        docs = self.store.find(
            Collections.PAYMENTS, [(owner_field, '==', actor.actor_id)],
            order_by='date_created', descending=True
        )
        return [Payment.from_dict(doc) for doc in docs]
