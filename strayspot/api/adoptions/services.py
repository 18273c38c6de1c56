# strayspot/api/adoptions/services.py

import logging
from typing import Optional, Dict, Any, List

from strayspot.core.errors import (
    AuthorizationError, ConflictError, DuplicateDocumentError, NotFoundError, PreconditionFailedError
)
from strayspot.core.security import Actor
from strayspot.models.adoption_application import (
    INACTIVE_STATUSES, OPEN_STATUSES, ORGANIZATION_TRANSITIONS,
    AdoptionApplication, ApplicationStatus
)
from strayspot.models.pet import PetStatus
from strayspot.api.adoptions.cascade import AdoptionCascade
from strayspot.api.pets.services import PetService
from strayspot.api.users.services import UserService
from strayspot.services.document_store import Collections, DocumentStore
from strayspot.services.idempotency_service import IdempotencyService
from strayspot.services.sequence_service import SequenceService
from strayspot.utils.datetime_utils import DateTimeUtils

ACTIVE_APPLICATION_MESSAGE = (
    "You already have an active application for this pet. "
    "Check your application status in your profile."
)

_INACTIVE_STATUS_VALUES = [status.value for status in INACTIVE_STATUSES]


class ApplicationService:
    """
    입양 신청서의 생성, 심사 상태 전이, 철회, 삭제 및 조회를 담당하는 서비스 클래스.

    - 모든 상태 전이는 '기대하는 이전 상태'를 조건으로 건 조건부 업데이트입니다.
      다른 요청이 먼저 상태를 바꿨다면 ConflictError("stale application state")가 발생합니다.
    - (입양자, 반려동물) 쌍마다 활성 신청서는 하나뿐입니다.
      'active_applications/{adopter_id}_{pet_id}' 점유 문서를 원자적으로 생성하여 보장합니다.
    """

    def __init__(self, store: DocumentStore, sequence_service: SequenceService,
                 idempotency_service: IdempotencyService, user_service: UserService,
                 pet_service: PetService, cascade: AdoptionCascade, claim_stale_seconds: int = 60):
        self.store = store
        self.sequences = sequence_service
        self.idempotency = idempotency_service
        self.users = user_service
        self.pets = pet_service
        self.cascade = cascade
        self.claim_stale_seconds = claim_stale_seconds

    # --- 조회 헬퍼 ---

    def load_application(self, application_id: int) -> AdoptionApplication:
        data = self.store.get(Collections.APPLICATIONS, str(application_id))
        if not data:
            raise NotFoundError("Application", application_id)
        return AdoptionApplication.from_dict(data)

    def _load_owned_by_organization(self, application_id: int, actor: Actor) -> AdoptionApplication:
        if not actor.is_organization:
            raise AuthorizationError("Only organizations can review applications", error_code="ORGANIZATION_ONLY")
        application = self.load_application(application_id)
        if application.organization_id != actor.actor_id:
            raise AuthorizationError("You are not allowed to manage this application")
        return application

    # --- 활성 신청서 점유 ---

    @staticmethod
    def _claim_id(adopter_id: str, pet_id: str) -> str:
        return f"{adopter_id}_{pet_id}"

    def _claim_active_slot(self, adopter_id: str, pet_id: str, application_id: int) -> None:
        """
        (입양자, 반려동물) 쌍의 활성 신청서 자리를 차지합니다.
        이미 점유되어 있으면 점유한 신청서가 rejected/withdrawn이거나,
        신청서 문서 없이 claim_stale_seconds 이상 지난 경우에만 조건부로 넘겨받습니다.
        """
        claim_id = self._claim_id(adopter_id, pet_id)
        claim = {
            'application_id': application_id,
            'adopter_id': adopter_id,
            'pet_id': pet_id,
            'claimed_at': DateTimeUtils.now(),
        }
        try:
            self.store.create(Collections.ACTIVE_APPLICATIONS, claim_id, claim)
            return
        except DuplicateDocumentError:
            pass

        existing = self.store.get(Collections.ACTIVE_APPLICATIONS, claim_id)
        if existing is None:
            # 그 사이 점유가 해제된 경우 한 번만 다시 시도
            try:
                self.store.create(Collections.ACTIVE_APPLICATIONS, claim_id, claim)
                return
            except DuplicateDocumentError:
                raise ConflictError(ACTIVE_APPLICATION_MESSAGE, error_code="ACTIVE_APPLICATION_EXISTS")

        holder_id = existing.get('application_id')
        holder = self.store.get(Collections.APPLICATIONS, str(holder_id))
        if holder is not None:
            if holder.get('status') not in _INACTIVE_STATUS_VALUES:
                raise ConflictError(ACTIVE_APPLICATION_MESSAGE, error_code="ACTIVE_APPLICATION_EXISTS",
                                    context={"application_id": holder_id})
        else:
            # 신청서 생성이 아직 진행 중일 수 있으므로 유예 시간 동안은 점유를 인정
            elapsed = DateTimeUtils.seconds_since(existing.get('claimed_at'))
            if elapsed is None or elapsed < self.claim_stale_seconds:
                raise ConflictError(ACTIVE_APPLICATION_MESSAGE, error_code="ACTIVE_APPLICATION_EXISTS")

        taken = self.store.update_where(
            Collections.ACTIVE_APPLICATIONS, claim_id, [('application_id', '==', holder_id)], claim
        )
        if not taken:
            raise ConflictError(ACTIVE_APPLICATION_MESSAGE, error_code="ACTIVE_APPLICATION_EXISTS")
        logging.info(f"Active application slot {claim_id} taken over from {holder_id} by {application_id}")

    def _release_active_slot(self, adopter_id: str, pet_id: str, application_id: int) -> bool:
        return self.store.delete_where(
            Collections.ACTIVE_APPLICATIONS, self._claim_id(adopter_id, pet_id),
            [('application_id', '==', application_id)]
        )

    # --- 신청서 생성 ---

    def submit(self, actor: Actor, pet_id: str, form_fields: Dict[str, Any],
               idempotency_key: Optional[str] = None) -> AdoptionApplication:
        """입양 신청서를 제출합니다. 새 신청서는 항상 pending 상태로 시작합니다."""
        if not actor.is_adopter:
            raise AuthorizationError("Only adopters can submit adoption applications", error_code="ADOPTER_ONLY")
        self.users.get_active_user(actor)

        return self.idempotency.run(
            'applications', actor.actor_id, idempotency_key,
            create_fn=lambda: self._submit(actor.actor_id, pet_id, form_fields),
            load_fn=self.load_application,
            resource_id_of=lambda application: application.application_id
        )

    def _submit(self, adopter_id: str, pet_id: str, form_fields: Dict[str, Any]) -> AdoptionApplication:
        pet = self.pets.load_pet(pet_id)
        if pet.status != PetStatus.AVAILABLE:
            raise PreconditionFailedError("This pet is not available for adoption", error_code="PET_NOT_AVAILABLE")

        def _create(application_id: int) -> AdoptionApplication:
            self._claim_active_slot(adopter_id, pet_id, application_id)
            application = AdoptionApplication(
                application_id=application_id,
                adopter_id=adopter_id,
                pet_id=pet_id,
                organization_id=pet.organization_id,
                housing_status=form_fields['housing_status'],
                pets_allowed=form_fields['pets_allowed'],
                pet_location=form_fields['pet_location'],
                primary_caregiver=form_fields['primary_caregiver'],
                other_pets=form_fields['other_pets'],
                financially_prepared=form_fields['financially_prepared'],
                emergency_pet_care=form_fields['emergency_pet_care'],
                reference=dict(form_fields['reference']),
                terms_accepted=form_fields['terms_accepted'],
            )
            try:
                self.store.create(Collections.APPLICATIONS, str(application_id), application.to_dict())
            except DuplicateDocumentError:
                # 이 ID로는 문서가 만들어지지 않았으므로 점유를 풀고 새 ID로 재시도
                self._release_active_slot(adopter_id, pet_id, application_id)
                raise
            return application

        application = self.sequences.create_with_sequence('applications', _create)
        logging.info(f"Application {application.application_id} submitted by {adopter_id} for pet {pet_id}")
        return application

    # --- 상태 전이 ---

    def transition(self, application_id: int, new_status: ApplicationStatus, actor: Actor,
                   notes: Optional[str] = None, rejection_reason: Optional[str] = None,
                   expected_status: Optional[ApplicationStatus] = None) -> AdoptionApplication:
        """
        [소유 단체 전용] 신청서 상태를 바꿉니다. 허용되는 전이: pending|reviewing → reviewing|approved|rejected
        expected_status를 주면 클라이언트가 마지막으로 본 상태를 기준으로 조건을 겁니다.
        approved로의 전이는 입양 승인 캐스케이드를 실행합니다.
        """
        if new_status == ApplicationStatus.WITHDRAWN:
            raise PreconditionFailedError("Only the adopter can withdraw an application",
                                          error_code="INVALID_TRANSITION")
        application = self._load_owned_by_organization(application_id, actor)
        organization = self.users.get_active_user(actor)

        prior_status = expected_status or application.status
        if new_status not in ORGANIZATION_TRANSITIONS.get(prior_status, set()):
            raise PreconditionFailedError(
                f"Cannot change application status from {prior_status.value} to {new_status.value}",
                error_code="INVALID_TRANSITION"
            )

        reviewer = organization.display_name
        if new_status == ApplicationStatus.APPROVED:
            return self.cascade.approve(application, prior_status, reviewer, notes)

        changes: Dict[str, Any] = {
            'status': new_status.value,
            'reviewed_by': reviewer,
            'updated_at': DateTimeUtils.now(),
        }
        if notes is not None:
            changes['organization_notes'] = notes
        if new_status == ApplicationStatus.REJECTED:
            changes['rejection_reason'] = rejection_reason or ""

        updated = self.store.update_where(
            Collections.APPLICATIONS, str(application_id), [('status', '==', prior_status.value)], changes
        )
        if not updated:
            logging.warning(f"Stale transition of application {application_id}: expected {prior_status.value}")
            raise ConflictError("stale application state", error_code="STALE_APPLICATION_STATE",
                                context={"application_id": application_id, "expected_status": prior_status.value})

        logging.info(f"Application {application_id}: {prior_status.value} -> {new_status.value} by {actor.actor_id}")
        return AdoptionApplication.from_dict(updated)

    def withdraw(self, application_id: int, actor: Actor) -> AdoptionApplication:
        """[신청한 입양자 전용] 심사가 끝나기 전의 신청서를 철회합니다."""
        if not actor.is_adopter:
            raise AuthorizationError("Only adopters can withdraw applications", error_code="ADOPTER_ONLY")
        application = self.load_application(application_id)
        if application.adopter_id != actor.actor_id:
            raise AuthorizationError("You are not allowed to withdraw this application")
        if application.status not in OPEN_STATUSES:
            raise PreconditionFailedError("Only pending or reviewing applications can be withdrawn",
                                          error_code="INVALID_TRANSITION")

        updated = self.store.update_where(
            Collections.APPLICATIONS, str(application_id),
            [('status', '==', application.status.value)],
            {'status': ApplicationStatus.WITHDRAWN.value, 'updated_at': DateTimeUtils.now()}
        )
        if not updated:
            raise ConflictError("stale application state", error_code="STALE_APPLICATION_STATE",
                                context={"application_id": application_id})
        logging.info(f"Application {application_id} withdrawn by {actor.actor_id}")
        return AdoptionApplication.from_dict(updated)

    def delete(self, application_id: int, actor: Actor) -> None:
        """[소유 단체 전용] 거절된 신청서만 삭제할 수 있습니다."""
        application = self._load_owned_by_organization(application_id, actor)
        if application.status != ApplicationStatus.REJECTED:
            raise PreconditionFailedError("Only rejected applications can be deleted",
                                          error_code="APPLICATION_NOT_REJECTED")

        deleted = self.store.delete_where(
            Collections.APPLICATIONS, str(application_id), [('status', '==', ApplicationStatus.REJECTED.value)]
        )
        if not deleted:
            raise ConflictError("stale application state", error_code="STALE_APPLICATION_STATE",
                                context={"application_id": application_id})
        self._release_active_slot(application.adopter_id, application.pet_id, application_id)
        logging.info(f"Rejected application {application_id} deleted by {actor.actor_id}")

    # --- 조회 ---

    def get(self, application_id: int, actor: Actor) -> AdoptionApplication:
        """신청한 입양자 또는 소유 단체만 조회할 수 있습니다."""
        application = self.load_application(application_id)
        if actor.is_adopter and application.adopter_id == actor.actor_id:
            return application
        if actor.is_organization and application.organization_id == actor.actor_id:
            return application
        raise AuthorizationError("You are not allowed to view this application")

    def list_for_adopter(self, actor: Actor) -> List[AdoptionApplication]:
        if not actor.is_adopter:
            raise AuthorizationError("Only adopters can list their applications", error_code="ADOPTER_ONLY")
        docs = self.store.find(
            Collections.APPLICATIONS, [('adopter_id', '==', actor.actor_id)],
            order_by='created_at', descending=True
        )
        return [AdoptionApplication.from_dict(doc) for doc in docs]

    def list_for_organization(self, actor: Actor,
                              status: Optional[ApplicationStatus] = None) -> List[AdoptionApplication]:
        """[인증된 단체 전용] 단체가 받은 신청서 목록. status로 필터링할 수 있습니다."""
        organization = self.users.get_verified_organization(actor)
        conditions = [('organization_id', '==', organization.user_id)]
        if status is not None:
            conditions.append(('status', '==', status.value))
        docs = self.store.find(Collections.APPLICATIONS, conditions, order_by='created_at', descending=True)
        return [AdoptionApplication.from_dict(doc) for doc in docs]
