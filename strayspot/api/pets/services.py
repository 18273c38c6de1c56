# strayspot/api/pets/services.py
import logging
import uuid
from typing import Dict, Any, Optional

# 도메인 모델
from strayspot.models.pet import Pet, PetGender, PetStatus

# 예외 및 공용 서비스
from strayspot.core.errors import (
    AdoptionServiceError, AuthorizationError, ConflictError, NotFoundError,
    PreconditionFailedError, ValidationError
)
from strayspot.core.security import Actor
from strayspot.api.users.services import UserService
from strayspot.services.document_store import Collections, DocumentStore
from strayspot.services.sequence_service import SequenceService
from strayspot.utils.datetime_utils import DateTimeUtils


class PetService:
    """
    보호 단체가 등록한 반려동물의 프로필 관리를 전담하는 서비스.
    반려동물을 'adopted'로 바꾸는 것은 입양 승인 캐스케이드만 할 수 있습니다.
    """
    def __init__(self, store: DocumentStore, sequence_service: SequenceService,
                 user_service: UserService, reconciliation=None, reconcile_on_read: bool = True):
        self.store = store
        self.sequences = sequence_service
        self.users = user_service
        # ReconciliationService. 캐스케이드가 PetService보다 나중에 만들어지므로 create_app에서 주입합니다.
        self.reconciliation = reconciliation
        self.reconcile_on_read = reconcile_on_read
        logging.info("PetService initialized with dependencies.")

    def load_pet(self, pet_id: str) -> Pet:
        """반려동물을 조회합니다. 정합성 복구 없이 저장된 그대로 반환합니다."""
        data = self.store.get(Collections.PETS, pet_id)
        if not data:
            raise NotFoundError("Pet", pet_id)
        return Pet.from_dict(data)

    def get_pet(self, pet_id: str) -> Pet:
        """
        반려동물 프로필을 조회합니다.
        입양 완료된 반려동물이면 먼저 남은 신청서를 정리하고 다시 읽습니다.
        """
        pet = self.load_pet(pet_id)
        if pet.is_adopted and self.reconcile_on_read and self.reconciliation:
            try:
                result = self.reconciliation.reconcile_pet(pet_id)
            except AdoptionServiceError as e:
                logging.warning(f"Reconcile-on-read failed for pet {pet_id}: {e}")
            else:
                if result.get('pet_restored'):
                    pet = self.load_pet(pet_id)
        return pet

    def register_pet(self, actor: Actor, pet_data: Dict[str, Any]) -> Pet:
        """인증된 보호 단체가 새 반려동물을 등록합니다."""
        organization = self.users.get_verified_organization(actor)

        status = PetStatus(pet_data.get('status', PetStatus.REHABILITATING.value))
        if status == PetStatus.ADOPTED:
            raise ValidationError("A new pet cannot be registered as adopted", error_code="INVALID_PET_STATUS")

        new_pet = Pet(
            pet_id=str(uuid.uuid4()),
            display_id=self.sequences.allocate('pets'),
            organization_id=organization.user_id,
            name=pet_data['name'],
            species=pet_data['species'],
            breed=pet_data.get('breed', ''),
            gender=PetGender(pet_data.get('gender', PetGender.UNKNOWN.value)),
            adoption_fee=float(pet_data['adoption_fee']),
            info=pet_data.get('info', ''),
            status=status,
            image_urls=pet_data.get('image_urls', []),
            tags=pet_data.get('tags', []),
        )
        self.store.create(Collections.PETS, new_pet.pet_id, new_pet.to_dict())
        logging.info(f"Pet registered: {new_pet.pet_id} (display_id={new_pet.display_id}) by {organization.user_id}")
        return new_pet

    def update_pet(self, actor: Actor, pet_id: str, update_data: Dict[str, Any]) -> Pet:
        """
        반려동물 프로필 정보를 부분 업데이트합니다. (소유 단체 전용)
        입양비 변경은 이미 만들어진 결제 금액에 영향을 주지 않습니다.
        """
        if not actor.is_organization:
            raise AuthorizationError("Only organizations can update pets", error_code="ORGANIZATION_ONLY")
        self.users.get_active_user(actor)
        if not update_data:
            raise ValidationError("No fields to update", error_code="EMPTY_UPDATE")

        pet = self.load_pet(pet_id)
        if pet.organization_id != actor.actor_id:
            raise AuthorizationError("You are not allowed to update this pet")

        changes = dict(update_data)
        conditions = [('organization_id', '==', actor.actor_id)]
        if 'status' in changes:
            new_status = PetStatus(changes['status'])
            if new_status == PetStatus.ADOPTED:
                raise PreconditionFailedError("A pet becomes adopted only through an approved application",
                                              error_code="INVALID_PET_STATUS")
            if pet.is_adopted:
                raise PreconditionFailedError("The status of an adopted pet cannot be changed",
                                              error_code="PET_ALREADY_ADOPTED")
            # 읽은 이후 캐스케이드가 먼저 adopted로 바꿨다면 덮어쓰지 않음
            conditions.append(('status', '==', pet.status.value))
            changes['status'] = new_status.value
        if 'gender' in changes:
            changes['gender'] = PetGender(changes['gender']).value
        if 'adoption_fee' in changes:
            changes['adoption_fee'] = float(changes['adoption_fee'])
        changes['updated_at'] = DateTimeUtils.now()

        updated: Optional[Dict[str, Any]] = self.store.update_where(Collections.PETS, pet_id, conditions, changes)
        if not updated:
            raise ConflictError("The pet was modified by another request, please reload",
                                error_code="STALE_PET_STATE", context={"pet_id": pet_id})
        logging.info(f"Pet profile updated for {pet_id} with fields: {list(update_data.keys())}")
        return Pet.from_dict(updated)
