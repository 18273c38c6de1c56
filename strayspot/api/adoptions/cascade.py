# strayspot/api/adoptions/cascade.py
"""
입양 승인 캐스케이드와 정합성 복구(reconciliation).

승인 순서:
  1. 반려동물 상태를 '읽은 상태 → adopted'로 조건부 전환 (adopted_application_id 기록)
  2. 신청서를 '기대 상태 → approved'로 조건부 전환. 실패하면 1을 되돌린 뒤 ConflictError
  3. 같은 반려동물의 나머지 열린 신청서(pending/reviewing)를 한 번에 rejected로 변경

1이 먼저 성공해야 2와 3이 실행되므로, 같은 반려동물에 대한 두 승인 요청 중 하나만 살아남습니다.
3은 조건부 일괄 업데이트라 여러 번 실행해도 결과가 같고, 실패해도 ReconciliationService가 다시 실행합니다.
"""
import logging
import threading
from typing import Any, Dict, Optional

from strayspot.core.errors import AdoptionServiceError, ConflictError, NotFoundError
from strayspot.models.adoption_application import (
    ADOPTED_BY_ANOTHER_REASON,
    OPEN_STATUSES,
    AdoptionApplication,
    ApplicationStatus,
)
from strayspot.models.pet import PetStatus
from strayspot.services.document_store import Collections, DocumentStore
from strayspot.utils.datetime_utils import DateTimeUtils

_OPEN_STATUS_VALUES = [status.value for status in OPEN_STATUSES]


class AdoptionCascade:

    def __init__(self, store: DocumentStore):
        self.store = store

    def approve(self, application: AdoptionApplication, expected_status: ApplicationStatus,
                reviewer: str, notes: Optional[str] = None) -> AdoptionApplication:
        """신청서를 승인하고 반려동물을 입양 완료로 바꾼 뒤, 나머지 신청서를 거절합니다."""
        app_id = application.application_id
        pet_id = application.pet_id

        # --- 1. 반려동물 선점 ---
        pet_data = self.store.get(Collections.PETS, pet_id)
        if not pet_data:
            raise NotFoundError("Pet", pet_id)
        prior_pet_status = pet_data.get('status')
        if prior_pet_status == PetStatus.ADOPTED.value:
            raise ConflictError("This pet has already been adopted", error_code="PET_ALREADY_ADOPTED",
                                context={"pet_id": pet_id, "application_id": app_id})

        now = DateTimeUtils.now()
        flipped = self.store.update_where(
            Collections.PETS, pet_id,
            [('status', '==', prior_pet_status), ('adopted_application_id', '==', None)],
            {'status': PetStatus.ADOPTED.value, 'adopted_application_id': app_id, 'updated_at': now}
        )
        if not flipped:
            logging.warning(f"Approval of application {app_id} lost the race for pet {pet_id}")
            raise ConflictError("This pet has already been adopted", error_code="PET_ALREADY_ADOPTED",
                                context={"pet_id": pet_id, "application_id": app_id})

        # --- 2. 신청서 승인 ---
        changes: Dict[str, Any] = {
            'status': ApplicationStatus.APPROVED.value,
            'reviewed_by': reviewer,
            'updated_at': now,
        }
        if notes is not None:
            changes['organization_notes'] = notes
        approved = self.store.update_where(
            Collections.APPLICATIONS, str(app_id), [('status', '==', expected_status.value)], changes
        )
        if not approved:
            self._restore_pet(pet_id, app_id, prior_pet_status)
            logging.warning(f"Application {app_id} changed before approval; pet {pet_id} restored to {prior_pet_status}")
            raise ConflictError("stale application state", error_code="STALE_APPLICATION_STATE",
                                context={"application_id": app_id, "expected_status": expected_status.value})

        logging.info(f"Application {app_id} approved by {reviewer}; pet {pet_id} adopted")

        # --- 3. 나머지 신청서 일괄 거절 ---
        try:
            self.reject_siblings(pet_id, app_id, reviewer)
        except AdoptionServiceError as e:
            # 승인 자체는 완료되었으므로 성공으로 응답하고, 남은 신청서는 정합성 복구가 처리합니다.
            logging.error(f"Sibling rejection failed for pet {pet_id} (winner {app_id}): {e}", exc_info=True)

        return AdoptionApplication.from_dict(approved)

    def reject_siblings(self, pet_id: str, winner_application_id: int, reviewer: Optional[str]) -> int:
        """입양이 확정된 신청서를 제외한 열린 신청서를 모두 거절합니다. 갱신된 문서 수를 반환합니다."""
        rejected = self.store.update_many_where(
            Collections.APPLICATIONS,
            [('pet_id', '==', pet_id), ('status', 'in', _OPEN_STATUS_VALUES)],
            {
                'status': ApplicationStatus.REJECTED.value,
                'rejection_reason': ADOPTED_BY_ANOTHER_REASON,
                'reviewed_by': reviewer or "",
                'updated_at': DateTimeUtils.now(),
            },
            exclude_ids=[str(winner_application_id)]
        )
        if rejected:
            logging.info(f"Rejected {rejected} other application(s) for adopted pet {pet_id}")
        return rejected

    def _restore_pet(self, pet_id: str, app_id: int, prior_status: str) -> bool:
        """1단계 보상. 이 신청서가 선점한 경우에만 되돌립니다."""
        try:
            restored = self.store.update_where(
                Collections.PETS, pet_id,
                [('status', '==', PetStatus.ADOPTED.value), ('adopted_application_id', '==', app_id)],
                {'status': prior_status, 'adopted_application_id': None, 'updated_at': DateTimeUtils.now()}
            )
        except AdoptionServiceError as e:
            logging.error(f"Failed to restore pet {pet_id} after aborted approval {app_id}: {e}", exc_info=True)
            return False
        return restored is not None


class ReconciliationService:
    """
    캐스케이드가 중간에 실패해 남은 불일치를 복구합니다.
    - 입양 완료된 반려동물에 아직 열린 신청서가 있으면 다시 거절합니다.
    - 입양 완료 상태인데 승인된 신청서가 없으면(보상 실패) 반려동물을 available로 되돌립니다.
      단, 캐스케이드가 진행 중일 수 있으므로 전환 후 grace_seconds가 지나기 전에는 건드리지 않습니다.
    """

    def __init__(self, store: DocumentStore, cascade: AdoptionCascade, grace_seconds: int = 60):
        self.store = store
        self.cascade = cascade
        self.grace_seconds = grace_seconds

    def reconcile_pet(self, pet_id: str) -> Dict[str, Any]:
        result = {'pet_id': pet_id, 'applications_rejected': 0, 'pet_restored': False}
        pet = self.store.get(Collections.PETS, pet_id)
        if not pet or pet.get('status') != PetStatus.ADOPTED.value:
            return result

        winner_id = pet.get('adopted_application_id')
        winner = self.store.get(Collections.APPLICATIONS, str(winner_id)) if winner_id is not None else None

        if winner is None or winner.get('status') != ApplicationStatus.APPROVED.value:
            # adopted_application_id가 없는 기존 데이터는 승인된 신청서를 직접 찾습니다.
            approved = self.store.find(
                Collections.APPLICATIONS,
                [('pet_id', '==', pet_id), ('status', '==', ApplicationStatus.APPROVED.value)],
                limit=1
            )
            winner = approved[0] if approved else None

        if winner is not None and winner.get('status') == ApplicationStatus.APPROVED.value:
            rejected = self.cascade.reject_siblings(pet_id, winner['application_id'], winner.get('reviewed_by'))
            if rejected:
                logging.warning(f"Reconciliation rejected {rejected} open application(s) left on adopted pet {pet_id}")
            result['applications_rejected'] = rejected
            return result

        elapsed = DateTimeUtils.seconds_since(pet.get('updated_at'))
        if elapsed is not None and elapsed < self.grace_seconds:
            return result

        restored = self.store.update_where(
            Collections.PETS, pet_id,
            [('status', '==', PetStatus.ADOPTED.value), ('adopted_application_id', '==', winner_id)],
            {'status': PetStatus.AVAILABLE.value, 'adopted_application_id': None, 'updated_at': DateTimeUtils.now()}
        )
        if restored:
            logging.warning(f"Reconciliation restored pet {pet_id} to available (no approved application)")
            result['pet_restored'] = True
        return result

    def reconcile_all(self) -> Dict[str, int]:
        """입양 완료된 모든 반려동물을 점검합니다. 한 건의 실패가 나머지 점검을 막지 않습니다."""
        summary = {'pets_checked': 0, 'applications_rejected': 0, 'pets_restored': 0, 'failures': 0}
        adopted_pets = self.store.find(Collections.PETS, [('status', '==', PetStatus.ADOPTED.value)])
        for pet in adopted_pets:
            summary['pets_checked'] += 1
            try:
                result = self.reconcile_pet(pet['pet_id'])
            except AdoptionServiceError as e:
                summary['failures'] += 1
                logging.error(f"Reconciliation failed for pet {pet['pet_id']}: {e}", exc_info=True)
                continue
            summary['applications_rejected'] += result['applications_rejected']
            summary['pets_restored'] += int(result['pet_restored'])
        logging.info(f"Adoption reconciliation finished: {summary}")
        return summary


class ReconciliationWorker:
    """interval_seconds마다 reconcile_all()을 실행하는 백그라운드 daemon 스레드."""

    def __init__(self, reconciliation: ReconciliationService, interval_seconds: int):
        self.reconciliation = reconciliation
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _run(self):
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.reconciliation.reconcile_all()
            except Exception as e:
                logging.error(f"Background reconciliation run failed: {e}", exc_info=True)

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="adoption-reconciliation")
        self._thread.daemon = True  # 메인 프로세스 종료 시 함께 종료
        self._thread.start()
        logging.info(f"Reconciliation worker started (every {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = None):
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)
