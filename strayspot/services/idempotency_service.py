# strayspot/services/idempotency_service.py
import logging
import uuid
from typing import Any, Callable, Dict, Optional

from strayspot.core.errors import AdoptionServiceError, ConflictError, DuplicateDocumentError
from strayspot.services.document_store import Collections, DocumentStore
from strayspot.utils.datetime_utils import DateTimeUtils

STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"


class IdempotencyService:
    """
    클라이언트가 보낸 Idempotency-Key 헤더로 생성 요청의 재전송을 안전하게 만듭니다.

    키 문서 'idempotency_keys/{scope}_{actor_id}_{key}'를 create로 선점한 요청만 실제 생성을 수행합니다.
    - 완료된 키가 다시 오면 저장된 resource_id로 기존 결과를 돌려줍니다.
    - 아직 처리 중인 키가 다시 오면 ConflictError.
      단, stale_seconds가 지나도 처리 중인 키는 중단된 요청의 흔적으로 보고 넘겨받습니다.
    - 생성이 실패하면 키를 지워 같은 키로 다시 시도할 수 있게 합니다.
    """

    def __init__(self, store: DocumentStore, stale_seconds: int = 300):
        self.store = store
        self.stale_seconds = stale_seconds

    @staticmethod
    def _doc_id(scope: str, actor_id: str, key: str) -> str:
        return f"{scope}_{actor_id}_{key}"

    def _take_over_stale(self, doc_id: str, existing: Dict[str, Any], record: Dict[str, Any]) -> bool:
        if existing.get('status') != STATUS_IN_PROGRESS:
            return False
        elapsed = DateTimeUtils.seconds_since(existing.get('created_at'))
        if elapsed is None or elapsed < self.stale_seconds:
            return False
        taken = self.store.update_where(
            Collections.IDEMPOTENCY_KEYS, doc_id,
            [('status', '==', STATUS_IN_PROGRESS), ('attempt_id', '==', existing.get('attempt_id'))],
            record
        )
        if taken:
            logging.warning(f"Idempotency key {doc_id} was stuck in progress for {elapsed:.0f}s; taken over")
        return taken is not None

    def run(self, scope: str, actor_id: str, key: Optional[str],
            create_fn: Callable[[], Any], load_fn: Callable[[Any], Any],
            resource_id_of: Callable[[Any], Any]) -> Any:
        if not key:
            return create_fn()

        doc_id = self._doc_id(scope, actor_id, key)
        attempt_id = str(uuid.uuid4())
        record = {
            'scope': scope,
            'actor_id': actor_id,
            'key': key,
            'status': STATUS_IN_PROGRESS,
            'attempt_id': attempt_id,
            'resource_id': None,
            'created_at': DateTimeUtils.now(),
        }
        try:
            self.store.create(Collections.IDEMPOTENCY_KEYS, doc_id, record)
        except DuplicateDocumentError:
            existing = self.store.get(Collections.IDEMPOTENCY_KEYS, doc_id) or {}
            if existing.get('status') == STATUS_COMPLETED and existing.get('resource_id') is not None:
                logging.info(f"Idempotent replay for {scope} key '{key}' (actor: {actor_id})")
                return load_fn(existing['resource_id'])
            if not self._take_over_stale(doc_id, existing, record):
                raise ConflictError(
                    "A request with this Idempotency-Key is already in progress",
                    error_code="IDEMPOTENCY_KEY_IN_USE",
                    context={"scope": scope, "key": key}
                )

        mine = [('status', '==', STATUS_IN_PROGRESS), ('attempt_id', '==', attempt_id)]
        try:
            result = create_fn()
        except Exception:
            self.store.delete_where(Collections.IDEMPOTENCY_KEYS, doc_id, mine)
            raise

        # 리소스는 이미 만들어졌으므로 완료 기록에 실패해도 결과를 돌려줍니다.
        # 기록되지 않은 키는 stale_seconds 이후 다시 사용할 수 있습니다.
        try:
            self.store.update_where(
                Collections.IDEMPOTENCY_KEYS, doc_id, mine,
                {'status': STATUS_COMPLETED, 'resource_id': resource_id_of(result), 'completed_at': DateTimeUtils.now()}
            )
        except AdoptionServiceError as e:
            logging.error(f"Failed to record completion of idempotency key {doc_id}: {e}", exc_info=True)
        return result
