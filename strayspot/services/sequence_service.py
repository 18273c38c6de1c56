# strayspot/services/sequence_service.py
import logging
from typing import Callable, TypeVar

from strayspot.core.errors import ConflictError, DuplicateDocumentError
from strayspot.services.document_store import Collections, DocumentStore

T = TypeVar("T")


class SequenceService:
    """
    시퀀스별(pets, users, applications, payments) 정수 ID 발급기.

    'counters/{sequence_name}' 문서의 값을 저장소의 원자적 증가 연산으로 올리고 그 결과를 사용합니다.
    '가장 큰 ID + 1'을 읽어서 쓰는 방식은 동시 요청에서 같은 값을 내주므로 사용하지 않습니다.
    발급된 ID가 실패한 생성 때문에 버려질 수 있어 번호 사이에 빈 곳이 생길 수 있습니다.
    """

    def __init__(self, store: DocumentStore, max_attempts: int = 5):
        self.store = store
        self.max_attempts = max(1, max_attempts)

    def allocate(self, sequence_name: str) -> int:
        """다음 ID를 발급합니다. 같은 시퀀스에서 두 번 같은 값을 내주지 않습니다."""
        return self.store.increment_and_fetch(Collections.COUNTERS, sequence_name)

    def create_with_sequence(self, sequence_name: str, create_fn: Callable[[int], T]) -> T:
        """
        ID를 발급받아 create_fn(new_id)로 문서를 생성합니다.
        카운터가 기존 데이터보다 뒤처져 있는 등의 이유로 같은 ID의 문서가 이미 있으면
        새 ID로 다시 시도하고, max_attempts 번 모두 실패하면 ConflictError를 던집니다.
        """
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            new_id = self.allocate(sequence_name)
            try:
                return create_fn(new_id)
            except DuplicateDocumentError as e:
                last_error = e
                logging.warning(
                    f"Sequence '{sequence_name}' id {new_id} already taken "
                    f"(attempt {attempt}/{self.max_attempts}); allocating a new one."
                )

        logging.error(f"Sequence '{sequence_name}' exhausted {self.max_attempts} attempts: {last_error}")
        raise ConflictError(
            f"Could not allocate a unique {sequence_name} id, please retry",
            error_code="SEQUENCE_EXHAUSTED",
            context={"sequence": sequence_name, "attempts": self.max_attempts}
        )
