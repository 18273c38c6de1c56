# strayspot/services/document_store.py
"""
문서 저장소 포트(port).

워크플로우 서비스는 Firestore 클라이언트를 직접 다루지 않고 이 인터페이스만 사용합니다.
모든 상태 전이는 '기대하는 이전 상태'를 조건으로 건 조건부 업데이트로 표현되며,
호출자는 반환값(일치한 문서 수)을 보고 경합에서 이겼는지 판단합니다.

조건(condition)은 Firestore where()와 같은 (field, op, value) 튜플입니다.
지원 연산자: '==', '!=', 'in', 'not-in'
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from strayspot.core.errors import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Condition = Tuple[str, str, Any]

SUPPORTED_OPERATORS = ('==', '!=', 'in', 'not-in')


class Collections:
    PETS = 'pets'
    USERS = 'users'
    APPLICATIONS = 'applications'
    PAYMENTS = 'payments'
    COUNTERS = 'counters'
    ACTIVE_APPLICATIONS = 'active_applications'
    IDEMPOTENCY_KEYS = 'idempotency_keys'


def matches(data: Dict[str, Any], conditions: Iterable[Condition]) -> bool:
    """문서가 모든 조건을 만족하는지 검사합니다. 필드가 없으면 None으로 간주합니다."""
    for field_name, op, expected in conditions:
        actual = data.get(field_name)
        if op == '==':
            ok = actual == expected
        elif op == '!=':
            ok = actual != expected
        elif op == 'in':
            ok = actual in expected
        elif op == 'not-in':
            ok = actual not in expected
        else:
            raise ValueError(f"Unsupported condition operator: {op}")
        if not ok:
            return False
    return True


def backoff(initial_wait: float, max_wait: float):
    """full jitter 지수 백오프: n번째 재시도 전 0 ~ min(initial_wait * 2^(n-1), max_wait) 사이에서 무작위 대기."""
    return wait_random_exponential(multiplier=initial_wait, max=max_wait)


def store_call(operation: str, fn: Callable[[], T], attempts: int = 3,
               initial_wait: float = 0.1, max_wait: float = 2.0) -> T:
    """
    멱등한 저장소 호출을 일시적 오류(TransientStoreError)에 한해 지수 백오프로 재시도합니다.
    생성(create)처럼 멱등하지 않은 호출에는 사용하지 않습니다.
    """
    retrying = Retrying(
        retry=retry_if_exception_type(TransientStoreError),
        stop=stop_after_attempt(max(1, attempts)),
        wait=backoff(initial_wait, max_wait),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    for attempt in retrying:
        with attempt:
            return fn()
    raise TransientStoreError(f"{operation} did not run")  # pragma: no cover


class DocumentStore(ABC):
    """조건부 쓰기를 지원하는 문서 저장소 인터페이스."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """문서를 조회합니다. 없으면 None."""

    @abstractmethod
    def find(self, collection: str, conditions: Sequence[Condition] = (),
             order_by: Optional[str] = None, descending: bool = False,
             limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """조건에 맞는 문서 목록을 조회합니다."""

    @abstractmethod
    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        새 문서를 생성합니다. 같은 ID의 문서가 이미 있으면 DuplicateDocumentError.
        일시적 오류에 대해 자동 재시도하지 않습니다.
        """

    @abstractmethod
    def update_where(self, collection: str, doc_id: str, conditions: Sequence[Condition],
                     changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        문서가 conditions를 만족할 때만 changes를 원자적으로 적용합니다.
        적용된 경우 갱신 후 문서를, 일치하지 않거나 문서가 없으면 None을 반환합니다.
        """

    @abstractmethod
    def update_many_where(self, collection: str, conditions: Sequence[Condition],
                          changes: Dict[str, Any], exclude_ids: Sequence[str] = ()) -> int:
        """
        conditions를 만족하는 모든 문서(exclude_ids 제외)에 changes를 적용하고 갱신된 문서 수를 반환합니다.
        각 문서는 쓰기 직전에 조건을 다시 검사하므로 여러 번 실행해도 안전합니다.
        """

    @abstractmethod
    def delete_where(self, collection: str, doc_id: str, conditions: Sequence[Condition]) -> bool:
        """문서가 conditions를 만족할 때만 삭제합니다. 삭제했으면 True."""

    @abstractmethod
    def increment_and_fetch(self, collection: str, doc_id: str, field_name: str = 'value') -> int:
        """카운터 문서의 정수 필드를 원자적으로 1 증가시키고 증가된 값을 반환합니다."""
