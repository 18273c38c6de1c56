# strayspot/services/firestore_service.py
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from firebase_admin import firestore
from firebase_admin.firestore import Transaction
from google.api_core import exceptions as google_exceptions

from strayspot.core.errors import DuplicateDocumentError, StoreError, TransientStoreError
from strayspot.services.document_store import Condition, DocumentStore, matches, store_call
from strayspot.utils.datetime_utils import DateTimeUtils

T = TypeVar("T")

_TRANSIENT_ERRORS = (
    google_exceptions.Aborted,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.ServiceUnavailable,
    google_exceptions.TooManyRequests,
    google_exceptions.RetryError,
)


class FirestoreDocumentStore(DocumentStore):
    """
    Firestore 기반 DocumentStore 구현.

    조건부 업데이트/삭제와 카운터 증가는 모두 트랜잭션 안에서 '읽기 → 조건 검사 → 쓰기'로 수행됩니다.
    Firestore 트랜잭션은 읽은 문서가 커밋 전에 바뀌면 자동으로 재실행되므로,
    조건 검사와 쓰기 사이에 다른 인스턴스가 끼어들 수 없습니다.
    """

    def __init__(self, client=None, retry_attempts: int = 3,
                 retry_initial_wait: float = 0.1, retry_max_wait: float = 2.0):
        self.db = client or firestore.client()
        self.retry_attempts = retry_attempts
        self.retry_initial_wait = retry_initial_wait
        self.retry_max_wait = retry_max_wait
        logging.info("FirestoreDocumentStore initialized.")

    # --- 내부 헬퍼 ---

    def _call(self, operation: str, fn: Callable[[], T], retry: bool = True) -> T:
        """Firestore 예외를 도메인 저장소 예외로 변환하고, 멱등 연산이면 재시도합니다."""
        def _mapped():
            try:
                return fn()
            # Aborted도 Conflict의 하위 클래스이므로 AlreadyExists만 중복으로 취급
            except google_exceptions.AlreadyExists as e:
                raise DuplicateDocumentError(f"{operation} failed: document already exists", context={"cause": str(e)})
            except _TRANSIENT_ERRORS as e:
                raise TransientStoreError(f"{operation} failed: {type(e).__name__}", context={"cause": str(e)})
            except google_exceptions.GoogleAPICallError as e:
                logging.error(f"Firestore {operation} failed: {e}", exc_info=True)
                raise StoreError(f"{operation} failed", context={"cause": str(e)})
            except ValueError as e:
                # @firestore.transactional은 재시도를 모두 소진하면 마지막 API 오류를 cause로 한 ValueError를 던짐
                cause = e.__cause__
                if isinstance(cause, _TRANSIENT_ERRORS):
                    raise TransientStoreError(f"{operation} failed: transaction not committed",
                                              context={"cause": str(cause)})
                if isinstance(cause, google_exceptions.GoogleAPICallError):
                    logging.error(f"Firestore {operation} transaction failed: {cause}", exc_info=True)
                    raise StoreError(f"{operation} failed", context={"cause": str(cause)})
                raise

        if not retry:
            return _mapped()
        return store_call(operation, _mapped, self.retry_attempts, self.retry_initial_wait, self.retry_max_wait)

    @staticmethod
    def _read(snapshot) -> Optional[Dict[str, Any]]:
        if not snapshot.exists:
            return None
        return DateTimeUtils.from_firestore(snapshot.to_dict())

    # --- DocumentStore 구현 ---

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc_ref = self.db.collection(collection).document(doc_id)
        return self._call("get", lambda: self._read(doc_ref.get()))

    def find(self, collection: str, conditions: Sequence[Condition] = (),
             order_by: Optional[str] = None, descending: bool = False,
             limit: Optional[int] = None) -> List[Dict[str, Any]]:
        def _query():
            query = self.db.collection(collection)
            for field_name, op, value in conditions:
                query = query.where(field_name, op, list(value) if op in ('in', 'not-in') else value)
            if order_by:
                direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
                query = query.order_by(order_by, direction=direction)
            if limit is not None:
                query = query.limit(limit)
            return [DateTimeUtils.from_firestore(doc.to_dict()) for doc in query.stream()]

        return self._call("find", _query)

    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        doc_ref = self.db.collection(collection).document(doc_id)
        firestore_data = DateTimeUtils.for_firestore(data)
        # DocumentReference.create()는 문서가 이미 있으면 AlreadyExists(Conflict)를 던집니다.
        self._call("create", lambda: doc_ref.create(firestore_data), retry=False)
        logging.info(f"Firestore document created ({collection}/{doc_id})")
        return data

    def update_where(self, collection: str, doc_id: str, conditions: Sequence[Condition],
                     changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        doc_ref = self.db.collection(collection).document(doc_id)
        firestore_changes = DateTimeUtils.for_firestore(changes)

        def _run():
            transaction = self.db.transaction()

            @firestore.transactional
            def _update_in_transaction(transaction: Transaction):
                snapshot = doc_ref.get(transaction=transaction)
                current = self._read(snapshot)
                if current is None or not matches(current, conditions):
                    return None
                transaction.update(doc_ref, firestore_changes)
                current.update(changes)
                return current

            return _update_in_transaction(transaction)

        return self._call("update_where", _run)

    def update_many_where(self, collection: str, conditions: Sequence[Condition],
                          changes: Dict[str, Any], exclude_ids: Sequence[str] = ()) -> int:
        # 후보는 쿼리로 찾고, 실제 쓰기는 문서별 조건부 트랜잭션으로 수행합니다.
        # 쿼리 이후 상태가 바뀐 문서는 update_where에서 걸러집니다.
        def _candidate_ids():
            query = self.db.collection(collection)
            for field_name, op, value in conditions:
                query = query.where(field_name, op, list(value) if op in ('in', 'not-in') else value)
            return [doc.id for doc in query.stream()]

        candidate_ids = self._call("update_many_where", _candidate_ids)
        updated = 0
        for doc_id in candidate_ids:
            if doc_id in exclude_ids:
                continue
            if self.update_where(collection, doc_id, conditions, changes) is not None:
                updated += 1
        return updated

    def delete_where(self, collection: str, doc_id: str, conditions: Sequence[Condition]) -> bool:
        doc_ref = self.db.collection(collection).document(doc_id)

        def _run():
            transaction = self.db.transaction()

            @firestore.transactional
            def _delete_in_transaction(transaction: Transaction):
                current = self._read(doc_ref.get(transaction=transaction))
                if current is None or not matches(current, conditions):
                    return False
                transaction.delete(doc_ref)
                return True

            return _delete_in_transaction(transaction)

        return self._call("delete_where", _run)

    def increment_and_fetch(self, collection: str, doc_id: str, field_name: str = 'value') -> int:
        doc_ref = self.db.collection(collection).document(doc_id)

        def _run():
            transaction = self.db.transaction()

            @firestore.transactional
            def _increment_in_transaction(transaction: Transaction):
                snapshot = doc_ref.get(transaction=transaction)
                current = (snapshot.to_dict() or {}).get(field_name, 0) if snapshot.exists else 0
                next_value = int(current) + 1
                transaction.set(doc_ref, {field_name: next_value, 'updated_at': DateTimeUtils.now()}, merge=True)
                return next_value

            return _increment_in_transaction(transaction)

        return self._call("increment_and_fetch", _run)
