# strayspot/services/memory_store.py
import copy
import threading
from typing import Any, Dict, List, Optional, Sequence

from strayspot.core.errors import DuplicateDocumentError
from strayspot.services.document_store import Condition, DocumentStore, matches


class InMemoryDocumentStore(DocumentStore):
    """
    프로세스 내부 딕셔너리 기반 문서 저장소 (테스트/로컬 개발용).
    하나의 RLock으로 모든 연산을 직렬화하여 Firestore 트랜잭션과 같은 원자성을 제공합니다.
    읽기/쓰기 모두 깊은 복사본을 주고받습니다.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def find(self, collection: str, conditions: Sequence[Condition] = (),
             order_by: Optional[str] = None, descending: bool = False,
             limit: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._lock:
            docs = [copy.deepcopy(doc) for doc in self._collection(collection).values() if matches(doc, conditions)]
        if order_by:
            # Firestore와 마찬가지로 필드가 없는 문서는 정렬 대상에서 제외
            docs = [doc for doc in docs if doc.get(order_by) is not None]
            docs.sort(key=lambda doc: doc[order_by], reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return docs

    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            docs = self._collection(collection)
            if doc_id in docs:
                raise DuplicateDocumentError(
                    f"Document {collection}/{doc_id} already exists",
                    context={"collection": collection, "doc_id": doc_id}
                )
            docs[doc_id] = copy.deepcopy(data)
            return copy.deepcopy(data)

    def update_where(self, collection: str, doc_id: str, conditions: Sequence[Condition],
                     changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            if doc is None or not matches(doc, conditions):
                return None
            doc.update(copy.deepcopy(changes))
            return copy.deepcopy(doc)

    def update_many_where(self, collection: str, conditions: Sequence[Condition],
                          changes: Dict[str, Any], exclude_ids: Sequence[str] = ()) -> int:
        updated = 0
        with self._lock:
            for doc_id, doc in self._collection(collection).items():
                if doc_id in exclude_ids or not matches(doc, conditions):
                    continue
                doc.update(copy.deepcopy(changes))
                updated += 1
        return updated

    def delete_where(self, collection: str, doc_id: str, conditions: Sequence[Condition]) -> bool:
        with self._lock:
            docs = self._collection(collection)
            doc = docs.get(doc_id)
            if doc is None or not matches(doc, conditions):
                return False
            del docs[doc_id]
            return True

    def increment_and_fetch(self, collection: str, doc_id: str, field_name: str = 'value') -> int:
        with self._lock:
            doc = self._collection(collection).setdefault(doc_id, {field_name: 0})
            doc[field_name] = int(doc.get(field_name) or 0) + 1
            return doc[field_name]
