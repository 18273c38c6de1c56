# strayspot/services/test_sequence_service.py
from concurrent.futures import ThreadPoolExecutor

import pytest

from strayspot.core.errors import ConflictError, DuplicateDocumentError
from strayspot.services.memory_store import InMemoryDocumentStore
from strayspot.services.sequence_service import SequenceService


@pytest.fixture
def sequences():
    return SequenceService(InMemoryDocumentStore(), max_attempts=3)


def test_allocate_is_increasing_per_sequence(sequences):
    assert [sequences.allocate('payments') for _ in range(3)] == [1, 2, 3]
    assert sequences.allocate('applications') == 1


def test_concurrent_allocations_are_unique(sequences):
    with ThreadPoolExecutor(max_workers=20) as executor:
        ids = list(executor.map(lambda _: sequences.allocate('applications'), range(100)))
    assert len(set(ids)) == 100
    assert max(ids) == 100


def test_create_with_sequence_skips_taken_ids(sequences):
    store = sequences.store
    # 카운터보다 앞서 만들어진 기존 문서
    store.create('payments', '1', {'payment_id': 1})
    store.create('payments', '2', {'payment_id': 2})

    def _create(new_id):
        return store.create('payments', str(new_id), {'payment_id': new_id})

    created = sequences.create_with_sequence('payments', _create)
    assert created['payment_id'] == 3


def test_create_with_sequence_gives_up_after_max_attempts(sequences):
    attempts = []

    def _always_duplicate(new_id):
        attempts.append(new_id)
        raise DuplicateDocumentError("taken")

    with pytest.raises(ConflictError) as exc_info:
        sequences.create_with_sequence('applications', _always_duplicate)
    assert exc_info.value.error_code == "SEQUENCE_EXHAUSTED"
    assert attempts == [1, 2, 3]


def test_create_with_sequence_propagates_other_errors(sequences):
    def _fails(new_id):
        raise ConflictError("lost race")

    with pytest.raises(ConflictError) as exc_info:
        sequences.create_with_sequence('applications', _fails)
    assert exc_info.value.message == "lost race"
    # 재시도하지 않았으므로 하나만 발급됨
    assert sequences.allocate('applications') == 2
