# strayspot/services/test_memory_store.py
"""
인메모리 문서 저장소의 조건부 쓰기 테스트

사용법: python -m pytest strayspot/services/test_memory_store.py -v
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from strayspot.core.errors import DuplicateDocumentError
from strayspot.services.memory_store import InMemoryDocumentStore


@pytest.fixture
def memory_store():
    store = InMemoryDocumentStore()
    store.create('applications', '1', {'application_id': 1, 'pet_id': 'p1', 'status': 'pending', 'created_at': 1})
    store.create('applications', '2', {'application_id': 2, 'pet_id': 'p1', 'status': 'reviewing', 'created_at': 2})
    store.create('applications', '3', {'application_id': 3, 'pet_id': 'p1', 'status': 'rejected', 'created_at': 3})
    store.create('applications', '4', {'application_id': 4, 'pet_id': 'p2', 'status': 'pending', 'created_at': 4})
    return store


def test_create_rejects_existing_id(memory_store):
    with pytest.raises(DuplicateDocumentError):
        memory_store.create('applications', '1', {'application_id': 1})


def test_get_returns_copy(memory_store):
    doc = memory_store.get('applications', '1')
    doc['status'] = 'approved'
    assert memory_store.get('applications', '1')['status'] == 'pending'
    assert memory_store.get('applications', 'missing') is None


def test_find_filters_and_orders(memory_store):
    docs = memory_store.find('applications', [('pet_id', '==', 'p1'), ('status', 'in', ['pending', 'reviewing'])],
                             order_by='created_at', descending=True)
    assert [d['application_id'] for d in docs] == [2, 1]

    docs = memory_store.find('applications', [('status', 'not-in', ['rejected'])], limit=2, order_by='created_at')
    assert [d['application_id'] for d in docs] == [1, 2]


def test_update_where_applies_only_when_conditions_match(memory_store):
    assert memory_store.update_where('applications', '1', [('status', '==', 'reviewing')], {'status': 'approved'}) is None
    updated = memory_store.update_where('applications', '1', [('status', '==', 'pending')], {'status': 'reviewing'})
    assert updated['status'] == 'reviewing'
    assert memory_store.update_where('applications', 'missing', [], {'status': 'x'}) is None


def test_update_where_treats_missing_field_as_none(memory_store):
    updated = memory_store.update_where('applications', '1', [('payment_id', '==', None)], {'payment_id': 10})
    assert updated['payment_id'] == 10
    assert memory_store.update_where('applications', '1', [('payment_id', '==', None)], {'payment_id': 11}) is None


def test_update_many_where_excludes_ids_and_is_repeatable(memory_store):
    conditions = [('pet_id', '==', 'p1'), ('status', 'in', ['pending', 'reviewing'])]
    assert memory_store.update_many_where('applications', conditions, {'status': 'rejected'}, exclude_ids=['2']) == 1
    assert memory_store.get('applications', '1')['status'] == 'rejected'
    assert memory_store.get('applications', '2')['status'] == 'reviewing'
    assert memory_store.get('applications', '4')['status'] == 'pending'
    # 두 번째 실행은 아무것도 바꾸지 않음
    assert memory_store.update_many_where('applications', conditions, {'status': 'rejected'}, exclude_ids=['2']) == 0


def test_delete_where(memory_store):
    assert memory_store.delete_where('applications', '1', [('status', '==', 'rejected')]) is False
    assert memory_store.delete_where('applications', '3', [('status', '==', 'rejected')]) is True
    assert memory_store.get('applications', '3') is None


def test_unsupported_operator_raises(memory_store):
    with pytest.raises(ValueError):
        memory_store.find('applications', [('status', '>', 'a')])


def test_increment_and_fetch_is_atomic_under_threads():
    store = InMemoryDocumentStore()
    with ThreadPoolExecutor(max_workers=16) as executor:
        values = list(executor.map(lambda _: store.increment_and_fetch('counters', 'applications'), range(200)))
    assert sorted(values) == list(range(1, 201))
