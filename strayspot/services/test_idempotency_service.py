# strayspot/services/test_idempotency_service.py
from datetime import timedelta

import pytest

from strayspot.core.errors import ConflictError, StoreError, TransientStoreError
from strayspot.services.idempotency_service import IdempotencyService, STATUS_COMPLETED, STATUS_IN_PROGRESS
from strayspot.services.memory_store import InMemoryDocumentStore
from strayspot.utils.datetime_utils import DateTimeUtils

KEY_DOC = 'idempotency_keys'


@pytest.fixture
def idempotency():
    return IdempotencyService(InMemoryDocumentStore(), stale_seconds=300)


def _run(service, key, create_fn):
    return service.run('applications', 'adopter-1', key, create_fn,
                       load_fn=lambda resource_id: {'id': resource_id, 'replayed': True},
                       resource_id_of=lambda result: result['id'])


def _doc_id(key):
    return f'applications_adopter-1_{key}'


def test_without_key_always_creates(idempotency):
    calls = []
    _run(idempotency, None, lambda: calls.append(1) or {'id': 1})
    _run(idempotency, None, lambda: calls.append(1) or {'id': 2})
    assert len(calls) == 2


def test_replay_returns_stored_resource(idempotency):
    first = _run(idempotency, 'key-1', lambda: {'id': 42})
    second = _run(idempotency, 'key-1', lambda: pytest.fail("must not create twice"))
    assert first == {'id': 42}
    assert second == {'id': 42, 'replayed': True}


def test_in_progress_key_conflicts(idempotency):
    idempotency.store.create(KEY_DOC, _doc_id('key-2'), {
        'status': STATUS_IN_PROGRESS, 'attempt_id': 'other', 'resource_id': None, 'created_at': DateTimeUtils.now()
    })
    with pytest.raises(ConflictError):
        _run(idempotency, 'key-2', lambda: {'id': 1})


def test_failed_create_releases_key(idempotency):
    def _boom():
        raise StoreError("write failed")

    with pytest.raises(StoreError):
        _run(idempotency, 'key-3', _boom)
    assert _run(idempotency, 'key-3', lambda: {'id': 5}) == {'id': 5}


def test_stale_in_progress_key_is_taken_over(idempotency):
    idempotency.store.create(KEY_DOC, _doc_id('key-4'), {
        'status': STATUS_IN_PROGRESS,
        'attempt_id': 'crashed-request',
        'resource_id': None,
        'created_at': DateTimeUtils.now() - timedelta(seconds=301),
    })

    assert _run(idempotency, 'key-4', lambda: {'id': 11}) == {'id': 11}
    record = idempotency.store.get(KEY_DOC, _doc_id('key-4'))
    assert record['status'] == STATUS_COMPLETED
    assert record['resource_id'] == 11


def test_completion_write_failure_still_returns_result(idempotency, monkeypatch):
    def _update_down(*args, **kwargs):
        raise TransientStoreError("update timed out")

    monkeypatch.setattr(idempotency.store, 'update_where', _update_down)
    assert _run(idempotency, 'key-5', lambda: {'id': 9}) == {'id': 9}
    monkeypatch.undo()

    # 완료가 기록되지 않은 키는 유예 시간 동안 처리 중으로 남음
    assert idempotency.store.get(KEY_DOC, _doc_id('key-5'))['status'] == STATUS_IN_PROGRESS
    with pytest.raises(ConflictError):
        _run(idempotency, 'key-5', lambda: {'id': 10})
