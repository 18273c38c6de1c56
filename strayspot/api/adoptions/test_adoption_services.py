# strayspot/api/adoptions/test_adoption_services.py
"""
입양 신청 워크플로우 테스트 (신청, 심사 전이, 승인 캐스케이드, 철회, 삭제)

사용법: python -m pytest strayspot/api/adoptions -v
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from strayspot.core.errors import (
    AuthorizationError, ConflictError, NotFoundError, PreconditionFailedError
)
from strayspot.models.adoption_application import ADOPTED_BY_ANOTHER_REASON, ApplicationStatus
from strayspot.models.pet import PetStatus
from strayspot.core.security import Actor
from strayspot.models.user import UserStatus, UserType
from strayspot.utils.datetime_utils import DateTimeUtils


@pytest.fixture
def applications(services):
    return services['applications']


def test_submit_then_approve_adopts_pet(applications, services, pet, adopter, organization, application_form):
    application = applications.submit(adopter, pet.pet_id, application_form)
    assert application.application_id == 1
    assert application.status == ApplicationStatus.PENDING
    assert application.organization_id == organization.actor_id

    approved = applications.transition(1, ApplicationStatus.APPROVED, organization)
    assert approved.status == ApplicationStatus.APPROVED
    assert approved.reviewed_by == 'Happy Paws Shelter'

    adopted_pet = services['pets'].load_pet(pet.pet_id)
    assert adopted_pet.status == PetStatus.ADOPTED
    assert adopted_pet.adopted_application_id == 1


def test_approval_rejects_other_open_applications(applications, pet, adopter, adopter2, adopter3,
                                                  organization, application_form):
    first = applications.submit(adopter, pet.pet_id, application_form)
    second = applications.submit(adopter2, pet.pet_id, application_form)
    third = applications.submit(adopter3, pet.pet_id, application_form)
    applications.transition(third.application_id, ApplicationStatus.REVIEWING, organization)

    applications.transition(first.application_id, ApplicationStatus.APPROVED, organization)

    for sibling_id in (second.application_id, third.application_id):
        sibling = applications.load_application(sibling_id)
        assert sibling.status == ApplicationStatus.REJECTED
        assert sibling.rejection_reason == ADOPTED_BY_ANOTHER_REASON
        assert sibling.reviewed_by == 'Happy Paws Shelter'


def test_second_active_application_conflicts(applications, pet, adopter, application_form):
    applications.submit(adopter, pet.pet_id, application_form)
    with pytest.raises(ConflictError) as exc_info:
        applications.submit(adopter, pet.pet_id, application_form)
    assert "already have an active application" in exc_info.value.message


def test_resubmit_after_rejection_is_allowed(applications, pet, adopter, organization, application_form):
    first = applications.submit(adopter, pet.pet_id, application_form)
    applications.transition(first.application_id, ApplicationStatus.REJECTED, organization,
                            rejection_reason="Incomplete reference")

    second = applications.submit(adopter, pet.pet_id, application_form)
    assert second.application_id == first.application_id + 1
    assert applications.load_application(first.application_id).rejection_reason == "Incomplete reference"


def test_resubmit_after_withdrawal_is_allowed(applications, pet, adopter, application_form):
    first = applications.submit(adopter, pet.pet_id, application_form)
    withdrawn = applications.withdraw(first.application_id, adopter)
    assert withdrawn.status == ApplicationStatus.WITHDRAWN
    assert applications.submit(adopter, pet.pet_id, application_form).status == ApplicationStatus.PENDING


def test_orphaned_claim_blocks_until_stale(applications, store, pet, adopter, application_form):
    # 신청서 생성 도중 실패하여 점유 문서만 남은 상황
    claim_id = f"{adopter.actor_id}_{pet.pet_id}"
    store.create('active_applications', claim_id, {
        'application_id': 999, 'adopter_id': adopter.actor_id, 'pet_id': pet.pet_id,
        'claimed_at': DateTimeUtils.now(),
    })
    with pytest.raises(ConflictError):
        applications.submit(adopter, pet.pet_id, application_form)

    store.update_where('active_applications', claim_id, [],
                       {'claimed_at': DateTimeUtils.now() - timedelta(seconds=applications.claim_stale_seconds + 1)})
    application = applications.submit(adopter, pet.pet_id, application_form)
    assert store.get('active_applications', claim_id)['application_id'] == application.application_id


def test_submit_preconditions(applications, services, pet, adopter, organization, application_form):
    with pytest.raises(AuthorizationError):
        applications.submit(organization, pet.pet_id, application_form)
    with pytest.raises(NotFoundError):
        applications.submit(adopter, 'no-such-pet', application_form)

    services['pets'].update_pet(organization, pet.pet_id, {'status': 'rehabilitating'})
    with pytest.raises(PreconditionFailedError) as exc_info:
        applications.submit(adopter, pet.pet_id, application_form)
    assert exc_info.value.message == "This pet is not available for adoption"


def test_suspended_adopter_cannot_submit(applications, services, pet, adopter, application_form):
    services['users'].set_status(adopter.actor_id, UserStatus.SUSPENDED)
    with pytest.raises(AuthorizationError):
        applications.submit(adopter, pet.pet_id, application_form)


def test_idempotency_key_replays_submission(applications, pet, adopter, application_form):
    first = applications.submit(adopter, pet.pet_id, application_form, idempotency_key='abc')
    again = applications.submit(adopter, pet.pet_id, application_form, idempotency_key='abc')
    assert again.application_id == first.application_id


def test_only_owning_organization_can_transition(applications, pet, adopter, other_organization, application_form):
    application = applications.submit(adopter, pet.pet_id, application_form)
    with pytest.raises(AuthorizationError):
        applications.transition(application.application_id, ApplicationStatus.REVIEWING, other_organization)
    with pytest.raises(AuthorizationError):
        applications.transition(application.application_id, ApplicationStatus.REVIEWING, adopter)


def test_disallowed_transitions(applications, pet, adopter, organization, application_form):
    application = applications.submit(adopter, pet.pet_id, application_form)
    with pytest.raises(PreconditionFailedError):
        applications.transition(application.application_id, ApplicationStatus.PENDING, organization)
    with pytest.raises(PreconditionFailedError):
        applications.transition(application.application_id, ApplicationStatus.WITHDRAWN, organization)

    applications.transition(application.application_id, ApplicationStatus.REJECTED, organization)
    with pytest.raises(PreconditionFailedError):
        applications.transition(application.application_id, ApplicationStatus.APPROVED, organization)


def test_stale_expected_status_conflicts(applications, pet, adopter, organization, application_form):
    application = applications.submit(adopter, pet.pet_id, application_form)
    applications.transition(application.application_id, ApplicationStatus.REVIEWING, organization)

    with pytest.raises(ConflictError) as exc_info:
        applications.transition(application.application_id, ApplicationStatus.REJECTED, organization,
                                expected_status=ApplicationStatus.PENDING)
    assert exc_info.value.message == "stale application state"
    assert applications.load_application(application.application_id).status == ApplicationStatus.REVIEWING


def test_stale_approval_restores_pet(applications, services, pet, adopter, organization, application_form):
    application = applications.submit(adopter, pet.pet_id, application_form)
    applications.transition(application.application_id, ApplicationStatus.REVIEWING, organization)

    with pytest.raises(ConflictError):
        applications.transition(application.application_id, ApplicationStatus.APPROVED, organization,
                                expected_status=ApplicationStatus.PENDING)

    restored = services['pets'].load_pet(pet.pet_id)
    assert restored.status == PetStatus.AVAILABLE
    assert restored.adopted_application_id is None


def test_concurrent_approvals_have_single_winner(applications, services, pet, adopter, adopter2, adopter3,
                                                 organization, application_form):
    ids = [applications.submit(a, pet.pet_id, application_form).application_id for a in (adopter, adopter2, adopter3)]

    def _approve(application_id):
        try:
            applications.transition(application_id, ApplicationStatus.APPROVED, organization)
            return 'approved'
        except (ConflictError, PreconditionFailedError):
            return 'lost'

    with ThreadPoolExecutor(max_workers=3) as executor:
        outcomes = list(executor.map(_approve, ids))

    assert outcomes.count('approved') == 1
    statuses = [applications.load_application(i).status for i in ids]
    assert statuses.count(ApplicationStatus.APPROVED) == 1
    assert statuses.count(ApplicationStatus.REJECTED) == 2
    winner_id = ids[statuses.index(ApplicationStatus.APPROVED)]
    assert services['pets'].load_pet(pet.pet_id).adopted_application_id == winner_id


def test_concurrent_submissions_get_distinct_ids(applications, services, organization, application_form):
    pets = [
        services['pets'].register_pet(organization, {
            'name': f'Pet {i}', 'species': 'cat', 'adoption_fee': 50, 'status': 'available'
        })
        for i in range(10)
    ]
    adopters = [
        services['users'].provision_user(f'bulk-{i}', f'bulk-{i}@example.com', UserType.ADOPTER)
        for i in range(5)
    ]
    jobs = [(Actor(u.user_id, u.user_type), p.pet_id) for u in adopters for p in pets]

    with ThreadPoolExecutor(max_workers=16) as executor:
        created = list(executor.map(lambda job: applications.submit(job[0], job[1], application_form), jobs))

    ids = [a.application_id for a in created]
    assert len(set(ids)) == len(jobs)


def test_concurrent_duplicate_submissions_leave_one_active(applications, pet, adopter, application_form):
    def _submit(_):
        try:
            return applications.submit(adopter, pet.pet_id, application_form)
        except ConflictError:
            return None

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(executor.map(_submit, range(8)))

    created = [r for r in results if r is not None]
    assert len(created) == 1
    assert len(applications.list_for_adopter(adopter)) == 1


def test_withdraw_rules(applications, pet, adopter, adopter2, organization, application_form):
    application = applications.submit(adopter, pet.pet_id, application_form)
    with pytest.raises(AuthorizationError):
        applications.withdraw(application.application_id, adopter2)
    with pytest.raises(AuthorizationError):
        applications.withdraw(application.application_id, organization)

    applications.transition(application.application_id, ApplicationStatus.APPROVED, organization)
    with pytest.raises(PreconditionFailedError):
        applications.withdraw(application.application_id, adopter)


def test_delete_pending_application_fails(applications, pet, adopter, organization, application_form):
    application = applications.submit(adopter, pet.pet_id, application_form)
    with pytest.raises(PreconditionFailedError) as exc_info:
        applications.delete(application.application_id, organization)
    assert exc_info.value.message == "Only rejected applications can be deleted"


def test_delete_rejected_application_releases_claim(applications, store, pet, adopter, organization,
                                                    application_form):
    application = applications.submit(adopter, pet.pet_id, application_form)
    applications.transition(application.application_id, ApplicationStatus.REJECTED, organization)
    applications.delete(application.application_id, organization)

    with pytest.raises(NotFoundError):
        applications.load_application(application.application_id)
    assert store.get('active_applications', f"{adopter.actor_id}_{pet.pet_id}") is None


def test_read_access(applications, pet, adopter, adopter2, organization, other_organization,
                     unverified_organization, application_form):
    application = applications.submit(adopter, pet.pet_id, application_form)
    assert applications.get(application.application_id, adopter).application_id == application.application_id
    assert applications.get(application.application_id, organization).application_id == application.application_id
    with pytest.raises(AuthorizationError):
        applications.get(application.application_id, adopter2)
    with pytest.raises(AuthorizationError):
        applications.get(application.application_id, other_organization)

    assert [a.application_id for a in applications.list_for_organization(organization)] == [application.application_id]
    assert applications.list_for_organization(other_organization) == []
    with pytest.raises(AuthorizationError):
        applications.list_for_organization(unverified_organization)
