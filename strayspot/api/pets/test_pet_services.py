# strayspot/api/pets/test_pet_services.py
"""
반려동물 등록/수정 규칙 테스트
"""

import pytest

from strayspot.core.errors import AuthorizationError, PreconditionFailedError, ValidationError
from strayspot.models.adoption_application import ApplicationStatus
from strayspot.models.pet import PetStatus
from strayspot.models.user import UserStatus


@pytest.fixture
def pets(services):
    return services['pets']


def test_register_pet_assigns_ids(pets, organization):
    first = pets.register_pet(organization, {'name': 'Choco', 'species': 'cat', 'adoption_fee': 80})
    second = pets.register_pet(organization, {'name': 'Dubu', 'species': 'dog', 'adoption_fee': 120})

    assert first.pet_id != second.pet_id
    assert second.display_id == first.display_id + 1
    assert first.status == PetStatus.REHABILITATING
    assert first.organization_id == organization.actor_id
    assert pets.load_pet(first.pet_id).name == 'Choco'


def test_register_requires_verified_organization(pets, adopter, unverified_organization):
    with pytest.raises(AuthorizationError) as exc_info:
        pets.register_pet(unverified_organization, {'name': 'Choco', 'species': 'cat', 'adoption_fee': 80})
    assert exc_info.value.error_code == 'ORGANIZATION_NOT_VERIFIED'

    with pytest.raises(AuthorizationError) as exc_info:
        pets.register_pet(adopter, {'name': 'Choco', 'species': 'cat', 'adoption_fee': 80})
    assert exc_info.value.error_code == 'ORGANIZATION_ONLY'


def test_register_as_adopted_is_rejected(pets, organization):
    with pytest.raises(ValidationError):
        pets.register_pet(organization, {'name': 'Choco', 'species': 'cat', 'adoption_fee': 80, 'status': 'adopted'})


def test_suspended_organization_cannot_register(pets, services, organization):
    services['users'].set_status(organization.actor_id, UserStatus.SUSPENDED)
    with pytest.raises(AuthorizationError) as exc_info:
        pets.register_pet(organization, {'name': 'Choco', 'species': 'cat', 'adoption_fee': 80})
    assert exc_info.value.error_code == 'ACCOUNT_SUSPENDED'


def test_update_pet_fields(pets, pet, organization):
    updated = pets.update_pet(organization, pet.pet_id, {'info': 'Loves walks', 'adoption_fee': 200, 'status': 'rehabilitating'})
    assert updated.info == 'Loves walks'
    assert updated.adoption_fee == 200.0
    assert updated.status == PetStatus.REHABILITATING
    assert updated.updated_at >= pet.updated_at


def test_update_rules(pets, pet, organization, other_organization):
    with pytest.raises(ValidationError):
        pets.update_pet(organization, pet.pet_id, {})
    with pytest.raises(AuthorizationError):
        pets.update_pet(other_organization, pet.pet_id, {'info': 'mine now'})
    with pytest.raises(PreconditionFailedError) as exc_info:
        pets.update_pet(organization, pet.pet_id, {'status': 'adopted'})
    assert exc_info.value.error_code == 'INVALID_PET_STATUS'
    assert pets.load_pet(pet.pet_id).status == PetStatus.AVAILABLE


def test_adopted_pet_status_is_frozen(pets, services, pet, adopter, organization, application_form):
    applications = services['applications']
    application = applications.submit(adopter, pet.pet_id, application_form)
    applications.transition(application.application_id, ApplicationStatus.APPROVED, organization)

    with pytest.raises(PreconditionFailedError) as exc_info:
        pets.update_pet(organization, pet.pet_id, {'status': 'available'})
    assert exc_info.value.error_code == 'PET_ALREADY_ADOPTED'

    # 상태 이외의 정보는 계속 수정 가능
    assert pets.update_pet(organization, pet.pet_id, {'info': 'Went home!'}).status == PetStatus.ADOPTED
    assert pets.get_pet(pet.pet_id).adopted_application_id == application.application_id
