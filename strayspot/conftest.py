# strayspot/conftest.py
"""
공용 pytest 픽스처

- Firebase 없이 인메모리 문서 저장소로 동작하는 testing 앱
- 미리 가입된 입양자/단체 사용자와 입양 가능한 반려동물
- Firebase Storage 버킷 대신 업로드를 기록하는 가짜 버킷
"""

import pytest

from strayspot import create_app
from strayspot.core.security import Actor, create_actor_token
from strayspot.models.user import UserType


class FakeBlob:
    def __init__(self, bucket, name):
        self.bucket = bucket
        self.name = name
        self.public = False

    def upload_from_string(self, data, content_type=None):
        self.bucket.uploads[self.name] = (data, content_type)

    def make_public(self):
        self.public = True

    @property
    def public_url(self):
        return f"https://storage.test/{self.name}"


class FakeBucket:
    """업로드된 파일을 {경로: (내용, content_type)}로 기록합니다."""

    def __init__(self):
        self.uploads = {}

    def blob(self, name):
        return FakeBlob(self, name)


@pytest.fixture
def app():
    app = create_app('testing')
    app.services['storage'].bucket = FakeBucket()
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.services


@pytest.fixture
def store(services):
    return services['store']


@pytest.fixture
def bucket(services):
    return services['storage'].bucket


def _provision(services, user_id, user_type, **profile):
    services['users'].provision_user(user_id, f"{user_id}@example.com", user_type, **profile)
    return Actor(actor_id=user_id, actor_type=user_type)


@pytest.fixture
def organization(services):
    return _provision(services, 'org-1', UserType.ORGANIZATION, organization_name='Happy Paws Shelter', is_verified=True)


@pytest.fixture
def other_organization(services):
    return _provision(services, 'org-2', UserType.ORGANIZATION, organization_name='Second Chance Rescue', is_verified=True)


@pytest.fixture
def unverified_organization(services):
    return _provision(services, 'org-unverified', UserType.ORGANIZATION, organization_name='New Shelter')


@pytest.fixture
def adopter(services):
    return _provision(services, 'adopter-1', UserType.ADOPTER, first_name='Mina', last_name='Kim')


@pytest.fixture
def adopter2(services):
    return _provision(services, 'adopter-2', UserType.ADOPTER, first_name='Jun', last_name='Park')


@pytest.fixture
def adopter3(services):
    return _provision(services, 'adopter-3', UserType.ADOPTER, first_name='Sora', last_name='Lee')


@pytest.fixture
def pet(services, organization):
    """단체 'org-1'이 등록한 입양 가능한 반려동물 (입양비 150)."""
    return services['pets'].register_pet(organization, {
        'name': 'Bori',
        'species': 'dog',
        'breed': 'Jindo',
        'gender': 'female',
        'adoption_fee': 150.0,
        'status': 'available',
    })


@pytest.fixture
def application_form():
    return {
        'housing_status': 'own',
        'pets_allowed': 'yes',
        'pet_location': 'Indoors with a fenced yard',
        'primary_caregiver': 'Myself',
        'other_pets': 'no',
        'financially_prepared': 'yes',
        'emergency_pet_care': 'My sister lives nearby',
        'reference': {'name': 'Hana Choi', 'email': 'hana@example.com', 'phone': '010-1234-5678'},
        'terms_accepted': True,
    }


@pytest.fixture
def auth_headers(app):
    """Actor로부터 Authorization 헤더를 만드는 함수를 반환합니다."""
    def _headers(actor, **extra):
        token = create_actor_token(actor.actor_id, actor.actor_type)
        headers = {'Authorization': f'Bearer {token}'}
        headers.update(extra)
        return headers
    return _headers
