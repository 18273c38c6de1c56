# strayspot/core/config.py

import os # 환경 변수(.env 포함)에서 설정 값을 읽기 위해 사용합니다.


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    return int(value) if value not in (None, '') else default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    return float(value) if value not in (None, '') else default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value in (None, ''):
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    # 외부 인증 계층이 발급한 JWT를 검증하는 데 사용하는 키입니다.
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')

    FIREBASE_STORAGE_BUCKET = os.getenv('FIREBASE_STORAGE_BUCKET')

    # 문서 저장소 백엔드: 'firestore'(운영) 또는 'memory'(로컬 개발/테스트)
    DOCUMENT_STORE = os.getenv('DOCUMENT_STORE', 'firestore')

    # 시퀀스 ID 할당 후 문서 생성이 중복 ID로 실패했을 때의 최대 재할당 횟수
    SEQUENCE_MAX_ATTEMPTS = _env_int('SEQUENCE_MAX_ATTEMPTS', 5)

    # 멱등 연산(조회, 조건부 업데이트, 카운터 증가)에 대한 일시적 오류 재시도 정책
    STORE_RETRY_ATTEMPTS = _env_int('STORE_RETRY_ATTEMPTS', 3)
    STORE_RETRY_INITIAL_WAIT = _env_float('STORE_RETRY_INITIAL_WAIT', 0.1)
    STORE_RETRY_MAX_WAIT = _env_float('STORE_RETRY_MAX_WAIT', 2.0)

    # 신청서 문서 없이 남아 있는 (입양자, 반려동물) 점유 문서를 만료로 간주하기까지의 시간(초)
    CLAIM_STALE_SECONDS = _env_int('CLAIM_STALE_SECONDS', 60)

    # 처리 중(in_progress)으로 남은 Idempotency-Key를 중단된 요청으로 보고 재사용을 허용하기까지의 시간(초)
    IDEMPOTENCY_STALE_SECONDS = _env_int('IDEMPOTENCY_STALE_SECONDS', 300)

    # 입양 완료된 반려동물을 조회할 때마다 남은 신청서를 정리할지 여부
    RECONCILE_ON_READ = _env_bool('RECONCILE_ON_READ', True)
    # 백그라운드 정합성 복구 주기(초). 0이면 비활성화합니다.
    RECONCILE_INTERVAL_SECONDS = _env_int('RECONCILE_INTERVAL_SECONDS', 0)

    # 결제 QR/증빙 이미지 업로드 최대 크기 (Flask가 초과 요청을 413으로 거절)
    MAX_CONTENT_LENGTH = _env_int('MAX_UPLOAD_BYTES', 10 * 1024 * 1024)


class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True
    FIREBASE_CREDENTIALS_PATH = os.getenv('DEV_FIREBASE_CREDENTIALS_PATH')


class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다. Firebase 없이 인메모리 저장소로 동작합니다."""
    TESTING = True
    DEBUG = False
    JWT_SECRET_KEY = os.getenv('TEST_JWT_SECRET_KEY', 'strayspot-testing-secret-key-0123456789')
    FIREBASE_CREDENTIALS_PATH = os.getenv('TEST_FIREBASE_CREDENTIALS_PATH')
    FIREBASE_STORAGE_BUCKET = None
    DOCUMENT_STORE = 'memory'
    STORE_RETRY_INITIAL_WAIT = 0.0
    STORE_RETRY_MAX_WAIT = 0.0
    RECONCILE_INTERVAL_SECONDS = 0


class ProductionConfig(Config):
    """운영 환경 설정."""
    DEBUG = False
    FIREBASE_CREDENTIALS_PATH = os.getenv('FIREBASE_CREDENTIALS_PATH')
    RECONCILE_INTERVAL_SECONDS = _env_int('RECONCILE_INTERVAL_SECONDS', 300)


# create_app()에서 FLASK_ENV 값에 따라 설정 클래스를 선택합니다.
config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig,
    production=ProductionConfig
)
