# strayspot/__init__.py

# =====================================================================================
# 1. 환경 변수 로드 (가장 먼저 실행)
# =====================================================================================
from dotenv import load_dotenv
load_dotenv()

# =====================================================================================
# 2. 모듈 임포트 (Module Imports)
# =====================================================================================
import os
import logging
from typing import Optional

import click
from flask import Flask
from marshmallow import ValidationError as SchemaValidationError
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
import firebase_admin
from firebase_admin import credentials

# - 설정 및 공통 모듈
from strayspot.core.config import config_by_name
from strayspot.core.errors import AdoptionServiceError
from strayspot.core.responses import error_response

# - API 블루프린트
from strayspot.api.adoptions.routes import adoptions_bp
from strayspot.api.payments.routes import payments_bp
from strayspot.api.pets.routes import pets_bp

# - 서비스 모듈
from strayspot.services.document_store import DocumentStore
from strayspot.services.memory_store import InMemoryDocumentStore
from strayspot.services.firestore_service import FirestoreDocumentStore
from strayspot.services.sequence_service import SequenceService
from strayspot.services.idempotency_service import IdempotencyService
from strayspot.services.storage_service import StorageService
from strayspot.api.users.services import UserService
from strayspot.api.pets.services import PetService
from strayspot.api.adoptions.cascade import AdoptionCascade, ReconciliationService, ReconciliationWorker
from strayspot.api.adoptions.services import ApplicationService
from strayspot.api.payments.services import PaymentService


def _init_firebase(app: Flask):
    """Firestore 저장소 또는 Storage 버킷을 사용할 때만 Firebase Admin SDK를 초기화합니다."""
    if firebase_admin._apps:
        return
    cred_path = app.config.get('FIREBASE_CREDENTIALS_PATH')
    if not cred_path or not os.path.exists(cred_path):
        raise FileNotFoundError(f"Firebase 인증 파일을 찾을 수 없습니다: {cred_path}")
    cred = credentials.Certificate(cred_path)
    firebase_admin.initialize_app(cred, {
        'storageBucket': app.config.get('FIREBASE_STORAGE_BUCKET')
    })


def _build_store(app: Flask) -> DocumentStore:
    backend = app.config.get('DOCUMENT_STORE', 'firestore')
    if backend == 'memory':
        logging.info("Using in-memory document store.")
        return InMemoryDocumentStore()
    if backend == 'firestore':
        return FirestoreDocumentStore(
            retry_attempts=app.config['STORE_RETRY_ATTEMPTS'],
            retry_initial_wait=app.config['STORE_RETRY_INITIAL_WAIT'],
            retry_max_wait=app.config['STORE_RETRY_MAX_WAIT'],
        )
    raise ValueError(f"지원하지 않는 DOCUMENT_STORE 값입니다: {backend}")


def create_app(config_name: Optional[str] = None, store: Optional[DocumentStore] = None):
    """
    Flask 애플리케이션 팩토리 함수.

    :param config_name: 'development' | 'testing' | 'production'. 생략하면 FLASK_ENV를 사용합니다.
    :param store: 외부에서 만든 문서 저장소 (테스트에서 같은 저장소를 공유할 때 사용)
    """
    # =====================================================================================
    # 3. Flask 앱 생성 및 기본 설정
    # =====================================================================================
    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.json.ensure_ascii = False

    # =====================================================================================
    # 4. 확장 기능 및 외부 서비스 초기화
    # =====================================================================================
    JWTManager(app)

    uses_firestore = store is None and app.config.get('DOCUMENT_STORE') == 'firestore'
    if uses_firestore or app.config.get('FIREBASE_STORAGE_BUCKET'):
        _init_firebase(app)

    # =====================================================================================
    # 5. 서비스 인스턴스 생성 및 'app.services'에 저장 (의존성 주입)
    # =====================================================================================
    app.services = {}

    # 5-1. 다른 서비스의 기반이 되는 공용/핵심 서비스 먼저 생성
    app.services['store'] = store or _build_store(app)
    app.services['sequences'] = SequenceService(app.services['store'], app.config['SEQUENCE_MAX_ATTEMPTS'])
    app.services['idempotency'] = IdempotencyService(app.services['store'], app.config['IDEMPOTENCY_STALE_SECONDS'])

    storage_instance = StorageService()
    if app.config.get('FIREBASE_STORAGE_BUCKET'):
        try:
            storage_instance.init_app(app)
            logging.info("Storage service initialized successfully")
        except Exception as e:
            logging.error(f"Failed to initialize storage service: {e}")
            raise
    else:
        logging.warning("FIREBASE_STORAGE_BUCKET is not set; image uploads are disabled.")
    app.services['storage'] = storage_instance

    # 5-2. 다른 서비스를 주입받아야 하는 도메인 서비스 생성
    app.services['users'] = UserService(app.services['store'], app.services['sequences'])
    app.services['pets'] = PetService(
        store=app.services['store'],
        sequence_service=app.services['sequences'],
        user_service=app.services['users'],
        reconcile_on_read=app.config['RECONCILE_ON_READ']
    )

    # - 입양 신청/승인 도메인
    app.services['adoption_cascade'] = AdoptionCascade(app.services['store'])
    app.services['reconciliation'] = ReconciliationService(
        app.services['store'], app.services['adoption_cascade'], app.config['CLAIM_STALE_SECONDS']
    )
    app.services['pets'].reconciliation = app.services['reconciliation']
    app.services['applications'] = ApplicationService(
        store=app.services['store'],
        sequence_service=app.services['sequences'],
        idempotency_service=app.services['idempotency'],
        user_service=app.services['users'],
        pet_service=app.services['pets'],
        cascade=app.services['adoption_cascade'],
        claim_stale_seconds=app.config['CLAIM_STALE_SECONDS']
    )

    # - 결제 도메인
    app.services['payments'] = PaymentService(
        store=app.services['store'],
        sequence_service=app.services['sequences'],
        idempotency_service=app.services['idempotency'],
        user_service=app.services['users'],
        pet_service=app.services['pets'],
        application_service=app.services['applications'],
        storage_service=app.services['storage'],
        claim_stale_seconds=app.config['CLAIM_STALE_SECONDS']
    )
    logging.info("Adoption services initialized successfully")

    # =====================================================================================
    # 6. 블루프린트 등록
    # =====================================================================================
    app.register_blueprint(adoptions_bp, url_prefix='/api/adoptions')
    app.register_blueprint(payments_bp, url_prefix='/api/payments')
    app.register_blueprint(pets_bp, url_prefix='/api/pets')

    # =====================================================================================
    # 7. 전역 에러 핸들러 설정
    # =====================================================================================
    @app.errorhandler(AdoptionServiceError)
    def handle_domain_error(err: AdoptionServiceError):
        if err.status_code >= 500:
            logging.error(f"{type(err).__name__}: {err.message} {err.context}", exc_info=True)
            return error_response("An unexpected error occurred on the server.", err.error_code, err.status_code)
        logging.info(f"{type(err).__name__} ({err.error_code}): {err.message} {err.context}")
        return error_response(err.message, err.error_code, err.status_code)

    @app.errorhandler(SchemaValidationError)
    def handle_marshmallow_validation(err):
        return error_response("Invalid request data", "VALIDATION_ERROR", 400, details=err.messages)

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        error_code = (err.name or "HTTP_ERROR").upper().replace(' ', '_')
        return error_response(err.description or err.name, error_code, err.code or 500)

    @app.errorhandler(Exception)
    def handle_generic_exception(err):
        # 다른 핸들러에서 처리되지 않은 모든 예외를 여기서 처리
        logging.error(f"An unhandled exception occurred: {err}", exc_info=True)
        return error_response("An unexpected error occurred on the server.", "INTERNAL_SERVER_ERROR", 500)

    # =====================================================================================
    # 8. CLI 명령 및 백그라운드 정합성 복구
    # =====================================================================================
    @app.cli.command('reconcile-adoptions')
    @click.option('--pet-id', default=None, help='특정 반려동물만 점검합니다.')
    def reconcile_adoptions_command(pet_id):
        """입양 완료된 반려동물에 남은 신청서를 정리합니다."""
        reconciliation = app.services['reconciliation']
        result = reconciliation.reconcile_pet(pet_id) if pet_id else reconciliation.reconcile_all()
        click.echo(result)

    interval = app.config.get('RECONCILE_INTERVAL_SECONDS') or 0
    if interval > 0 and not app.testing:
        worker = ReconciliationWorker(app.services['reconciliation'], interval)
        worker.start()
        app.services['reconciliation_worker'] = worker

    # =====================================================================================
    # 9. 로깅 및 앱 반환
    # =====================================================================================
    if not app.debug:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]')

    logging.info(f"Flask app created for '{config_name}' environment.")

    return app
