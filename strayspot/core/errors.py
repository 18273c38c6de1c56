# strayspot/core/errors.py
"""
입양 신청/결제 워크플로우 전역에서 사용하는 예외 계층.

서비스 계층은 아래 예외를 raise 하기만 하고, HTTP 응답 변환은
create_app()에 등록된 전역 에러 핸들러가 담당합니다.

    AdoptionServiceError (base)
    ├── ValidationError          → 400
    ├── PreconditionFailedError  → 400
    ├── AuthorizationError       → 403
    ├── NotFoundError            → 404
    ├── ConflictError            → 409
    └── InternalError            → 500
        └── StoreError
            ├── TransientStoreError
            └── DuplicateDocumentError
"""
from typing import Any, Dict, Optional


class AdoptionServiceError(Exception):
    """모든 도메인 예외의 기반 클래스. message는 클라이언트에 그대로 노출됩니다."""
    status_code = 500
    error_code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        self.message = message
        if error_code:
            self.error_code = error_code
        # context는 로그에만 남기고 응답에는 포함하지 않음
        self.context = context or {}
        super().__init__(message)


class ValidationError(AdoptionServiceError):
    status_code = 400
    error_code = "VALIDATION_ERROR"


class PreconditionFailedError(AdoptionServiceError):
    """요청 형식은 올바르지만 현재 리소스 상태에서는 수행할 수 없는 경우."""
    status_code = 400
    error_code = "PRECONDITION_FAILED"


class AuthorizationError(AdoptionServiceError):
    status_code = 403
    error_code = "FORBIDDEN"


class NotFoundError(AdoptionServiceError):
    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: Any = None, context: Optional[Dict[str, Any]] = None):
        message = f"{resource} not found"
        ctx = dict(context or {})
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = resource_id
        super().__init__(message, error_code=f"{resource.upper().replace(' ', '_')}_NOT_FOUND", context=ctx)


class ConflictError(AdoptionServiceError):
    """
    동시 요청과의 경합에서 진 경우, 혹은 중복 생성 시도.
    클라이언트는 현재 상태를 다시 조회한 뒤 필요하면 재시도할 수 있습니다.
    """
    status_code = 409
    error_code = "CONFLICT"


class InternalError(AdoptionServiceError):
    status_code = 500
    error_code = "INTERNAL_SERVER_ERROR"


class StoreError(InternalError):
    """문서 저장소 호출 실패."""
    error_code = "STORE_ERROR"


class TransientStoreError(StoreError):
    """재시도하면 성공할 수 있는 일시적 저장소 오류 (타임아웃, 경합으로 인한 abort 등)."""
    error_code = "STORE_UNAVAILABLE"


class DuplicateDocumentError(StoreError):
    """create 시 같은 문서 ID가 이미 존재함."""
    error_code = "DUPLICATE_DOCUMENT"
