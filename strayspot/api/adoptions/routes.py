# strayspot/api/adoptions/routes.py
from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required

from strayspot.core.responses import success_response
from strayspot.core.security import current_actor
from strayspot.models.adoption_application import ApplicationStatus
from .schemas import (
    ApplicationCreateSchema,
    ApplicationListQuerySchema,
    ApplicationResponseSchema,
    ApplicationTransitionSchema
)

adoptions_bp = Blueprint('adoptions_bp', __name__)

IDEMPOTENCY_HEADER = 'Idempotency-Key'


def _dump(application):
    return ApplicationResponseSchema().dump(application.to_dict())


@adoptions_bp.route('/', methods=['POST'])
@jwt_required()
def submit_application():
    """[입양자 전용] 입양 신청서를 제출합니다."""
    application_service = current_app.services['applications']
    form = ApplicationCreateSchema().load(request.get_json(silent=True) or {})
    pet_id = form.pop('pet_id')
    application = application_service.submit(
        current_actor(), pet_id, form, idempotency_key=request.headers.get(IDEMPOTENCY_HEADER)
    )
    return success_response(_dump(application), "Adoption application submitted successfully", 201)


@adoptions_bp.route('/adopter', methods=['GET'])
@jwt_required()
def list_my_applications():
    """[입양자 전용] 내가 제출한 신청서 목록 (최신순)."""
    applications = current_app.services['applications'].list_for_adopter(current_actor())
    return success_response([_dump(a) for a in applications], "Applications retrieved successfully")


@adoptions_bp.route('/organization', methods=['GET'])
@jwt_required()
def list_organization_applications():
    """[인증된 단체 전용] 단체가 받은 신청서 목록 (최신순)."""
    query = ApplicationListQuerySchema().load(request.args)
    status = ApplicationStatus(query['status']) if query.get('status') else None
    applications = current_app.services['applications'].list_for_organization(current_actor(), status)
    return success_response([_dump(a) for a in applications], "Applications retrieved successfully")


@adoptions_bp.route('/<int:application_id>', methods=['GET'])
@jwt_required()
def get_application(application_id: int):
    application = current_app.services['applications'].get(application_id, current_actor())
    return success_response(_dump(application), "Application retrieved successfully")


@adoptions_bp.route('/<int:application_id>', methods=['PUT'])
@jwt_required()
def transition_application(application_id: int):
    """[소유 단체 전용] 신청서 심사 상태를 변경합니다. approved는 입양 확정까지 함께 처리합니다."""
    data = ApplicationTransitionSchema().load(request.get_json(silent=True) or {})
    expected = ApplicationStatus(data['expected_status']) if data.get('expected_status') else None
    application = current_app.services['applications'].transition(
        application_id,
        ApplicationStatus(data['status']),
        current_actor(),
        notes=data.get('organization_notes'),
        rejection_reason=data.get('rejection_reason'),
        expected_status=expected
    )
    return success_response(_dump(application), f"Application {application.status.value} successfully")


@adoptions_bp.route('/<int:application_id>/withdraw', methods=['PUT'])
@jwt_required()
def withdraw_application(application_id: int):
    """[입양자 전용] 심사 중인 신청서를 철회합니다."""
    application = current_app.services['applications'].withdraw(application_id, current_actor())
    return success_response(_dump(application), "Application withdrawn successfully")


@adoptions_bp.route('/<int:application_id>/delete', methods=['DELETE'])
@jwt_required()
def delete_application(application_id: int):
    """[소유 단체 전용] 거절된 신청서를 삭제합니다."""
    current_app.services['applications'].delete(application_id, current_actor())
    return success_response(message="Application deleted successfully")
