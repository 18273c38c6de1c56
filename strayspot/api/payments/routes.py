# strayspot/api/payments/routes.py
from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required

from strayspot.core.errors import ValidationError
from strayspot.core.responses import success_response
from strayspot.core.security import current_actor
from strayspot.models.payment import PaymentStatus
from strayspot.services.storage_service import ImageUpload
from .schemas import (
    PaymentCheckQuerySchema,
    PaymentResponseSchema,
    PaymentSetupFormSchema,
    PaymentVerifySchema,
    ProofSubmitFormSchema
)

payments_bp = Blueprint('payments_bp', __name__)

IDEMPOTENCY_HEADER = 'Idempotency-Key'


def _dump(payment):
    return PaymentResponseSchema().dump(payment.to_dict())


def _image_from_request(field_name: str) -> ImageUpload:
    """multipart 요청에서 이미지 파일을 꺼냅니다."""
    file = request.files.get(field_name)
    if not file or not file.filename:
        raise ValidationError(f"'{field_name}' image file is required", error_code="FILE_REQUIRED")
    return ImageUpload(filename=file.filename, content_type=file.mimetype or "", data=file.read())


@payments_bp.route('/setup', methods=['POST'])
@jwt_required()
def setup_payment():
    """[소유 단체 전용] 승인된 신청서에 결제 QR 코드와 안내문을 등록합니다."""
    form = PaymentSetupFormSchema().load(request.form)
    payment = current_app.services['payments'].setup(
        form['application_id'],
        _image_from_request('qr_image'),
        form['payment_instructions'],
        current_actor(),
        idempotency_key=request.headers.get(IDEMPOTENCY_HEADER)
    )
    return success_response(_dump(payment), "Payment setup successfully", 201)


@payments_bp.route('/submit', methods=['POST'])
@jwt_required()
def submit_payment_proof():
    """[입양자 전용] 송금 증빙 이미지와 거래 번호를 제출합니다."""
    form = ProofSubmitFormSchema().load(request.form)
    payment = current_app.services['payments'].submit_proof(
        form['payment_id'], _image_from_request('proof_image'), form['transaction_id'], current_actor()
    )
    return success_response(_dump(payment), "Payment proof submitted successfully")


@payments_bp.route('/verify', methods=['PUT'])
@jwt_required()
def verify_payment():
    """[소유 단체 전용] 제출된 결제를 확인(verified) 또는 거절(rejected)합니다."""
    data = PaymentVerifySchema().load(request.get_json(silent=True) or {})
    payment = current_app.services['payments'].verify(
        data['payment_id'], PaymentStatus(data['status']), data.get('notes'), current_actor()
    )
    return success_response(_dump(payment), f"Payment {payment.status.value} successfully")


@payments_bp.route('/check', methods=['GET'])
@jwt_required()
def check_payment():
    """신청서에 연결된 현재 결제를 조회합니다. 없으면 data는 null입니다."""
    query = PaymentCheckQuerySchema().load(request.args)
    payment = current_app.services['payments'].check_for_application(query['application_id'], current_actor())
    if payment is None:
        return success_response(None, "No payment has been set up for this application")
    return success_response(_dump(payment), "Payment retrieved successfully")


@payments_bp.route('/', methods=['GET'])
@jwt_required()
def list_payments():
    payments = current_app.services['payments'].list_for_actor(current_actor())
    return success_response([_dump(p) for p in payments], "Payments retrieved successfully")


@payments_bp.route('/<int:payment_id>', methods=['GET'])
@jwt_required()
def get_payment(payment_id: int):
    payment = current_app.services['payments'].get(payment_id, current_actor())
    return success_response(_dump(payment), "Payment retrieved successfully")
