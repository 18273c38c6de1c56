# strayspot/api/payments/schemas.py
from marshmallow import Schema, fields, validate
from strayspot.models.payment import PaymentStatus


class PaymentSetupFormSchema(Schema):
    """POST /api/payments/setup multipart 폼 필드. QR 이미지는 'qr_image' 파일로 받습니다."""
    application_id = fields.Int(required=True, validate=validate.Range(min=1))
    payment_instructions = fields.Str(load_default="", validate=validate.Length(max=2000))


class ProofSubmitFormSchema(Schema):
    """POST /api/payments/submit multipart 폼 필드. 증빙 이미지는 'proof_image' 파일로 받습니다."""
    payment_id = fields.Int(required=True, validate=validate.Range(min=1))
    transaction_id = fields.Str(required=True, validate=validate.Length(min=1, max=100))


class PaymentVerifySchema(Schema):
    """PUT /api/payments/verify 요청 스키마."""
    payment_id = fields.Int(required=True, validate=validate.Range(min=1))
    status = fields.Str(
        required=True,
        validate=validate.OneOf([PaymentStatus.VERIFIED.value, PaymentStatus.REJECTED.value])
    )
    notes = fields.Str(load_default="", allow_none=True, validate=validate.Length(max=2000))


class PaymentCheckQuerySchema(Schema):
    """GET /api/payments/check 쿼리 파라미터."""
    application_id = fields.Int(required=True, validate=validate.Range(min=1))


class PaymentResponseSchema(Schema):
    payment_id = fields.Int(dump_only=True)
    application_id = fields.Int()
    pet_id = fields.Str()
    adopter_id = fields.Str()
    organization_id = fields.Str()
    amount = fields.Float()
    qr_image = fields.Str()
    status = fields.Str()
    payment_instructions = fields.Str()
    proof_of_transaction = fields.Str(allow_none=True)
    transaction_id = fields.Str(allow_none=True)
    organization_notes = fields.Str()
    verified_by = fields.Str(allow_none=True)
    date_created = fields.DateTime()
    date_submitted = fields.DateTime(allow_none=True)
    date_verified = fields.DateTime(allow_none=True)
    updated_at = fields.DateTime()
