# strayspot/api/adoptions/schemas.py
from marshmallow import Schema, fields, validate
from strayspot.models.adoption_application import ApplicationStatus, HousingStatus

YES_NO = ["yes", "no"]


class ReferenceSchema(Schema):
    """신청서의 추천인 정보."""
    name = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    email = fields.Email(required=True)
    phone = fields.Str(required=True, validate=validate.Length(min=5, max=30))


class ApplicationCreateSchema(Schema):
    """POST /api/adoptions/ 입양 신청서 제출 요청 스키마."""
    pet_id = fields.Str(required=True, error_messages={"required": "pet_id is required."})
    housing_status = fields.Str(required=True, validate=validate.OneOf([e.value for e in HousingStatus]))
    pets_allowed = fields.Str(required=True, validate=validate.OneOf(YES_NO))
    pet_location = fields.Str(required=True, validate=validate.Length(min=1, max=500))
    primary_caregiver = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    other_pets = fields.Str(required=True, validate=validate.OneOf(YES_NO))
    financially_prepared = fields.Str(required=True, validate=validate.OneOf(YES_NO))
    emergency_pet_care = fields.Str(required=True, validate=validate.Length(min=1, max=500))
    reference = fields.Nested(ReferenceSchema, required=True)
    terms_accepted = fields.Bool(
        required=True,
        validate=validate.Equal(True, error="You must accept the terms and conditions.")
    )


class ApplicationTransitionSchema(Schema):
    """PUT /api/adoptions/<application_id> 심사 상태 변경 요청 스키마."""
    status = fields.Str(required=True, validate=validate.OneOf([e.value for e in ApplicationStatus]))
    organization_notes = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=2000))
    rejection_reason = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=1000))
    # 클라이언트가 마지막으로 본 상태. 생략하면 서버가 읽은 현재 상태를 기준으로 합니다.
    expected_status = fields.Str(load_default=None, allow_none=True,
                                 validate=validate.OneOf([e.value for e in ApplicationStatus]))


class ApplicationListQuerySchema(Schema):
    """GET /api/adoptions/organization 쿼리 파라미터."""
    status = fields.Str(load_default=None, validate=validate.OneOf([e.value for e in ApplicationStatus]))


class ApplicationResponseSchema(Schema):
    """입양 신청서 응답 스키마."""
    application_id = fields.Int(dump_only=True)
    adopter_id = fields.Str()
    pet_id = fields.Str()
    organization_id = fields.Str()
    status = fields.Str()
    housing_status = fields.Str()
    pets_allowed = fields.Str()
    pet_location = fields.Str()
    primary_caregiver = fields.Str()
    other_pets = fields.Str()
    financially_prepared = fields.Str()
    emergency_pet_care = fields.Str()
    reference = fields.Nested(ReferenceSchema)
    terms_accepted = fields.Bool()
    organization_notes = fields.Str()
    reviewed_by = fields.Str()
    rejection_reason = fields.Str()
    payment_id = fields.Int(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()
