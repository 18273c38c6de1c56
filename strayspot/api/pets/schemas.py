# strayspot/api/pets/schemas.py
from marshmallow import Schema, fields, validate
from strayspot.models.pet import PetGender, PetStatus

# 단체가 직접 지정할 수 있는 상태 (adopted는 입양 승인으로만 설정됨)
EDITABLE_PET_STATUSES = [PetStatus.REHABILITATING.value, PetStatus.AVAILABLE.value]


class PetRegistrationSchema(Schema):
    """POST /api/pets/ 반려동물 등록 요청 스키마."""
    name = fields.Str(required=True, validate=validate.Length(min=1, max=50))
    species = fields.Str(required=True, validate=validate.Length(min=1, max=30))
    breed = fields.Str(load_default="", validate=validate.Length(max=50))
    gender = fields.Str(load_default=PetGender.UNKNOWN.value, validate=validate.OneOf([e.value for e in PetGender]))
    adoption_fee = fields.Float(required=True, validate=validate.Range(min=0))
    info = fields.Str(load_default="", validate=validate.Length(max=2000))
    status = fields.Str(load_default=PetStatus.REHABILITATING.value, validate=validate.OneOf(EDITABLE_PET_STATUSES))
    image_urls = fields.List(fields.URL(), load_default=list)
    tags = fields.List(fields.Str(validate=validate.Length(min=1, max=30)), load_default=list)


class PetUpdateSchema(Schema):
    """PATCH /api/pets/<pet_id> 정보 수정을 위한 스키마 (부분 업데이트용)."""
    name = fields.Str(validate=validate.Length(min=1, max=50))
    species = fields.Str(validate=validate.Length(min=1, max=30))
    breed = fields.Str(validate=validate.Length(max=50))
    gender = fields.Str(validate=validate.OneOf([e.value for e in PetGender]))
    adoption_fee = fields.Float(validate=validate.Range(min=0))
    info = fields.Str(validate=validate.Length(max=2000))
    # 'adopted'는 여기서 허용하되 서비스에서 PRECONDITION_FAILED로 거절
    status = fields.Str(validate=validate.OneOf([e.value for e in PetStatus]))
    image_urls = fields.List(fields.URL())
    tags = fields.List(fields.Str(validate=validate.Length(min=1, max=30)))


class PetResponseSchema(Schema):
    """반려동물 프로필 응답 스키마."""
    pet_id = fields.Str(dump_only=True)
    display_id = fields.Int(dump_only=True)
    organization_id = fields.Str(dump_only=True)
    name = fields.Str()
    species = fields.Str()
    breed = fields.Str()
    gender = fields.Str()
    adoption_fee = fields.Float()
    info = fields.Str()
    status = fields.Str()
    image_urls = fields.List(fields.Str())
    tags = fields.List(fields.Str())
    adopted_application_id = fields.Int(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()
