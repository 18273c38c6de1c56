# strayspot/api/pets/routes.py
from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required

from strayspot.core.responses import success_response
from strayspot.core.security import current_actor
from .schemas import PetRegistrationSchema, PetUpdateSchema, PetResponseSchema

pets_bp = Blueprint('pets_bp', __name__)

# 도메인 예외와 marshmallow ValidationError는 create_app()의 전역 에러 핸들러가 응답으로 변환합니다.


@pets_bp.route('/', methods=['POST'])
@jwt_required()
def register_pet():
    """[인증된 단체 전용] 입양 대상 반려동물을 등록합니다."""
    pet_service = current_app.services['pets']
    validated_data = PetRegistrationSchema().load(request.get_json(silent=True) or {})
    new_pet = pet_service.register_pet(current_actor(), validated_data)
    return success_response(PetResponseSchema().dump(new_pet.to_dict()), "Pet registered successfully", 201)


@pets_bp.route('/<string:pet_id>', methods=['GET'])
@jwt_required()
def get_pet(pet_id: str):
    """반려동물 프로필을 조회합니다."""
    pet = current_app.services['pets'].get_pet(pet_id)
    return success_response(PetResponseSchema().dump(pet.to_dict()), "Pet retrieved successfully")


@pets_bp.route('/<string:pet_id>', methods=['PATCH'])
@jwt_required()
def update_pet(pet_id: str):
    """[소유 단체 전용] 반려동물 정보를 부분 수정합니다."""
    pet_service = current_app.services['pets']
    update_data = PetUpdateSchema().load(request.get_json(silent=True) or {})
    updated_pet = pet_service.update_pet(current_actor(), pet_id, update_data)
    return success_response(PetResponseSchema().dump(updated_pet.to_dict()), "Pet updated successfully")
