# strayspot/services/storage_service.py
import uuid
import logging
from dataclasses import dataclass
from flask import Flask
from firebase_admin import storage

from strayspot.core.errors import InternalError, ValidationError

ALLOWED_IMAGE_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp'}


@dataclass(frozen=True)
class ImageUpload:
    """multipart 요청에서 읽어 들인 이미지 파일."""
    filename: str
    content_type: str
    data: bytes


class StorageService:
    """
    Firebase Storage 관련 로직을 담당하는 서비스 클래스입니다.
    결제 QR 코드와 입금 증빙 이미지를 업로드하고 공개 URL을 돌려줍니다.
    """

    def __init__(self):
        """
        클래스 인스턴스 생성 시 버킷을 None으로 초기화합니다.
        실제 버킷 객체는 init_app 메서드를 통해 주입됩니다.
        """
        self.bucket = None

    def init_app(self, app: Flask):
        """
        Flask 앱 초기화 과정에서 호출되어 Storage 버킷을 설정합니다.

        :param app: Flask 애플리케이션 객체
        """
        bucket_name = app.config.get('FIREBASE_STORAGE_BUCKET')
        if not bucket_name:
            raise ValueError("FIREBASE_STORAGE_BUCKET 설정이 .env 또는 설정 파일에 필요합니다.")

        self.bucket = storage.bucket(bucket_name)
        logging.info("StorageService: Firebase Storage 서비스가 성공적으로 초기화되었습니다.")

    @staticmethod
    def _folder_for(owner_id: str, upload_type: str) -> str:
        # 'upload_type'에 따라 파일이 저장될 폴더 경로를 매핑합니다.
        path_map = {
            "payment_qr": f"payments/qr/{owner_id}",
            "payment_proof": f"payments/proofs/{owner_id}",
        }
        folder_path = path_map.get(upload_type)
        if not folder_path:
            raise ValueError(f"'{upload_type}'은(는) 유효한 업로드 타입이 아닙니다.")
        return folder_path

    @staticmethod
    def validate_image(filename: str, content_type: str) -> str:
        """이미지 파일인지 확인하고 확장자를 반환합니다."""
        extension = filename.rsplit('.', 1)[-1].lower() if filename and '.' in filename else ''
        if not (content_type or '').startswith('image/') or extension not in ALLOWED_IMAGE_EXTENSIONS:
            raise ValidationError("Only image files are allowed", error_code="INVALID_IMAGE")
        return extension

    def upload_image(self, owner_id: str, upload_type: str, filename: str, content_type: str, data: bytes) -> str:
        """
        이미지를 업로드하고 공개 URL을 반환합니다.
        의존하는 문서 쓰기보다 먼저 호출되며, 이후 쓰기가 실패해 고아 파일이 남는 것은 허용합니다.

        :param owner_id: 업로드하는 사용자 ID (저장 경로에 사용)
        :param upload_type: "payment_qr" 또는 "payment_proof"
        :param filename: 원본 파일명 (확장자 파악에 사용)
        :param content_type: 파일의 MIME 타입 (예: "image/png")
        :param data: 파일 내용
        :return: 공개적으로 접근 가능한 URL
        """
        if not self.bucket:
            raise RuntimeError("StorageService가 초기화되지 않았습니다. init_app을 먼저 호출해주세요.")

        folder_path = self._folder_for(owner_id, upload_type)
        extension = self.validate_image(filename, content_type)
        destination_blob_name = f"{folder_path}/{uuid.uuid4()}.{extension}"

        blob = self.bucket.blob(destination_blob_name)
        try:
            blob.upload_from_string(data, content_type=content_type)
            blob.make_public()
        except Exception as e:
            logging.error(f"이미지 업로드 실패 ({destination_blob_name}): {e}", exc_info=True)
            raise InternalError("Image upload failed", error_code="UPLOAD_FAILED")

        logging.info(f"Image uploaded: {destination_blob_name}")
        return blob.public_url
