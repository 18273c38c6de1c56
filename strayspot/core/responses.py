# strayspot/core/responses.py
from typing import Any, Optional

from flask import jsonify


def success_response(data: Any = None, message: str = "OK", status_code: int = 200):
    """성공 응답 공통 형식: {"success": true, "message": ..., "data": ...}"""
    return jsonify({"success": True, "message": message, "data": data}), status_code


def error_response(message: str, error_code: str, status_code: int, details: Optional[Any] = None):
    """실패 응답 공통 형식: {"success": false, "error": ..., "error_code": ...}"""
    body = {"success": False, "error": message, "error_code": error_code}
    if details is not None:
        body["details"] = details
    return jsonify(body), status_code
