"""
Structured API Error Utilities

Provides the standard response envelopes for the reconciliation API.
Lets callers tell a rejected request apart from an engine failure.

Success Format:
{
    "success": true,
    "data": {...}
}

Error Format:
{
    "success": false,
    "error": {
        "code": "BAD_REQUEST",
        "message": "statement transactions must be an array, got dict",
        "details": {...}
    }
}
"""

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import status


class ErrorCode(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


_STATUS_CODES = {
    status.HTTP_400_BAD_REQUEST: ErrorCode.BAD_REQUEST,
    status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
    status.HTTP_403_FORBIDDEN: ErrorCode.FORBIDDEN,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED: ErrorCode.METHOD_NOT_ALLOWED,
    status.HTTP_503_SERVICE_UNAVAILABLE: ErrorCode.SERVICE_UNAVAILABLE,
}


def error_code_for_status(status_code: int) -> ErrorCode:
    """
    Map an HTTP status to an envelope error code.

    Unlisted 4xx statuses are reported as BAD_REQUEST, everything
    else as INTERNAL_SERVER_ERROR.
    """
    if status_code in _STATUS_CODES:
        return _STATUS_CODES[status_code]
    if 400 <= status_code < 500:
        return ErrorCode.BAD_REQUEST
    return ErrorCode.INTERNAL_SERVER_ERROR


def success_response(data: Any) -> dict:
    return {"success": True, "data": data}


def error_response(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None
) -> dict:
    """
    Create an error envelope.

    Args:
        code: Machine-readable error code
        message: Human-readable description
        details: Additional error details (omitted when empty)

    Returns:
        Structured error dict
    """
    error: Dict[str, Any] = {"code": code.value, "message": message}
    if details:
        error["details"] = details
    return {"success": False, "error": error}
