"""
API error envelope.

Every error response is {"success": false, "error": <message>} with optional
"code" and "details".
"""
from typing import Any, Optional

from fastapi import HTTPException

VALIDATION_ERROR = "VALIDATION_ERROR"


class ApiError(HTTPException):
    """HTTPException carrying a machine-readable code and details."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: Optional[str] = None,
        details: Any = None,
    ):
        super().__init__(status_code=status_code, detail=message)
        self.code = code
        self.details = details


def validation_error(message: str, details: Any = None) -> ApiError:
    return ApiError(400, message, code=VALIDATION_ERROR, details=details)


def error_body(exc: HTTPException) -> dict:
    body = {"success": False, "error": exc.detail}
    code = getattr(exc, "code", None)
    details = getattr(exc, "details", None)
    if code:
        body["code"] = code
    if details is not None:
        body["details"] = details
    return body


def field_errors(errors: list[dict]) -> list[dict]:
    """Flatten pydantic error dicts into {field, message} pairs."""
    flattened = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        flattened.append({
            "field": ".".join(loc) or None,
            "message": err.get("msg", "Invalid value"),
        })
    return flattened
