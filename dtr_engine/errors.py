from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class ValidationError(ApiError):
    """Malformed or inconsistent input; reported verbatim."""

    def __init__(self, message: str):
        super().__init__(status_code=422, code="VALIDATION_ERROR", message=message)


class AuthorizationError(ApiError):
    def __init__(self, message: str = "Insufficient permissions."):
        super().__init__(status_code=403, code="FORBIDDEN", message=message)


class NotFoundError(ApiError):
    def __init__(self, message: str):
        super().__init__(status_code=404, code="NOT_FOUND", message=message)


class InsufficientBalanceError(ApiError):
    """Desired leave usage exceeds the available balance."""

    def __init__(self, message: str = "Insufficient leave balance for the selected leave type."):
        super().__init__(status_code=409, code="INSUFFICIENT_BALANCE", message=message)


class LedgerInconsistencyError(ApiError):
    """The balance row disagrees with what the ledger says was used.

    Kept apart from InsufficientBalanceError so operators can tell
    "not enough leave left" from "the books don't add up".
    """

    def __init__(self, message: str):
        super().__init__(status_code=409, code="LEDGER_INCONSISTENCY", message=message)


class TransactionFailure(ApiError):
    def __init__(self, message: str):
        super().__init__(status_code=500, code="TRANSACTION_FAILED", message=message)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
