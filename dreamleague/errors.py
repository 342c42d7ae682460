"""
Application errors. Each carries an HTTP-like status code and a stable reason code;
the API turns them into {code, message} responses.
"""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class GatewayError(AppError):
    """Football data API failed (network, unexpected payload, exhausted retry)."""
    status_code = 502
    code = "FOOTBALL_API_ERROR"


class GatewayForbiddenError(GatewayError):
    """API key rejected. Not retryable."""
    code = "FOOTBALL_API_FORBIDDEN"


class JornadaLockedError(ForbiddenError):
    code = "JORNADA_BLOQUEADA"

    def __init__(self, league_id: str) -> None:
        super().__init__(f"Betting and squad changes are locked for league {league_id}")
