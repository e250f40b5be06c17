"""매칭 / 클레임 점수화 에러 정의.

각 에러는 고정 ``code`` 문자열을 가지며 API 계층에서
``HTTPException(status_code, detail=code)`` 로 변환.
"""
from __future__ import annotations


class LostFoundError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str = "", code: str | None = None):
        super().__init__(message or code or self.code)
        if code:
            self.code = code


class NotFoundError(LostFoundError):
    code = "not_found"
    status_code = 404


class InvalidInputError(LostFoundError):
    code = "invalid_input"
    status_code = 400


class ExternalServiceUnavailable(LostFoundError):
    """추론 호출 실패/타임아웃. 클라이언트는 로그만 남기고 degrade."""
    code = "service_degraded"
    status_code = 503


class RateLimitedError(LostFoundError):
    code = "rate_limited"
    status_code = 429
