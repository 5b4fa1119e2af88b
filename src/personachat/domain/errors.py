"""Failure taxonomy shared by the exchange pipeline and its clients."""

from __future__ import annotations

from typing import Optional


class ExchangeError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthorized(ExchangeError):
    status_code = 401


class NotFound(ExchangeError):
    """Project or session missing, or not owned by the caller."""

    status_code = 404


class ValidationFailed(ExchangeError):
    status_code = 400


class UpstreamError(ExchangeError):
    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class RateLimited(ExchangeError):
    status_code = 429

    def __init__(self, message: str, retry_after_seconds: int = 0) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds
