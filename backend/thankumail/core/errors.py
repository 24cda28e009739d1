"""Domain errors raised by the gift guards and lifecycle service.

Each error carries the HTTP status it maps to; ``thankumail.main`` turns them
into ``{"error": ..., "field": ...}`` JSON responses.
"""

from typing import Any

from fastapi import status


class GiftError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    message: str = "Request rejected"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    @property
    def headers(self) -> dict[str, str] | None:
        return None

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message}


class ValidationFailed(GiftError):
    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, "field": self.field}


class DisposableEmailRejected(ValidationFailed):
    def __init__(self) -> None:
        super().__init__("recipientEmail", "Disposable email addresses are not allowed")


class CaptchaFailed(ValidationFailed):
    def __init__(self, message: str = "CAPTCHA verification failed") -> None:
        super().__init__("captchaToken", message)


class _RetryLater(GiftError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str | None = None, retry_after: int | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message)

    @property
    def headers(self) -> dict[str, str] | None:
        if self.retry_after is None:
            return None
        return {"Retry-After": str(self.retry_after)}


class DailyLimitExceeded(_RetryLater):
    def __init__(self, scope: str, retry_after: int | None = None) -> None:
        self.scope = scope
        label = "this IP address" if scope == "ip" else "this recipient"
        super().__init__(f"Daily gift limit reached for {label}", retry_after)

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, "scope": self.scope}


class BurstLimitExceeded(_RetryLater):
    message = "Too many requests"


class ClaimTooEarly(_RetryLater):
    message = "This gift cannot be claimed yet"

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, "retryAfter": self.retry_after}


class GiftNotFound(GiftError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Gift not found"


class GiftAlreadyClaimed(GiftError):
    status_code = status.HTTP_409_CONFLICT
    message = "Gift already claimed"


class PaymentFailed(GiftError):
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Payment provider unavailable"


class GiftPersistenceError(GiftError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Could not save gift"
