"""Audit logging for gift operations and abuse rejections."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi import Request

from thankumail.core.rate_limit import get_client_ip


logger = logging.getLogger("thankumail.audit")

SENSITIVE_KEYS = {"password", "token", "secret", "key", "authorization", "captcha_token", "client_secret"}


class AuditAction(str, Enum):
    """Audit action types."""
    GIFT_CREATE = "gift_create"
    GIFT_CREATE_REJECTED = "gift_create_rejected"
    GIFT_CLAIM = "gift_claim"
    GIFT_CLAIM_REJECTED = "gift_claim_rejected"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"


def mask_email(email: str | None) -> str | None:
    """jane.doe@example.com -> j***@example.com"""
    if not email:
        return email
    local, sep, domain = email.rpartition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


def _sanitize(details: dict[str, Any]) -> dict[str, Any]:
    clean: dict[str, Any] = {}
    for key, value in details.items():
        if key in SENSITIVE_KEYS:
            clean[key] = "***REDACTED***"
        elif key == "recipient_email":
            clean[key] = mask_email(value)
        else:
            clean[key] = value
    return clean


def audit_log(
    action: AuditAction,
    request: Request | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Emit one audit event; rejections log at WARNING."""
    event: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action.value,
        "success": success,
    }
    if request is not None:
        event.update(
            ip=get_client_ip(request),
            user_agent=request.headers.get("User-Agent", "")[:200],
            request_id=request.headers.get("X-Request-Id", ""),
        )
    if details:
        event["details"] = _sanitize(details)

    logger.log(logging.INFO if success else logging.WARNING, "AUDIT: %s", event)


def audit_gift_created(request: Request | None, public_id: str, recipient_email: str, amount: int) -> None:
    audit_log(
        AuditAction.GIFT_CREATE,
        request=request,
        details={"public_id": public_id, "recipient_email": recipient_email, "amount": amount},
    )


def audit_gift_rejected(request: Request | None, reason: str, recipient_email: str | None = None) -> None:
    audit_log(
        AuditAction.GIFT_CREATE_REJECTED,
        request=request,
        details={"reason": reason, "recipient_email": recipient_email},
        success=False,
    )


def audit_gift_claimed(request: Request | None, public_id: str) -> None:
    audit_log(AuditAction.GIFT_CLAIM, request=request, details={"public_id": public_id})


def audit_claim_rejected(request: Request | None, public_id: str, reason: str) -> None:
    audit_log(
        AuditAction.GIFT_CLAIM_REJECTED,
        request=request,
        details={"public_id": public_id, "reason": reason},
        success=False,
    )


def audit_rate_limit_exceeded(request: Request, endpoint: str, retry_after: int | None) -> None:
    audit_log(
        AuditAction.RATE_LIMIT_EXCEEDED,
        request=request,
        details={"endpoint": endpoint, "retry_after": retry_after},
        success=False,
    )
