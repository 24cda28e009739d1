import logging
import time

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import select

from thankumail.api.deps import DbSessionDep, NotifierDep, get_base_url
from thankumail.core.config import settings
from thankumail.core.rate_limit import limiter

logger = logging.getLogger("thankumail.routes.status")

router = APIRouter(tags=["status"])

STARTED_AT = time.monotonic()


def _debug_allowed(token: str | None) -> bool:
    if not settings.is_production:
        return True
    if not settings.debug_routes_token:
        return False
    return token == settings.debug_routes_token


@router.get("/health")
@router.get("/api/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/db")
async def health_db(db: DbSessionDep):
    try:
        result = await db.execute(select(1))
        return {"status": "ok", "database": str(result.scalar())}
    except Exception:
        logger.exception("DB health check failed")
        return JSONResponse(status_code=500, content={"status": "error"})


@router.get("/api/admin/status")
async def admin_status() -> dict[str, object]:
    """Which settings are present (booleans only, never values)."""
    return {
        "ok": True,
        "environment": settings.environment,
        "config": {
            "PUBLIC_BASE_URL": bool(settings.public_base_url),
            "FROM_EMAIL": bool(settings.from_email),
            "BREVO_API_KEY": bool(settings.brevo_api_key),
            "CAPTCHA_SECRET": bool(settings.captcha_secret),
            "STRIPE_SECRET_KEY": bool(settings.stripe_secret_key),
        },
        "email": {"provider": "brevo", "configured": settings.email_configured},
        "guards": {
            "captcha_enforced": settings.captcha_enforced,
            "block_disposable_emails": settings.block_disposable_emails,
            "payments_enabled": settings.payments_enabled,
            "quota_backend": settings.quota_backend,
            "claim_cooldown_seconds": settings.claim_cooldown_seconds,
        },
        "rate_limiter": limiter.get_stats(),
        "uptime_sec": int(time.monotonic() - STARTED_AT),
    }


@router.get("/api/admin/email-test")
async def email_test(
    request: Request,
    notifier: NotifierDep,
    to: str = Query(default=""),
    token: str | None = Query(default=None),
) -> dict[str, object]:
    """Send a demo claim email to ``to`` and report the provider result."""
    if not _debug_allowed(token):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if "@" not in to:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A valid 'to' address is required")

    result = await notifier.send_gift_email(
        to,
        claim_link=f"{get_base_url(request)}/claim/demo-email-test",
        message="If you received this, email sending works.",
        amount_cents=settings.min_amount_cents,
    )
    logger.info("email_test ok=%s error=%s", result.ok, result.error)
    return {"ok": result.ok, "messageId": result.message_id, "error": result.error}
