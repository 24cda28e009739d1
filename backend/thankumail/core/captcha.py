"""CAPTCHA verification against a siteverify endpoint (Turnstile / reCAPTCHA / hCaptcha)."""

import logging

import httpx

from thankumail.core.config import settings
from thankumail.core.errors import CaptchaFailed


logger = logging.getLogger("thankumail.captcha")


async def verify_captcha(
    token: str | None,
    remote_ip: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Raise CaptchaFailed unless the provider accepts ``token``.

    Timeouts and provider errors count as failures.
    """
    if not token or not token.strip():
        raise CaptchaFailed("CAPTCHA token is required")

    form = {"secret": settings.captcha_secret, "response": token.strip()}
    if remote_ip and remote_ip != "unknown":
        form["remoteip"] = remote_ip

    try:
        async with httpx.AsyncClient(
            timeout=settings.captcha_timeout_seconds,
            transport=transport,
        ) as client:
            response = await client.post(settings.captcha_verify_url, data=form)
        response.raise_for_status()
        payload = response.json()
    except httpx.TimeoutException:
        logger.warning("CAPTCHA verification timed out after %.1fs", settings.captcha_timeout_seconds)
        raise CaptchaFailed("CAPTCHA verification timed out") from None
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("CAPTCHA verification error: %s", exc)
        raise CaptchaFailed("CAPTCHA verification unavailable") from None

    if not isinstance(payload, dict) or payload.get("success") is not True:
        codes = payload.get("error-codes") if isinstance(payload, dict) else None
        logger.info("CAPTCHA rejected error_codes=%s", codes)
        raise CaptchaFailed()
