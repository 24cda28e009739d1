"""Stripe payment-intent creation for gift amounts."""

from dataclasses import dataclass
import logging

import httpx

from thankumail.core.config import settings
from thankumail.core.errors import PaymentFailed


logger = logging.getLogger("thankumail.payments")


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str


async def create_payment_intent(
    amount_cents: int,
    metadata: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PaymentIntent:
    form: dict[str, str | int] = {
        "amount": amount_cents,
        "currency": settings.payment_currency,
        "automatic_payment_methods[enabled]": "true",
    }
    for key, value in (metadata or {}).items():
        form[f"metadata[{key}]"] = value

    try:
        async with httpx.AsyncClient(
            timeout=settings.payment_timeout_seconds,
            transport=transport,
        ) as client:
            response = await client.post(
                settings.stripe_api_url,
                data=form,
                headers={"Authorization": f"Bearer {settings.stripe_secret_key}"},
            )
    except httpx.HTTPError as exc:
        logger.error("Payment intent request failed amount=%s error=%s", amount_cents, exc)
        raise PaymentFailed() from None

    if response.status_code >= 400:
        logger.error(
            "Payment intent rejected amount=%s status=%s body=%s",
            amount_cents,
            response.status_code,
            response.text[:300],
        )
        raise PaymentFailed()

    try:
        data = response.json()
        intent = PaymentIntent(id=str(data["id"]), client_secret=str(data["client_secret"]))
    except (ValueError, KeyError, TypeError):
        logger.error("Payment intent response malformed status=%s", response.status_code)
        raise PaymentFailed() from None

    logger.info("Payment intent created id=%s amount=%s", intent.id, amount_cents)
    return intent
