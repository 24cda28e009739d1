"""Gift lifecycle: create, read and the single claim transition."""

from datetime import datetime, timedelta, timezone
import logging
import math

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from thankumail.core.config import settings
from thankumail.core.errors import ClaimTooEarly, GiftAlreadyClaimed, GiftNotFound, GiftPersistenceError
from thankumail.core.guards import check_captcha, check_disposable, reserve_daily_quota, validate_gift_fields
from thankumail.core.mailer import GiftNotifier
from thankumail.core.payments import PaymentIntent, create_payment_intent
from thankumail.core.quota import QuotaStore
from thankumail.models.models import Gift
from thankumail.schemas.gift import GiftCreate
from thankumail.services.gift_store import GiftStore


logger = logging.getLogger("thankumail.gifts")


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def claim_path(public_id: str) -> str:
    return f"/claim/{public_id}"


class GiftService:
    def __init__(self, db: AsyncSession, quota_store: QuotaStore, notifier: GiftNotifier) -> None:
        self.store = GiftStore(db)
        self.quota_store = quota_store
        self.notifier = notifier

    async def create(
        self,
        payload: GiftCreate,
        client_ip: str,
        base_url: str,
    ) -> tuple[Gift, PaymentIntent | None]:
        validate_gift_fields(payload)
        check_disposable(payload.recipient_email)
        await check_captcha(payload.captcha_token, client_ip)
        reservation = await reserve_daily_quota(self.quota_store, client_ip, payload.recipient_email)

        intent: PaymentIntent | None = None
        try:
            if settings.payments_enabled:
                intent = await create_payment_intent(
                    payload.amount,
                    metadata={"source": "thankumail"},
                )
            gift = await self.store.create(
                recipient_email=payload.recipient_email,
                message=payload.message,
                amount=payload.amount,
                payment_intent_id=intent.id if intent else None,
            )
        except SQLAlchemyError:
            await reservation.release()
            logger.exception("Gift insert failed amount=%s", payload.amount)
            raise GiftPersistenceError() from None
        except Exception:
            await reservation.release()
            raise

        logger.info("Gift created public_id=%s amount=%s", gift.public_id, gift.amount)

        claim_url = f"{base_url.rstrip('/')}{claim_path(gift.public_id)}"
        try:
            self.notifier.dispatch(
                gift.public_id,
                gift.recipient_email,
                claim_url,
                gift.message,
                gift.amount,
            )
        except Exception:
            logger.exception("email_dispatch_failed public_id=%s", gift.public_id)

        return gift, intent

    async def get(self, public_id: str) -> Gift:
        gift = await self.store.get_by_public_id(public_id)
        if gift is None:
            raise GiftNotFound()
        return gift

    async def claim(self, public_id: str, now: datetime | None = None) -> Gift:
        now = now or datetime.now(timezone.utc)
        gift = await self.get(public_id)
        if gift.is_claimed:
            raise GiftAlreadyClaimed()

        if settings.claim_cooldown_seconds > 0:
            ready_at = _as_utc(gift.created_at) + timedelta(seconds=settings.claim_cooldown_seconds)
            if now < ready_at:
                retry_after = max(1, math.ceil((ready_at - now).total_seconds()))
                raise ClaimTooEarly(retry_after=retry_after)

        if not await self.store.mark_claimed(public_id, now):
            if await self.store.get_by_public_id(public_id) is None:
                raise GiftNotFound()
            raise GiftAlreadyClaimed()

        logger.info("Gift claimed public_id=%s", public_id)
        return await self.get(public_id)
