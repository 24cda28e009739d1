"""Pre-persistence checks for gift creation.

Run in this order: field bounds, disposable domain, CAPTCHA, daily quota.
Only the quota step has side effects, and it hands back a reservation that
the caller releases if the gift is not persisted.
"""

from dataclasses import dataclass
from datetime import datetime
import logging

from thankumail.core.captcha import verify_captcha
from thankumail.core.config import settings
from thankumail.core.disposable import is_disposable_email
from thankumail.core.errors import DailyLimitExceeded, DisposableEmailRejected, ValidationFailed
from thankumail.core.quota import QuotaStore, seconds_until_utc_midnight, utc_day
from thankumail.schemas.gift import GiftCreate


logger = logging.getLogger("thankumail.guards")


def validate_gift_fields(payload: GiftCreate) -> None:
    if not payload.message:
        raise ValidationFailed("message", "Message must not be empty")
    if len(payload.message) > settings.message_max_length:
        raise ValidationFailed(
            "message",
            f"Message must be at most {settings.message_max_length} characters",
        )
    if payload.amount < settings.min_amount_cents:
        raise ValidationFailed(
            "amount",
            f"Amount must be at least {settings.min_amount_cents} cents",
        )


def check_disposable(recipient_email: str) -> None:
    if not settings.block_disposable_emails:
        return
    if is_disposable_email(recipient_email):
        raise DisposableEmailRejected()


async def check_captcha(token: str | None, client_ip: str | None) -> None:
    if not settings.captcha_enforced:
        return
    await verify_captcha(token, client_ip)


@dataclass
class QuotaReservation:
    store: QuotaStore
    window_start: str
    keys: list[str]

    async def release(self) -> None:
        for key in self.keys:
            await self.store.release(key, self.window_start)
        self.keys = []


async def reserve_daily_quota(
    store: QuotaStore,
    client_ip: str,
    recipient_email: str,
    now: datetime | None = None,
) -> QuotaReservation:
    window = utc_day(now)
    ip_key = f"ip:{client_ip}"
    recipient_key = f"recipient:{recipient_email.strip().lower()}"

    decision = await store.increment_and_check(ip_key, settings.daily_ip_limit, window)
    if not decision.allowed:
        logger.info("Daily IP limit reached ip=%s count=%s", client_ip, decision.count)
        raise DailyLimitExceeded("ip", retry_after=seconds_until_utc_midnight(now))

    decision = await store.increment_and_check(recipient_key, settings.daily_recipient_limit, window)
    if not decision.allowed:
        await store.release(ip_key, window)
        logger.info("Daily recipient limit reached count=%s", decision.count)
        raise DailyLimitExceeded("recipient", retry_after=seconds_until_utc_midnight(now))

    return QuotaReservation(store=store, window_start=window, keys=[ip_key, recipient_key])
