from datetime import datetime
import logging
import secrets

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from thankumail.models.models import Gift


logger = logging.getLogger("thankumail.gift_store")

PUBLIC_ID_BYTES = 8
PUBLIC_ID_ATTEMPTS = 3


def new_public_id() -> str:
    return secrets.token_hex(PUBLIC_ID_BYTES)


class GiftStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(
        self,
        *,
        recipient_email: str,
        message: str,
        amount: int,
        payment_intent_id: str | None = None,
        public_id: str | None = None,
    ) -> Gift:
        """Insert an unclaimed gift, drawing a fresh public id on a unique collision."""
        attempt = 0
        while True:
            attempt += 1
            gift = Gift(
                public_id=public_id or new_public_id(),
                recipient_email=recipient_email,
                message=message,
                amount=amount,
                is_claimed=False,
                payment_intent_id=payment_intent_id,
            )
            self.db.add(gift)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                if public_id is not None or attempt >= PUBLIC_ID_ATTEMPTS:
                    raise
                logger.warning("public_id collision attempt=%s, retrying", attempt)
                continue
            return gift

    async def get_by_public_id(self, public_id: str) -> Gift | None:
        result = await self.db.execute(
            select(Gift)
            .where(Gift.public_id == public_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def mark_claimed(self, public_id: str, claimed_at: datetime) -> bool:
        """Flip is_claimed only if it is still false. True when this call won."""
        result = await self.db.execute(
            update(Gift)
            .where(Gift.public_id == public_id, Gift.is_claimed.is_(False))
            .values(is_claimed=True, claimed_at=claimed_at)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def count(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(Gift))
        return int(result.scalar_one())
