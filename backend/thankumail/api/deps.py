from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from thankumail.core.config import settings
from thankumail.core.mailer import GiftNotifier, get_notifier
from thankumail.core.quota import QuotaStore, get_quota_store
from thankumail.db.session import get_db
from thankumail.services.gift_service import GiftService


DbSessionDep = Annotated[AsyncSession, Depends(get_db)]
QuotaStoreDep = Annotated[QuotaStore, Depends(get_quota_store)]
NotifierDep = Annotated[GiftNotifier, Depends(get_notifier)]


def get_base_url(request: Request) -> str:
    """Absolute origin for links in emails.

    PUBLIC_BASE_URL wins; otherwise rebuilt from proxy headers.
    """
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    proto = request.headers.get("X-Forwarded-Proto") or "https"
    host = request.headers.get("X-Forwarded-Host") or request.headers.get("Host") or ""
    return f"{proto}://{host}".rstrip("/")


async def get_gift_service(
    db: DbSessionDep,
    quota_store: QuotaStoreDep,
    notifier: NotifierDep,
) -> GiftService:
    return GiftService(db, quota_store, notifier)


GiftServiceDep = Annotated[GiftService, Depends(get_gift_service)]
