import logging

from fastapi import APIRouter, Depends, Request, status

from thankumail.api.deps import GiftServiceDep, get_base_url
from thankumail.core.audit import (
    audit_claim_rejected,
    audit_gift_claimed,
    audit_gift_created,
    audit_gift_rejected,
)
from thankumail.core.errors import GiftError
from thankumail.core.rate_limit import get_client_ip, limit_gift_claims, limit_gift_creation
from thankumail.schemas.gift import GiftClaimed, GiftCreate, GiftCreated, GiftPublic
from thankumail.services.gift_service import claim_path

logger = logging.getLogger("thankumail.routes.gifts")

router = APIRouter(prefix="/api/gifts", tags=["gifts"])


@router.post(
    "",
    response_model=GiftCreated,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_gift_creation)],
)
async def create_gift(
    payload: GiftCreate,
    request: Request,
    service: GiftServiceDep,
) -> GiftCreated:
    try:
        gift, intent = await service.create(
            payload,
            client_ip=get_client_ip(request),
            base_url=get_base_url(request),
        )
    except GiftError as exc:
        audit_gift_rejected(request, exc.__class__.__name__, payload.recipient_email)
        raise

    audit_gift_created(request, gift.public_id, gift.recipient_email, gift.amount)
    return GiftCreated(
        gift_id=gift.public_id,
        claim_link=claim_path(gift.public_id),
        payment_client_secret=intent.client_secret if intent else None,
    )


@router.get("/{public_id}", response_model=GiftPublic)
async def get_gift(public_id: str, service: GiftServiceDep) -> GiftPublic:
    gift = await service.get(public_id)
    return GiftPublic.model_validate(gift)


@router.post(
    "/{public_id}/claim",
    response_model=GiftClaimed,
    dependencies=[Depends(limit_gift_claims)],
)
async def claim_gift(public_id: str, request: Request, service: GiftServiceDep) -> GiftClaimed:
    try:
        gift = await service.claim(public_id)
    except GiftError as exc:
        audit_claim_rejected(request, public_id, exc.__class__.__name__)
        raise

    audit_gift_claimed(request, gift.public_id)
    return GiftClaimed(public_id=gift.public_id, claimed_at=gift.claimed_at)
