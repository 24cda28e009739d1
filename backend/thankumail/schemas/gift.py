from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, StrictInt, field_validator


class GiftCreate(BaseModel):
    """Body of ``POST /api/gifts``. Bounds that depend on settings live in core.guards."""

    model_config = {"populate_by_name": True}

    recipient_email: EmailStr = Field(alias="recipientEmail")
    message: str
    amount: StrictInt
    captcha_token: str | None = Field(default=None, alias="captchaToken")

    @field_validator("recipient_email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("message")
    @classmethod
    def _message_strip(cls, value: str) -> str:
        return value.strip()


class GiftPublic(BaseModel):
    model_config = {"from_attributes": True}

    public_id: str = Field(serialization_alias="publicId")
    recipient_email: str = Field(serialization_alias="recipientEmail")
    message: str
    amount: int
    is_claimed: bool = Field(serialization_alias="isClaimed")
    created_at: datetime = Field(serialization_alias="createdAt")
    claimed_at: datetime | None = Field(default=None, serialization_alias="claimedAt")


class GiftCreated(BaseModel):
    success: bool = True
    gift_id: str = Field(serialization_alias="giftId")
    claim_link: str = Field(serialization_alias="claimLink")
    payment_client_secret: str | None = Field(default=None, serialization_alias="paymentClientSecret")


class GiftClaimed(BaseModel):
    success: bool = True
    public_id: str = Field(serialization_alias="publicId")
    claimed_at: datetime = Field(serialization_alias="claimedAt")


class ErrorResponse(BaseModel):
    error: str
    field: str | None = None
