from urllib.parse import parse_qs

import httpx
import pytest

from thankumail.core.config import settings
from thankumail.core.errors import PaymentFailed
from thankumail.core.payments import create_payment_intent


pytestmark = pytest.mark.anyio


@pytest.fixture(autouse=True)
def stripe_settings(monkeypatch):
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_123")
    monkeypatch.setattr(settings, "stripe_api_url", "https://payments.example.com/v1/payment_intents")
    monkeypatch.setattr(settings, "payment_currency", "usd")


async def test_creates_intent():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"id": "pi_1", "client_secret": "pi_1_secret"})

    intent = await create_payment_intent(
        2500, metadata={"source": "tests"}, transport=httpx.MockTransport(handler)
    )

    assert intent.id == "pi_1"
    assert intent.client_secret == "pi_1_secret"
    assert seen["auth"] == "Bearer sk_test_123"
    assert seen["form"]["amount"] == ["2500"]
    assert seen["form"]["currency"] == ["usd"]
    assert seen["form"]["metadata[source]"] == ["tests"]


async def test_provider_error_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(402, json={"error": {}}))
    with pytest.raises(PaymentFailed):
        await create_payment_intent(2500, transport=transport)


async def test_malformed_response():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"id": "pi_1"}))
    with pytest.raises(PaymentFailed):
        await create_payment_intent(2500, transport=transport)


async def test_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(PaymentFailed):
        await create_payment_intent(2500, transport=httpx.MockTransport(handler))
