from urllib.parse import parse_qs

import httpx
import pytest

from thankumail.core.captcha import verify_captcha
from thankumail.core.config import settings
from thankumail.core.errors import CaptchaFailed


pytestmark = pytest.mark.anyio


@pytest.fixture(autouse=True)
def captcha_settings(monkeypatch):
    monkeypatch.setattr(settings, "captcha_secret", "shh")
    monkeypatch.setattr(settings, "captcha_verify_url", "https://captcha.example.com/siteverify")


def _transport(handler):
    return httpx.MockTransport(handler)


async def test_missing_token_rejected_without_network():
    def handler(request):
        raise AssertionError("provider must not be called")

    with pytest.raises(CaptchaFailed) as excinfo:
        await verify_captcha("  ", "1.2.3.4", transport=_transport(handler))
    assert excinfo.value.message == "CAPTCHA token is required"


async def test_successful_verification_sends_form():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"success": True})

    await verify_captcha("tok-123", "1.2.3.4", transport=_transport(handler))

    assert seen["url"] == "https://captcha.example.com/siteverify"
    assert seen["form"] == {"secret": ["shh"], "response": ["tok-123"], "remoteip": ["1.2.3.4"]}


async def test_unknown_ip_not_forwarded():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"success": True})

    await verify_captcha("tok", "unknown", transport=_transport(handler))
    assert "remoteip" not in seen["form"]


async def test_provider_rejection():
    def handler(request):
        return httpx.Response(200, json={"success": False, "error-codes": ["invalid-input-response"]})

    with pytest.raises(CaptchaFailed) as excinfo:
        await verify_captcha("bad", transport=_transport(handler))
    assert excinfo.value.field == "captchaToken"


async def test_timeout_is_a_failure():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(CaptchaFailed) as excinfo:
        await verify_captcha("tok", transport=_transport(handler))
    assert excinfo.value.message == "CAPTCHA verification timed out"


async def test_provider_error_is_a_failure():
    def handler(request):
        return httpx.Response(503, text="down")

    with pytest.raises(CaptchaFailed) as excinfo:
        await verify_captcha("tok", transport=_transport(handler))
    assert excinfo.value.message == "CAPTCHA verification unavailable"
