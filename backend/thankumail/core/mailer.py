"""
Claim-link email delivery through the Brevo transactional email API.

Sends never raise: every outcome is reported as a SendResult. ``dispatch``
schedules the send as a background task so the HTTP response never waits on
the provider.
"""
import asyncio
from dataclasses import dataclass
import html
import logging
from typing import Any, Optional

from email_validator import EmailNotValidError, validate_email
import httpx

from thankumail.core.config import settings

logger = logging.getLogger("thankumail.mailer")

GIFT_EMAIL_SUBJECT = "You have a gift waiting 🎁"

RETRYABLE_STATUS = {429, 500, 502, 503, 504}

_background_tasks: set[asyncio.Task] = set()


@dataclass(frozen=True)
class SendResult:
    ok: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def format_amount(amount_cents: int) -> str:
    """1500 -> '$15.00'."""
    return f"${amount_cents // 100:,}.{amount_cents % 100:02d}"


def _get_base_html_template(title: str, content_html: str, button_text: Optional[str] = None, button_link: Optional[str] = None) -> str:
    """
    Base HTML layout for ThankuMail emails.

    ``content_html`` is inserted verbatim; callers escape any user text in it.
    """
    safe_title = html.escape(title)

    button_html = ""
    if button_text and button_link:
        safe_button_text = html.escape(button_text)
        safe_button_link = html.escape(button_link, quote=True)
        button_html = f'''
        <div style="text-align: center; margin: 30px 0;">
            <a href="{safe_button_link}" style="display: inline-block; padding: 14px 28px; background-color: #6366f1; color: #ffffff; text-decoration: none; border-radius: 8px; font-weight: 600; font-size: 16px;">
                {safe_button_text}
            </a>
        </div>'''

    return f'''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{safe_title}</title>
</head>
<body style="margin: 0; padding: 0; background-color: #f3f4f6; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;">
    <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width: 600px; margin: 0 auto; padding: 20px;">
        <tr>
            <td style="background-color: #ffffff; border-radius: 16px; padding: 40px; box-shadow: 0 4px 6px -1px rgba(0, 0, 0, 0.1);">
                <div style="text-align: center; margin-bottom: 30px;">
                    <h1 style="margin: 0; font-size: 28px; color: #6366f1; font-weight: 700;">
                        🎁 ThanküMail
                    </h1>
                </div>

                <h2 style="margin: 0 0 20px 0; font-size: 22px; color: #1f2937; text-align: center;">
                    {safe_title}
                </h2>

                <div style="color: #4b5563; font-size: 16px; line-height: 1.6;">
                    {content_html}
                </div>

                {button_html}

                <div style="margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; text-align: center;">
                    <p style="margin: 0; color: #9ca3af; font-size: 14px;">
                        This is an automated message from ThanküMail
                    </p>
                    <p style="margin: 10px 0 0 0; color: #9ca3af; font-size: 12px;">
                        The claim link works once. If you were not expecting a gift, you can ignore this email.
                    </p>
                </div>
            </td>
        </tr>
    </table>
</body>
</html>'''


def build_gift_email(claim_link: str, message: str, amount_cents: int) -> tuple[str, str, str]:
    """Return (subject, text_body, html_body) for a claim-link email."""
    amount = format_amount(amount_cents)

    text_body = f"You received an anonymous gift of {amount}.\n\n"
    if message:
        text_body += f'Message:\n"{message}"\n\n'
    text_body += f"Claim it here:\n{claim_link}"

    message_html = ""
    if message:
        safe_message = html.escape(message).replace("\n", "<br>")
        message_html = f'''
    <div style="background-color: #f9fafb; border-radius: 12px; padding: 20px; margin: 20px 0;">
        <p style="margin: 0 0 8px 0; color: #6b7280; font-size: 14px;">Message:</p>
        <p style="margin: 0; font-size: 16px; color: #1f2937;">{safe_message}</p>
    </div>'''

    html_content = f'''
    <p style="text-align: center; font-size: 18px; color: #1f2937; margin-bottom: 8px;">
        Someone sent you a gift of
    </p>
    <p style="text-align: center; margin: 0 0 24px 0; font-size: 32px; font-weight: 700; color: #10b981;">{amount}</p>
    {message_html}
    '''

    html_body = _get_base_html_template(
        title="You received a gift",
        content_html=html_content,
        button_text="Claim your gift",
        button_link=claim_link,
    )
    return GIFT_EMAIL_SUBJECT, text_body, html_body


def build_gift_payload(to_email: str, claim_link: str, message: str, amount_cents: int) -> dict[str, Any]:
    subject, text_body, html_body = build_gift_email(claim_link, message, amount_cents)
    return {
        "sender": {"name": settings.from_name, "email": settings.from_email},
        "to": [{"email": to_email}],
        "subject": subject,
        "textContent": text_body,
        "htmlContent": html_body,
    }


class GiftNotifier:
    """Sends claim-link emails; tests swap it out through ``get_notifier``."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    async def _post_once(self, payload: dict[str, Any]) -> tuple[SendResult, bool]:
        """One delivery attempt. Returns (result, retryable)."""
        headers = {"api-key": settings.brevo_api_key, "accept": "application/json"}
        try:
            async with httpx.AsyncClient(
                timeout=settings.email_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(settings.brevo_api_url, json=payload, headers=headers)
        except httpx.TimeoutException:
            return SendResult(ok=False, error="timeout"), True
        except httpx.HTTPError as exc:
            return SendResult(ok=False, error=f"transport_error: {exc.__class__.__name__}"), True

        if response.is_success:
            try:
                message_id = response.json().get("messageId")
            except ValueError:
                message_id = None
            return SendResult(ok=True, message_id=message_id), False

        status = response.status_code
        return SendResult(ok=False, error=f"provider_status_{status}"), status in RETRYABLE_STATUS

    async def send_gift_email(
        self,
        to_email: str,
        claim_link: str,
        message: str,
        amount_cents: int,
    ) -> SendResult:
        try:
            validate_email(to_email, check_deliverability=False)
        except EmailNotValidError:
            return SendResult(ok=False, error="invalid_recipient")

        if not settings.email_configured:
            logger.info("Brevo not configured, skipping send subject=%r", GIFT_EMAIL_SUBJECT)
            return SendResult(ok=False, error="not_configured")

        payload = build_gift_payload(to_email, claim_link, message, amount_cents)

        result, retryable = await self._post_once(payload)
        if not result.ok and retryable:
            logger.warning("Email send failed, retrying once error=%s", result.error)
            await asyncio.sleep(settings.email_retry_backoff_seconds)
            result, _ = await self._post_once(payload)
        return result

    async def _send_and_log(
        self,
        public_id: str,
        to_email: str,
        claim_link: str,
        message: str,
        amount_cents: int,
    ) -> SendResult:
        budget = settings.email_timeout_seconds * 2 + settings.email_retry_backoff_seconds
        try:
            result = await asyncio.wait_for(
                self.send_gift_email(to_email, claim_link, message, amount_cents),
                timeout=budget,
            )
        except asyncio.TimeoutError:
            result = SendResult(ok=False, error="timeout")
        except Exception as exc:
            logger.exception("email_send_failed public_id=%s", public_id)
            return SendResult(ok=False, error=exc.__class__.__name__)

        if result.ok:
            logger.info("email_send_ok public_id=%s message_id=%s", public_id, result.message_id)
        else:
            logger.warning("email_send_failed public_id=%s error=%s", public_id, result.error)
        return result

    def dispatch(
        self,
        public_id: str,
        to_email: str,
        claim_link: str,
        message: str,
        amount_cents: int,
    ) -> asyncio.Task:
        """Fire-and-forget send; the returned task is only awaited by tests."""
        task = asyncio.get_running_loop().create_task(
            self._send_and_log(public_id, to_email, claim_link, message, amount_cents)
        )
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        return task


notifier = GiftNotifier()


async def get_notifier() -> GiftNotifier:
    return notifier
