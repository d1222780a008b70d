"""
Cozy Connect — Transactional email via the Resend HTTP API.

Only one message is sent today: the verification code that lets a signed-in
user claim a pre-seeded profile.  Delivery failures raise
``EmailDeliveryError`` and are not retried.
"""

from __future__ import annotations

from html import escape

import httpx
import structlog

from app.errors import EmailDeliveryError

logger = structlog.get_logger("cozy.email_service")

VERIFICATION_SUBJECT = "Your Cozy Connect Verification Code"

_VERIFICATION_TEMPLATE = """\
<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">
  <h1>Your Verification Code</h1>
  <p>Hello,</p>
  <p>You requested a verification code for linking your profile "{name}" on Cozy Connect.</p>
  <p>Your verification code is:</p>
  <div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; text-align: center; margin: 20px 0;">
    <span style="font-size: 24px; font-weight: bold; letter-spacing: 4px;">{code}</span>
  </div>
  <p>Best regards,<br>The Cozy Connect Team</p>
</div>
"""


def render_verification_email(profile_name: str, code: str) -> str:
    return _VERIFICATION_TEMPLATE.format(name=escape(profile_name), code=escape(code))


class EmailService:
    """Thin Resend client.

    Parameters
    ----------
    api_key:
        Resend API key.  When empty every send raises ``EmailDeliveryError``.
    sender:
        ``from`` address; must belong to a domain verified with Resend.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests use a mock transport).
    """

    def __init__(
        self,
        api_key: str,
        sender: str,
        *,
        endpoint_url: str = "https://api.resend.com",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=endpoint_url.rstrip("/"),
            timeout=timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def send(self, to: str, subject: str, html: str) -> str:
        """Send one HTML email and return the provider's message id."""
        if not self.configured:
            raise EmailDeliveryError("Email service not configured: RESEND_API_KEY is missing")

        log = logger.bind(to=to, subject=subject)
        try:
            response = await self._client.post(
                "/emails",
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={"from": self._sender, "to": [to], "subject": subject, "html": html},
            )
        except httpx.HTTPError as exc:
            log.error("email_send_failed", error=str(exc))
            raise EmailDeliveryError(f"Failed to send email: {exc}") from exc

        if response.is_error:
            log.error("email_send_rejected", status=response.status_code, body=response.text[:500])
            raise EmailDeliveryError(
                f"Failed to send email: provider responded {response.status_code}"
            )

        message_id = response.json().get("id", "")
        log.info("email_sent", message_id=message_id)
        return message_id

    async def send_verification_code(self, to: str, profile_name: str, code: str) -> str:
        return await self.send(
            to,
            VERIFICATION_SUBJECT,
            render_verification_email(profile_name, code),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
