"""
TATAME Email - Sending

Transactional mail goes through Brevo's HTTP API. Sending never raises on
provider failures: callers get ``{"success": False, "error": ...}``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from tatame.email.templates import EmailTemplateStore, render_template
from tatame.shared.settings import BREVO_API_KEY, BREVO_API_URL, EMAIL_FROM_ADDRESS, EMAIL_FROM_NAME

logger = logging.getLogger("tatame.email")

NOT_CONFIGURED = {"success": False, "error": "Email service not configured"}


def _recipients(emails: str | list[str]) -> list[dict[str, str]]:
    if isinstance(emails, str):
        emails = [emails]
    return [{"email": e} for e in emails]


class BrevoProvider:
    """Brevo (ex-Sendinblue) transactional email API."""

    name = "brevo"

    def __init__(
        self,
        api_key: str,
        from_email: str,
        from_name: str = EMAIL_FROM_NAME,
        api_url: str = BREVO_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.api_url = api_url.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            headers={"accept": "application/json", "api-key": self.api_key},
            timeout=15.0,
            transport=self._transport,
        )

    async def send(
        self,
        to: str | list[str],
        subject: str,
        html: str | None = None,
        text: str | None = None,
        reply_to: str | None = None,
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "sender": {"email": self.from_email, "name": self.from_name},
            "to": _recipients(to),
            "subject": subject,
            "replyTo": {"email": reply_to or self.from_email},
        }
        if html:
            body["htmlContent"] = html
        if text:
            body["textContent"] = text
        if cc:
            body["cc"] = _recipients(cc)
        if bcc:
            body["bcc"] = _recipients(bcc)

        try:
            async with self._client() as client:
                resp = await client.post("/smtp/email", json=body)
            data = resp.json() if resp.content else {}
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(f"Brevo send error: {exc}")
            return {"success": False, "error": str(exc) or "Failed to send email via Brevo"}

        if resp.is_success:
            return {"success": True, "message_id": data.get("messageId")}
        error = data.get("message") or "Failed to send email"
        logger.error(f"Brevo send failed ({resp.status_code}): {error}")
        return {"success": False, "error": error}

    async def test_connection(self) -> dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.get("/account")
            data = resp.json() if resp.content else {}
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(f"Brevo test connection error: {exc}")
            return {"success": False, "error": str(exc) or "Failed to connect to Brevo"}

        if resp.is_success:
            return {"success": True, "account_email": data.get("email"), "company_name": data.get("companyName")}
        return {"success": False, "error": data.get("message") or "Invalid API key"}


class EmailService:
    """
    Front door for outgoing email.

    With no provider (no BREVO_API_KEY) every call reports
    "Email service not configured" instead of raising.
    """

    def __init__(
        self,
        provider: BrevoProvider | None = None,
        templates: EmailTemplateStore | None = None,
    ) -> None:
        self.provider = provider
        self.templates = templates

    @classmethod
    def from_settings(cls, templates: EmailTemplateStore | None = None) -> EmailService:
        if not BREVO_API_KEY or not EMAIL_FROM_ADDRESS:
            logger.warning("Email service not configured - no API key or from email")
            return cls(None, templates)
        return cls(BrevoProvider(BREVO_API_KEY, EMAIL_FROM_ADDRESS), templates)

    @property
    def is_configured(self) -> bool:
        return self.provider is not None

    async def send(
        self,
        to: str | list[str],
        subject: str,
        html: str | None = None,
        text: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        if self.provider is None:
            logger.error("Email provider not configured")
            return dict(NOT_CONFIGURED)
        result = await self.provider.send(to, subject, html, text, **kwargs)
        if result["success"]:
            logger.info(f"Email sent to {to}: {subject}")
        return result

    async def send_template(
        self,
        slug: str,
        to: str | list[str],
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Render an active template (falling back to its preview data) and send it."""
        if self.templates is None:
            return {"success": False, "error": "Email templates not available"}
        template = await self.templates.get_by_slug(slug)
        rendered = render_template(template, data or template.preview_data or {})
        return await self.send(to, rendered.subject, rendered.html_content, rendered.text_content or None)

    async def test_connection(self) -> dict[str, Any]:
        if self.provider is None:
            return dict(NOT_CONFIGURED)
        return await self.provider.test_connection()
