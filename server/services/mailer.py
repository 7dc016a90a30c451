"""Outbound mail for download links.

Resend is used when an API key is configured, SMTP otherwise. With neither
configured a null mailer reports every send as failed so the issuing
request surfaces a delivery error instead of pretending to succeed.
"""

import html
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import quote, urlencode

import apprise
import httpx

from core.config import Settings
from core.logging import get_logger

logger = get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_SENDER = "Wedding Photos <noreply@localhost>"
SUBJECT = "Your photo download link"


@dataclass
class DeliveryResult:
    channel: str
    success: bool
    detail: Optional[str] = None


class MailerProtocol(Protocol):
    """Sends the download link email."""

    channel: str

    async def send_download_link(self, recipient: str, url: str, item_count: int,
                                 validity_days: int) -> DeliveryResult:
        ...


def render_download_email(url: str, item_count: int, validity_days: int):
    """Return ``(text, html)`` bodies for the download link email."""
    noun = "photo" if item_count == 1 else "photos"
    verb = "is" if item_count == 1 else "are"
    days = "day" if validity_days == 1 else "days"
    text = (
        f"Your {item_count} {noun} {verb} ready to download.\n\n"
        f"{url}\n\n"
        f"The link stays valid for {validity_days} {days}. "
        "The first download may take a moment while the archive is prepared.\n"
    )
    safe_url = html.escape(url, quote=True)
    body = (
        "<p>Your {count} {noun} {verb} ready to download.</p>"
        '<p><a href="{url}">Download your photos</a></p>'
        "<p>The link stays valid for {validity} {days}. "
        "The first download may take a moment while the archive is prepared.</p>"
    ).format(count=item_count, noun=noun, verb=verb, url=safe_url, validity=validity_days, days=days)
    return text, body


class ResendMailer:
    """Sends through the Resend HTTP API."""

    channel = "resend"

    def __init__(self, api_key: str, sender: str, timeout: float = 10.0,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self._http = http_client

    async def send_download_link(self, recipient: str, url: str, item_count: int,
                                 validity_days: int) -> DeliveryResult:
        text, body = render_download_email(url, item_count, validity_days)
        payload = {
            "from": self.sender,
            "to": [recipient],
            "subject": SUBJECT,
            "text": text,
            "html": body,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            if self._http is not None:
                response = await self._http.post(RESEND_API_URL, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(RESEND_API_URL, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Resend rejected email",
                         status_code=e.response.status_code,
                         body=e.response.text[:200])
            return DeliveryResult(self.channel, False, f"resend returned {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error("Resend request failed", error=f"{type(e).__name__}: {e}")
            return DeliveryResult(self.channel, False, str(e) or type(e).__name__)

        logger.info("Download link sent", channel=self.channel, item_count=item_count)
        return DeliveryResult(self.channel, True)


class SmtpMailer:
    """Sends through an SMTP relay via Apprise, STARTTLS or implicit TLS."""

    channel = "smtp"

    def __init__(self, host: str, port: int = 587, secure: bool = False,
                 user: Optional[str] = None, password: Optional[str] = None,
                 sender: str = DEFAULT_SENDER, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.secure = secure
        self.user = user
        self.password = password
        self.sender = sender
        self.timeout = timeout

    def notify_url(self, recipient: str) -> str:
        """Apprise ``mailtos://`` URL for one recipient."""
        credentials = ""
        if self.user and self.password:
            credentials = f"{quote(self.user, safe='')}:{quote(self.password, safe='')}@"
        query = urlencode({
            "from": self.sender,
            "to": recipient,
            "mode": "ssl" if self.secure else "starttls",
            "cto": int(self.timeout),
        })
        return f"mailtos://{credentials}{self.host}:{self.port}/?{query}"

    async def send_download_link(self, recipient: str, url: str, item_count: int,
                                 validity_days: int) -> DeliveryResult:
        _, body = render_download_email(url, item_count, validity_days)
        apobj = apprise.Apprise()
        if not apobj.add(self.notify_url(recipient)):
            logger.error("SMTP settings rejected", host=self.host, port=self.port)
            return DeliveryResult(self.channel, False, "invalid smtp settings")

        sent = await apobj.async_notify(
            title=SUBJECT,
            body=body,
            body_format=apprise.NotifyFormat.HTML,
        )
        if not sent:
            logger.error("SMTP send failed", host=self.host, port=self.port)
            return DeliveryResult(self.channel, False, f"smtp delivery via {self.host} failed")

        logger.info("Download link sent", channel=self.channel, item_count=item_count)
        return DeliveryResult(self.channel, True)


class NullMailer:
    """No email backend configured."""

    channel = "none"

    async def send_download_link(self, recipient: str, url: str, item_count: int,
                                 validity_days: int) -> DeliveryResult:
        logger.warning("Download link not sent, no email backend configured")
        return DeliveryResult(self.channel, False, "email not configured")


def create_mailer(settings: Settings) -> MailerProtocol:
    """Factory function to pick the mail backend from settings.

    Returns:
        ResendMailer if RESEND_API_KEY is set, SmtpMailer if SMTP_HOST is
        set, NullMailer otherwise
    """
    if settings.resend_api_key:
        logger.info("Email delivery via Resend")
        return ResendMailer(
            api_key=settings.resend_api_key,
            sender=settings.email_from or DEFAULT_SENDER,
            timeout=settings.email_timeout,
        )
    if settings.smtp_host:
        logger.info("Email delivery via SMTP", host=settings.smtp_host, port=settings.smtp_port)
        return SmtpMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            secure=settings.smtp_secure,
            user=settings.smtp_user,
            password=settings.smtp_pass,
            sender=settings.email_from or settings.smtp_user or DEFAULT_SENDER,
            timeout=settings.email_timeout,
        )
    logger.warning("No email backend configured, download links cannot be sent")
    return NullMailer()
