"""
Notification Providers

Transport for escalation alerts.
SMS: MSG91 flow API (templated, DLT-registered messages)
Email: SMTP relay (aiosmtplib)
Console providers log instead of sending, for development and tests.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.message import EmailMessage as MimeMessage
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    """Result of handing one message to a provider."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


# =============================================================================
# SMS
# =============================================================================

@dataclass
class SmsMessage:
    """Templated SMS to a single mobile number."""
    to: str
    template_id: str
    variables: Dict[str, str] = field(default_factory=dict)


class SmsProvider(ABC):
    """Abstract base class for SMS providers."""

    @abstractmethod
    async def send(self, message: SmsMessage) -> SendResult:
        """Send an SMS message."""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        pass


class Msg91Provider(SmsProvider):
    """
    MSG91 SMS provider.

    Requires MSG91_AUTH_KEY. Messages are sent through a flow template whose
    ##var## placeholders are filled from SmsMessage.variables.
    https://docs.msg91.com/sms/send-sms
    """

    API_URL = "https://control.msg91.com/api/v5/flow/"

    def __init__(self, auth_key: str, sender_id: str = "", default_template_id: str = ""):
        self.auth_key = auth_key
        self.sender_id = sender_id
        self.default_template_id = default_template_id

    def is_configured(self) -> bool:
        return bool(self.auth_key)

    async def send(self, message: SmsMessage) -> SendResult:
        if not self.is_configured():
            return SendResult(success=False, error="MSG91 auth key not configured")

        template_id = message.template_id or self.default_template_id
        if not template_id:
            return SendResult(success=False, error="MSG91 template id not configured")

        try:
            import httpx

            payload = {
                "template_id": template_id,
                "short_url": "0",
                "recipients": [{"mobiles": message.to, **message.variables}],
            }
            if self.sender_id:
                payload["sender"] = self.sender_id

            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.API_URL,
                    headers={
                        "authkey": self.auth_key,
                        "accept": "application/json",
                        "content-type": "application/json",
                    },
                    json=payload,
                    timeout=30.0,
                )

            data = response.json() if response.content else {}
            if response.status_code == 200 and data.get("type") == "success":
                return SendResult(success=True, message_id=data.get("message"))

            error_msg = data.get("message") or response.text
            logger.error(f"MSG91 API error: {response.status_code} - {error_msg}")
            return SendResult(success=False, error=error_msg)

        except Exception as e:
            logger.exception(f"Failed to send SMS via MSG91 to {message.to}")
            return SendResult(success=False, error=str(e))


class ConsoleSmsProvider(SmsProvider):
    """Logs SMS messages instead of sending them."""

    def is_configured(self) -> bool:
        return True

    async def send(self, message: SmsMessage) -> SendResult:
        logger.info(
            f"\n{'='*60}\n"
            f"SMS (Console Mode)\n"
            f"{'='*60}\n"
            f"To: {message.to}\n"
            f"Template: {message.template_id or '-'}\n"
            f"Variables: {message.variables}\n"
            f"{'='*60}\n"
        )
        return SendResult(success=True, message_id="console-dev")


# =============================================================================
# EMAIL
# =============================================================================

@dataclass
class AlertEmail:
    """Rendered escalation email for one contact."""
    to: str
    subject: str
    html_body: str
    text_body: str


class EmailProvider(ABC):
    """Email transport for contacts that carry an address."""

    @abstractmethod
    async def send(self, email: AlertEmail) -> SendResult:
        pass


class SmtpEmailProvider(EmailProvider):
    """Sends alert emails through an SMTP relay with STARTTLS."""

    def __init__(self, host: str, port: int, username: str, password: str, from_email: str):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email

    async def send(self, email: AlertEmail) -> SendResult:
        try:
            import aiosmtplib

            message = MimeMessage()
            message["Subject"] = email.subject
            message["From"] = self.from_email
            message["To"] = email.to
            message.set_content(email.text_body)
            message.add_alternative(email.html_body, subtype="html")

            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=True,
                timeout=30,
            )
            return SendResult(success=True)

        except Exception as e:
            logger.exception(f"Failed to send alert email via SMTP to {email.to}")
            return SendResult(success=False, error=str(e))


class ConsoleEmailProvider(EmailProvider):
    """Logs alert emails instead of sending them."""

    async def send(self, email: AlertEmail) -> SendResult:
        logger.info(
            f"\n{'='*60}\n"
            f"EMAIL (Console Mode)\n"
            f"{'='*60}\n"
            f"To: {email.to}\n"
            f"Subject: {email.subject}\n"
            f"{'='*60}\n"
            f"{email.text_body}\n"
            f"{'='*60}\n"
        )
        return SendResult(success=True, message_id="console-dev")


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def get_sms_provider(
    auth_key: Optional[str] = None,
    sender_id: str = "",
    template_id: str = "",
    console_mode: bool = False,
) -> SmsProvider:
    """
    Pick an SMS provider.

    Priority:
    1. Console mode (for development)
    2. MSG91 (if auth key provided)
    3. Console fallback
    """
    if console_mode:
        logger.info("Using console SMS provider (development mode)")
        return ConsoleSmsProvider()

    if auth_key:
        logger.info("Using MSG91 SMS provider")
        return Msg91Provider(auth_key=auth_key, sender_id=sender_id, default_template_id=template_id)

    logger.warning("No SMS provider configured, using console fallback")
    return ConsoleSmsProvider()


def get_email_provider(smtp_config: Optional[dict] = None, console_mode: bool = False) -> Optional[EmailProvider]:
    """Console in development, SMTP when configured, otherwise no email channel."""
    if console_mode:
        return ConsoleEmailProvider()
    if smtp_config:
        logger.info(f"Using SMTP email provider ({smtp_config['host']})")
        return SmtpEmailProvider(**smtp_config)
    return None
