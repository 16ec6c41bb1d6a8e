"""
Notifier

Fans one alert out to a list of contacts. Each contact is attempted on its
own: a failure is logged and recorded, and the remaining contacts are still
tried.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from gridwatch.escalation.levels import EscalationContact
from .providers import (
    SmsProvider,
    SmsMessage,
    EmailProvider,
    AlertEmail,
    get_sms_provider,
    get_email_provider,
)
from .templates import AlertTemplateVars, build_sms_variables, build_escalation_email

logger = logging.getLogger(__name__)


@dataclass
class ContactOutcome:
    """Result of alerting one contact over one channel."""
    recipient: str
    channel: str
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


class Notifier:
    """Sends escalation alerts by SMS and email."""

    def __init__(
        self,
        sms_provider: SmsProvider,
        email_provider: Optional[EmailProvider] = None,
        template_id: str = "",
    ):
        self.sms_provider = sms_provider
        self.email_provider = email_provider
        self.template_id = template_id

    async def send(
        self,
        contacts: Sequence[EscalationContact],
        template_vars: AlertTemplateVars,
        level_name: str = "Alert",
    ) -> List[ContactOutcome]:
        outcomes = []

        for contact in contacts:
            if contact.phone:
                outcomes.append(await self._send_sms(contact, template_vars))
            if contact.email and self.email_provider is not None:
                outcomes.append(await self._send_email(contact, template_vars, level_name))
            if not contact.phone and not contact.email:
                logger.warning(f"Contact {contact.role} ({contact.name}) has no phone or email, skipping")

        return outcomes

    async def _send_sms(self, contact: EscalationContact, template_vars: AlertTemplateVars) -> ContactOutcome:
        message = SmsMessage(
            to=contact.phone,
            template_id=self.template_id,
            variables=build_sms_variables(template_vars),
        )
        try:
            result = await self.sms_provider.send(message)
        except Exception as e:
            logger.error(f"SMS to {contact.phone} ({contact.role}) failed: {e}")
            return ContactOutcome(recipient=contact.phone, channel="sms", success=False, error=str(e))

        if not result.success:
            logger.error(f"SMS to {contact.phone} ({contact.role}) failed: {result.error}")
        return ContactOutcome(
            recipient=contact.phone,
            channel="sms",
            success=result.success,
            error=result.error,
            message_id=result.message_id,
        )

    async def _send_email(
        self,
        contact: EscalationContact,
        template_vars: AlertTemplateVars,
        level_name: str,
    ) -> ContactOutcome:
        subject, html_body, plain_text = build_escalation_email(template_vars, level_name, contact.name)
        message = AlertEmail(
            to=contact.email,
            subject=subject,
            html_body=html_body,
            text_body=plain_text,
        )
        try:
            result = await self.email_provider.send(message)
        except Exception as e:
            logger.error(f"Email to {contact.email} ({contact.role}) failed: {e}")
            return ContactOutcome(recipient=contact.email, channel="email", success=False, error=str(e))

        if not result.success:
            logger.error(f"Email to {contact.email} ({contact.role}) failed: {result.error}")
        return ContactOutcome(
            recipient=contact.email,
            channel="email",
            success=result.success,
            error=result.error,
            message_id=result.message_id,
        )


def get_notifier() -> Notifier:
    """Build a Notifier from application settings."""
    from gridwatch.config import settings

    return Notifier(
        sms_provider=get_sms_provider(
            auth_key=settings.MSG91_AUTH_KEY,
            sender_id=settings.MSG91_SENDER_ID,
            template_id=settings.MSG_TEMPLATE_ID,
            console_mode=settings.console_mode,
        ),
        email_provider=get_email_provider(
            smtp_config=settings.smtp_config,
            console_mode=settings.console_mode,
        ),
        template_id=settings.MSG_TEMPLATE_ID,
    )
