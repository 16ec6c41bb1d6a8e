"""
Notifications Module

SMS and email delivery for escalation alerts.
"""

from .notifier import Notifier, ContactOutcome, get_notifier
from .providers import (
    SendResult,
    SmsProvider,
    SmsMessage,
    Msg91Provider,
    ConsoleSmsProvider,
    get_sms_provider,
    EmailProvider,
    AlertEmail,
    SmtpEmailProvider,
    ConsoleEmailProvider,
    get_email_provider,
)
from .templates import AlertTemplateVars, build_template_vars, format_alert_timestamp

__all__ = [
    "Notifier",
    "ContactOutcome",
    "get_notifier",
    "SendResult",
    "SmsProvider",
    "SmsMessage",
    "Msg91Provider",
    "ConsoleSmsProvider",
    "get_sms_provider",
    "EmailProvider",
    "AlertEmail",
    "SmtpEmailProvider",
    "ConsoleEmailProvider",
    "get_email_provider",
    "AlertTemplateVars",
    "build_template_vars",
    "format_alert_timestamp",
]
