"""
Alert Templates

Variables, SMS template fields and email bodies for escalation alerts.
"""

from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Dict, Optional
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Asia/Kolkata"


@dataclass(frozen=True)
class AlertTemplateVars:
    """Structured data for one alert; rendering is left to the transport."""
    dtr_number: str
    meter_number: str
    abnormality_type: str
    timestamp: str


def format_alert_timestamp(moment: datetime, timezone_name: str = DEFAULT_TIMEZONE) -> str:
    """Render as DD-MM-YYYY HH:MM:SS in the operator's timezone."""
    local = moment.astimezone(ZoneInfo(timezone_name))
    return local.strftime("%d-%m-%Y %H:%M:%S")


def build_notification_message(level: int, abnormality: str, dtr_number: str, meter_number: str) -> str:
    return f"Level {level}: {abnormality} detected for DTR: {dtr_number}, Meter: {meter_number}"


def build_template_vars(
    dtr_number: Optional[str],
    meter_number: Optional[str],
    abnormality_type: str,
    moment: datetime,
    timezone_name: str = DEFAULT_TIMEZONE,
) -> AlertTemplateVars:
    return AlertTemplateVars(
        dtr_number=dtr_number or "",
        meter_number=meter_number or "",
        abnormality_type=abnormality_type,
        timestamp=format_alert_timestamp(moment, timezone_name),
    )


def build_sms_variables(template_vars: AlertTemplateVars) -> Dict[str, str]:
    """
    Map alert fields onto the registered SMS template placeholders.

    ##var##  -> DTR number
    ##var1## -> meter number (shown as the feeder)
    ##var2## -> abnormality description
    ##var3## -> occurred at
    """
    return {
        "var": template_vars.dtr_number,
        "var1": template_vars.meter_number,
        "var2": template_vars.abnormality_type,
        "var3": template_vars.timestamp,
    }


# =============================================================================
# EMAIL
# =============================================================================

BASE_HTML_TEMPLATE = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{subject}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;
            line-height: 1.6;
            color: #1F2937;
            background-color: #F3F4F6;
        }}
        .card {{
            background: white;
            border-radius: 8px;
            padding: 24px;
            max-width: 600px;
            margin: 20px auto;
        }}
        .badge {{
            display: inline-block;
            padding: 4px 12px;
            border-radius: 4px;
            color: white;
            background-color: #DC2626;
            font-weight: 600;
        }}
        td {{ padding: 4px 12px 4px 0; }}
    </style>
</head>
<body>
{content}
</body>
</html>
"""


def build_escalation_email(
    template_vars: AlertTemplateVars,
    level_name: str,
    contact_name: Optional[str] = None,
) -> tuple[str, str, str]:
    """
    Build the meter abnormality alert email.

    Returns: (subject, html_body, plain_text_body)
    """
    subject = f"[{level_name}] {template_vars.abnormality_type} - DTR {template_vars.dtr_number}"
    greeting = f"Dear {contact_name}," if contact_name else "Hello,"

    content = f"""
    <div class="card">
        <span class="badge">{escape(level_name)}</span>
        <p>{escape(greeting)}</p>
        <p>An abnormal condition has been detected and is still active.</p>
        <table>
            <tr><td><strong>DTR</strong></td><td>{escape(template_vars.dtr_number)}</td></tr>
            <tr><td><strong>Meter</strong></td><td>{escape(template_vars.meter_number)}</td></tr>
            <tr><td><strong>Abnormality</strong></td><td>{escape(template_vars.abnormality_type)}</td></tr>
            <tr><td><strong>Occurred at</strong></td><td>{escape(template_vars.timestamp)}</td></tr>
        </table>
    </div>
    """

    html_body = BASE_HTML_TEMPLATE.format(subject=escape(subject), content=content)

    plain_text = f"""
{greeting}

{level_name}: abnormal condition detected

DTR: {template_vars.dtr_number}
Meter: {template_vars.meter_number}
Abnormality: {template_vars.abnormality_type}
Occurred at: {template_vars.timestamp}

---
Gridwatch meter monitoring
"""

    return subject, html_body, plain_text.strip()
