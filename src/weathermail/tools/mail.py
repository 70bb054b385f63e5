"""``send_email``: deliver a plain-text message through the operator's SMTP relay."""

import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from typing import List

from pydantic import (
    BaseModel,
    EmailStr,
    Field,
)

from weathermail.config import settings
from weathermail.core.errors import ConfigurationError
from weathermail.tools import register_tool

logger = logging.getLogger(__name__)

_REQUIRED_SETTINGS = ("SMTP_HOST", "SMTP_PORT", "SMTP_USER", "SMTP_PASS", "FROM_EMAIL")
_IMPLICIT_TLS_PORT = 465


class EmailParams(BaseModel):
    """Arguments of ``send_email``."""

    to_email: EmailStr = Field(..., description="recipient email address")
    subject: str = Field(..., min_length=1, description="email subject")
    body: str = Field(..., min_length=1, description="email body text")


class EmailReceipt(BaseModel):
    """Result of ``send_email``."""

    message_id: str = Field(..., min_length=1, description="Message-ID of the delivered email")


def missing_mail_settings() -> List[str]:
    """Names of the relay settings that are not configured."""
    return [name for name in _REQUIRED_SETTINGS if not getattr(settings, name)]


def _connect(host: str, port: int) -> smtplib.SMTP:
    if port == _IMPLICIT_TLS_PORT:
        return smtplib.SMTP_SSL(host, port, timeout=settings.SMTP_TIMEOUT)
    smtp = smtplib.SMTP(host, port, timeout=settings.SMTP_TIMEOUT)
    smtp.ehlo()
    if smtp.has_extn("starttls"):
        smtp.starttls()
        smtp.ehlo()
    return smtp


@register_tool(
    "send_email",
    description="Send an email with provided subject and body",
    input_model=EmailParams,
    output_model=EmailReceipt,
)
def send_email(params: EmailParams) -> EmailReceipt:
    missing = missing_mail_settings()
    if missing:
        raise ConfigurationError(f"Missing SMTP config: {', '.join(missing)}")

    from_email = str(settings.FROM_EMAIL)
    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = str(params.to_email)
    msg["Subject"] = params.subject
    msg["Message-ID"] = make_msgid(domain=from_email.rpartition("@")[2] or None)
    msg.set_content(params.body)

    host, port = str(settings.SMTP_HOST), int(settings.SMTP_PORT)  # type: ignore[arg-type]
    logger.info("Sending email to %s via %s:%s", params.to_email, host, port)
    with _connect(host, port) as smtp:
        smtp.login(str(settings.SMTP_USER), str(settings.SMTP_PASS))
        smtp.send_message(msg)

    return EmailReceipt(message_id=msg["Message-ID"])
