"""
SMTP sending via aiosmtplib.
Builds the MIME message with the stdlib email package and submits it.
"""

import base64
import binascii
import logging
import mimetypes
import re
from email.message import EmailMessage
from email.policy import SMTP as SMTP_POLICY
from email.utils import formatdate, getaddresses, make_msgid
from typing import Optional

import aiosmtplib

from mailgate.shared.config import EmailConfig
from mailgate.shared.errors import MailTransportError
from mailgate.shared.models import OutgoingEmail, SendResult

logger = logging.getLogger(__name__)

SMTPS_PORT = 465
SMTP_TIMEOUT_SECONDS = 30


def ehlo_domain(from_addr: str) -> Optional[str]:
    """Domain part of the from-address, used as the EHLO name."""
    match = re.search(r"@([^>\s]+)", from_addr)
    return match.group(1) if match else None


def recipients_of(message: OutgoingEmail) -> list[str]:
    fields = [message.to, message.cc or "", message.bcc or ""]
    return [addr for _, addr in getaddresses(fields) if addr]


def build_message(config: EmailConfig, message: OutgoingEmail) -> EmailMessage:
    """Render an OutgoingEmail as a MIME message. Bcc is never written as a header."""
    msg = EmailMessage()
    msg["From"] = config.from_addr
    msg["To"] = message.to
    if message.cc:
        msg["Cc"] = message.cc
    msg["Subject"] = message.subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid(domain=ehlo_domain(config.from_addr))

    msg.set_content(message.body)
    if message.html:
        msg.add_alternative(message.html, subtype="html")

    for attachment in message.attachments:
        try:
            data = base64.b64decode(attachment.content, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MailTransportError(
                f"Attachment {attachment.filename} is not valid base64: {e}"
            ) from e
        content_type = (
            attachment.content_type
            or mimetypes.guess_type(attachment.filename)[0]
            or "application/octet-stream"
        )
        maintype, _, subtype = content_type.partition("/")
        msg.add_attachment(
            data,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )
    return msg


class SmtpSender:
    """Sends OutgoingEmail messages for one resolved EmailConfig per call."""

    def __init__(self, timeout_seconds: float = SMTP_TIMEOUT_SECONDS):
        self._timeout = timeout_seconds

    async def send(self, config: EmailConfig, message: OutgoingEmail) -> SendResult:
        msg = build_message(config, message)
        recipients = recipients_of(message)
        if not recipients:
            raise MailTransportError("No valid recipients")

        kwargs = {
            "hostname": config.host,
            "port": config.port,
            "local_hostname": ehlo_domain(config.from_addr),
            "timeout": self._timeout,
        }
        if config.port == SMTPS_PORT:
            kwargs["use_tls"] = True
        if config.user and config.password:
            kwargs["username"] = config.user
            kwargs["password"] = config.password

        try:
            errors, response = await aiosmtplib.send(
                msg, sender=config.from_addr, recipients=recipients, **kwargs
            )
        except aiosmtplib.SMTPException as e:
            raise MailTransportError(f"SMTP send failed: {e}") from e
        except OSError as e:
            raise MailTransportError(f"SMTP connection failed: {e}") from e

        rejected = [addr for addr in recipients if addr in errors]
        accepted = [addr for addr in recipients if addr not in errors]
        logger.info(
            f"Sent {msg['Message-ID']} via {config.host}:{config.port} "
            f"(accepted={len(accepted)}, rejected={len(rejected)}): {response}"
        )
        return SendResult(
            message_id=str(msg["Message-ID"]),
            accepted=accepted,
            rejected=rejected,
            raw_message=msg.as_bytes(policy=SMTP_POLICY),
        )
