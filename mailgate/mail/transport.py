"""
MailTransport - the IMailTransport implementation used in production.

SMTP is natively async (aiosmtplib). IMAP calls are blocking (imaplib) and
run via asyncio.to_thread, which carries the caller's context into the
worker thread.
"""

import asyncio
from typing import Optional

from mailgate.shared.config import EmailConfig, ImapConfig
from mailgate.shared.interfaces import IMailTransport
from mailgate.shared.models import (
    AttachmentContent,
    EmailEnvelope,
    EmailFull,
    MailboxInfo,
    OutgoingEmail,
    SearchCriteria,
    SendResult,
)

from .imap import ImapMailbox
from .smtp import SmtpSender


class MailTransport(IMailTransport):
    """Stateless: every call gets the config resolved for the calling agent."""

    def __init__(self, smtp: Optional[SmtpSender] = None):
        self._smtp = smtp or SmtpSender()

    async def send_mail(self, config: EmailConfig, message: OutgoingEmail) -> SendResult:
        return await self._smtp.send(config, message)

    async def append_to_sent(self, config: ImapConfig, raw_message: bytes) -> Optional[str]:
        return await asyncio.to_thread(ImapMailbox(config).append_to_sent, raw_message)

    async def list_mailboxes(self, config: ImapConfig) -> list[MailboxInfo]:
        return await asyncio.to_thread(ImapMailbox(config).list_mailboxes)

    async def list_messages(
        self, config: ImapConfig, mailbox: str, limit: int, offset: int
    ) -> list[EmailEnvelope]:
        return await asyncio.to_thread(ImapMailbox(config).list_messages, mailbox, limit, offset)

    async def get_message(self, config: ImapConfig, mailbox: str, uid: int) -> EmailFull:
        return await asyncio.to_thread(ImapMailbox(config).get_message, mailbox, uid)

    async def search_messages(
        self, config: ImapConfig, mailbox: str, criteria: SearchCriteria
    ) -> list[EmailEnvelope]:
        return await asyncio.to_thread(ImapMailbox(config).search_messages, mailbox, criteria)

    async def download_attachment(
        self, config: ImapConfig, mailbox: str, uid: int, part: str
    ) -> AttachmentContent:
        return await asyncio.to_thread(ImapMailbox(config).download_attachment, mailbox, uid, part)
