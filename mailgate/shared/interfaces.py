"""
Abstract interfaces (Ports) for mailgate.
The gate and the tools depend on these, not on the SMTP/IMAP or HTTP adapters.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .config import AuditSinkConfig, EmailConfig, ImapConfig
from .models import (
    AttachmentContent,
    AuditRecord,
    EmailEnvelope,
    EmailFull,
    MailboxInfo,
    OutgoingEmail,
    SearchCriteria,
    SendResult,
)


class IMailTransport(ABC):
    """Interface for the mail transport collaborator (SMTP + IMAP)."""

    @abstractmethod
    async def send_mail(self, config: EmailConfig, message: OutgoingEmail) -> SendResult:
        """Send a message via SMTP."""

    @abstractmethod
    async def append_to_sent(self, config: ImapConfig, raw_message: bytes) -> Optional[str]:
        """Append a raw message to the Sent folder. Returns the folder path or None."""

    @abstractmethod
    async def list_mailboxes(self, config: ImapConfig) -> list[MailboxInfo]:
        """List all mailboxes/folders."""

    @abstractmethod
    async def list_messages(
        self, config: ImapConfig, mailbox: str, limit: int, offset: int
    ) -> list[EmailEnvelope]:
        """List envelopes in a mailbox, newest first."""

    @abstractmethod
    async def get_message(self, config: ImapConfig, mailbox: str, uid: int) -> EmailFull:
        """Fetch and parse a full message by UID."""

    @abstractmethod
    async def search_messages(
        self, config: ImapConfig, mailbox: str, criteria: SearchCriteria
    ) -> list[EmailEnvelope]:
        """Search a mailbox, newest first."""

    @abstractmethod
    async def download_attachment(
        self, config: ImapConfig, mailbox: str, uid: int, part: str
    ) -> AttachmentContent:
        """Download one attachment part."""


class IAuditSink(ABC):
    """Interface for the external append-only audit log."""

    @abstractmethod
    async def deliver(self, config: AuditSinkConfig, record: AuditRecord) -> bool:
        """Attempt delivery. Returns True if the sink accepted the record; never raises."""
