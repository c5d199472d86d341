"""
Domain models for mailgate.
Pure data classes with no external dependencies (Clean Architecture inner layer).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


# --- Outgoing mail ---

@dataclass
class OutgoingAttachment:
    """Attachment supplied by a caller of send_email."""
    filename: str
    content: str  # base64
    content_type: Optional[str] = None


@dataclass
class OutgoingEmail:
    """A message to be sent via SMTP."""
    to: str
    subject: str
    body: str
    html: Optional[str] = None
    cc: Optional[str] = None
    bcc: Optional[str] = None
    attachments: list[OutgoingAttachment] = field(default_factory=list)


@dataclass
class SendResult:
    message_id: str
    accepted: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    saved_to: Optional[str] = None  # Sent folder path, if appended
    raw_message: bytes = field(default=b"", repr=False)

    def to_dict(self) -> dict:
        return {
            "message_id": self.message_id,
            "accepted": list(self.accepted),
            "rejected": list(self.rejected),
            "saved_to": self.saved_to,
        }


# --- Incoming mail ---

@dataclass
class MailboxInfo:
    path: str
    name: str
    flags: list[str] = field(default_factory=list)
    special_use: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "name": self.name,
            "flags": list(self.flags),
            "special_use": self.special_use,
        }


@dataclass
class EmailEnvelope:
    """Summary of a message as shown in list/search results."""
    uid: int
    sender: str = ""
    recipient: str = ""
    subject: str = ""
    date: str = ""
    flags: list[str] = field(default_factory=list)
    message_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "from": self.sender,
            "to": self.recipient,
            "subject": self.subject,
            "date": self.date,
            "flags": list(self.flags),
            "message_id": self.message_id,
        }


@dataclass
class AttachmentInfo:
    part: str  # IMAP-style part number, e.g. "2" or "1.2"
    filename: str
    content_type: str = "application/octet-stream"
    size: Optional[int] = None


@dataclass
class EmailFull:
    """A fully fetched and parsed message."""
    uid: int
    sender: str = ""
    recipient: str = ""
    cc: Optional[str] = None
    subject: str = ""
    date: str = ""
    flags: list[str] = field(default_factory=list)
    message_id: Optional[str] = None
    text: Optional[str] = None
    html: Optional[str] = None
    attachments: list[AttachmentInfo] = field(default_factory=list)


@dataclass
class SearchCriteria:
    sender: Optional[str] = None
    recipient: Optional[str] = None
    subject: Optional[str] = None
    since: Optional[str] = None  # ISO 8601 date
    before: Optional[str] = None  # ISO 8601 date
    unseen: bool = False
    text: Optional[str] = None


@dataclass
class AttachmentContent:
    content: str  # base64
    content_type: str = "application/octet-stream"

    def to_dict(self) -> dict:
        return {"content": self.content, "content_type": self.content_type}


# --- Gate ---

@dataclass(frozen=True)
class AuditRecord:
    """Immutable record of a gated read, delivered to the audit sink."""
    ref_id: str
    mailbox: str
    uid: int
    agent: str
    sender: str
    recipient: str
    subject: str
    date: str
    message_id: str
    attachments: str
    body: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "ref_id": self.ref_id,
            "mailbox": self.mailbox,
            "uid": self.uid,
            "agent": self.agent,
            "from": self.sender,
            "to": self.recipient,
            "subject": self.subject,
            "date": self.date,
            "message_id": self.message_id,
            "attachments": self.attachments,
            "body": self.body,
            "timestamp": self.timestamp.isoformat(),
        }

    def render(self) -> str:
        """Plain-text rendering used as the sink message text."""
        return (
            f"[{self.ref_id}] agent={self.agent} mailbox={self.mailbox} uid={self.uid}\n"
            f"From: {self.sender}\n"
            f"To: {self.recipient}\n"
            f"Subject: {self.subject}\n"
            f"Date: {self.date}\n"
            f"Message-ID: {self.message_id}\n"
            f"Attachments: {self.attachments}\n"
            f"\n{self.body}"
        )


@dataclass
class GateReadResult:
    """What a caller gets back from a gated read."""
    metadata: dict
    logged: bool
    body: Optional[str] = None
    body_format: Optional[str] = None  # "text" or "html"

    def to_dict(self) -> dict:
        result: dict[str, Any] = {**self.metadata, "logged": self.logged}
        if self.body is not None:
            result["body"] = self.body
            result["body_format"] = self.body_format
        return result


# --- Tools ---

@dataclass
class ToolCall:
    tool_name: str
    arguments: dict = field(default_factory=dict)


@dataclass
class ToolResult:
    tool_name: str
    success: bool
    output: Any = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "tool_name": self.tool_name,
            "success": self.success,
            "output": self.output,
            "error": self.error,
        }
