"""
Mail Gate - log first, then hand over.

Every read of inbound message content goes through MailGate.gate_read:

  1. fetch the full message for the calling agent,
  2. build an AuditRecord and attempt delivery to the audit sink,
  3. only then build the response: caller-safe metadata, the `logged`
     flag and, if asked for, the body wrapped in untrusted-boundary
     markers after neutralizing any marker lookalikes inside it.

Subject and Message-ID never appear in the returned metadata; they only go
to the audit log.
"""

import logging
import uuid
from typing import Optional

from mailgate.shared.agent_context import current_agent_id
from mailgate.shared.config import ConfigResolver
from mailgate.shared.constants import (
    NO_ATTACHMENTS_PLACEHOLDER,
    NO_BODY_PLACEHOLDER,
    NO_MESSAGE_ID_PLACEHOLDER,
    UNKNOWN_AGENT,
)
from mailgate.shared.interfaces import IAuditSink, IMailTransport
from mailgate.shared.models import AuditRecord, EmailFull, GateReadResult
from mailgate.shared.security import UntrustedContentGuard

logger = logging.getLogger(__name__)


def summarize_attachments(message: EmailFull) -> str:
    if not message.attachments:
        return NO_ATTACHMENTS_PLACEHOLDER
    return "; ".join(
        f"{a.filename} ({a.content_type}, {a.size if a.size is not None else '?'} bytes)"
        for a in message.attachments
    )


def build_audit_record(mailbox: str, message: EmailFull) -> AuditRecord:
    return AuditRecord(
        ref_id=f"gate-{uuid.uuid4().hex[:12]}",
        mailbox=mailbox,
        uid=message.uid,
        agent=current_agent_id() or UNKNOWN_AGENT,
        sender=message.sender,
        recipient=message.recipient,
        subject=message.subject,
        date=message.date,
        message_id=message.message_id or NO_MESSAGE_ID_PLACEHOLDER,
        attachments=summarize_attachments(message),
        body=message.text or message.html or NO_BODY_PLACEHOLDER,
    )


class MailGate:
    """Audited, sanitized reads of inbound mail."""

    def __init__(
        self,
        transport: IMailTransport,
        sink: IAuditSink,
        resolver: ConfigResolver,
        guard: Optional[UntrustedContentGuard] = None,
    ):
        self._transport = transport
        self._sink = sink
        self._resolver = resolver
        self._guard = guard or UntrustedContentGuard()

    async def gate_read(self, mailbox: str, uid: int, include_body: bool = False) -> GateReadResult:
        imap_config = self._resolver.imap_config()
        sink_config = self._resolver.audit_sink_config()

        message = await self._transport.get_message(imap_config, mailbox, uid)
        record = build_audit_record(mailbox, message)

        # The audit attempt must finish before any content is returned.
        logged = await self._sink.deliver(sink_config, record)
        if not logged:
            logger.warning(f"Gated read {record.ref_id} proceeding without audit log")

        metadata = {
            "ref_id": record.ref_id,
            "uid": message.uid,
            "mailbox": mailbox,
            "from": self._guard.sanitize_field(message.sender),
            "to": self._guard.sanitize_field(message.recipient),
            "cc": self._guard.sanitize_field(message.cc),
            "date": message.date,
            "flags": list(message.flags),
            "attachments": [
                {"part": a.part, "content_type": a.content_type, "size": a.size}
                for a in message.attachments
            ],
            "audit_channel": sink_config.channel,
        }
        result = GateReadResult(metadata=metadata, logged=logged)

        if include_body:
            if message.text:
                result.body, result.body_format = self._guard.wrap(message.text), "text"
            elif message.html:
                result.body, result.body_format = self._guard.wrap(message.html), "html"
            else:
                result.body, result.body_format = self._guard.wrap(NO_BODY_PLACEHOLDER), "text"

        logger.info(
            f"Gated read {record.ref_id}: mailbox={mailbox} uid={uid} "
            f"agent={record.agent} logged={logged} body={include_body}"
        )
        return result
