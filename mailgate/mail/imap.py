"""
IMAP access via imaplib.

All functions here are blocking; MailTransport runs them in worker threads.
Each call opens its own connection, selects the mailbox it needs and logs
out when done.
"""

import base64
import imaplib
import logging
import re
import time
from contextlib import contextmanager
from datetime import date
from email import message_from_bytes
from email.message import EmailMessage
from email.parser import BytesHeaderParser
from email.policy import default as default_policy
from email.utils import parsedate_to_datetime
from typing import Iterator, Optional

from mailgate.shared.config import ImapConfig
from mailgate.shared.constants import MAX_SEARCH_RESULTS
from mailgate.shared.errors import MailTransportError
from mailgate.shared.models import (
    AttachmentContent,
    AttachmentInfo,
    EmailEnvelope,
    EmailFull,
    MailboxInfo,
    SearchCriteria,
)

logger = logging.getLogger(__name__)

ENVELOPE_FIELDS = "(UID FLAGS BODY.PEEK[HEADER.FIELDS (FROM TO SUBJECT DATE MESSAGE-ID)])"
FULL_FIELDS = "(UID FLAGS BODY.PEEK[])"

IMAP_TIMEOUT_SECONDS = 30

SPECIAL_USE_FLAGS = ("\\All", "\\Archive", "\\Drafts", "\\Flagged", "\\Junk", "\\Sent", "\\Trash")

_LIST_RE = re.compile(r'\((?P<flags>[^)]*)\)\s+(?P<delim>"(?:[^"\\]|\\.)*"|NIL)\s+(?P<name>.+)$')
_UID_RE = re.compile(rb"UID (\d+)")
_FLAGS_RE = re.compile(rb"FLAGS \(([^)]*)\)")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


# --- Protocol helpers ---

def quote(value: str) -> str:
    """Quote a string argument for an IMAP command."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return value


def _check(typ: str, data: list, what: str) -> list:
    if typ != "OK":
        detail = data[0].decode(errors="replace") if data and isinstance(data[0], bytes) else data
        raise MailTransportError(f"IMAP {what} failed: {detail}")
    return data


def imap_date(iso_value: str) -> str:
    """2026-01-31 -> 31-Jan-2026 (IMAP SEARCH date format, locale independent)."""
    try:
        d = date.fromisoformat(iso_value[:10])
    except ValueError as e:
        raise MailTransportError(f"Invalid date: {iso_value}") from e
    return f"{d.day:02d}-{_MONTHS[d.month - 1]}-{d.year}"


def iso_date(header_value: Optional[str]) -> str:
    if not header_value:
        return ""
    try:
        return parsedate_to_datetime(str(header_value)).isoformat()
    except (TypeError, ValueError):
        return str(header_value)


def parse_list_line(line: bytes) -> Optional[MailboxInfo]:
    """Parse one LIST response line into a MailboxInfo."""
    match = _LIST_RE.match(line.decode("utf-8", errors="replace"))
    if not match:
        return None
    flags = match.group("flags").split()
    delim = match.group("delim")
    path = _unquote(match.group("name").strip())
    delimiter = None if delim == "NIL" else _unquote(delim)
    name = path.rsplit(delimiter, 1)[-1] if delimiter else path
    special_use = next((f for f in flags if f in SPECIAL_USE_FLAGS), None)
    return MailboxInfo(path=path, name=name, flags=flags, special_use=special_use)


def split_fetch_response(data: list) -> list[tuple[bytes, bytes]]:
    """
    Group a FETCH response into (metadata, literal) pairs.

    imaplib returns a tuple per literal followed by bare byte strings with
    whatever came after it (sometimes the FLAGS item), so trailing pieces
    are folded back into the preceding entry's metadata.
    """
    entries: list[list[bytes]] = []
    for item in data:
        if isinstance(item, tuple):
            entries.append([item[0], item[1]])
        elif isinstance(item, bytes) and entries:
            entries[-1][0] += b" " + item
    return [(meta, literal) for meta, literal in entries]


def _meta_uid(meta: bytes) -> int:
    match = _UID_RE.search(meta)
    if not match:
        raise MailTransportError("IMAP FETCH response without UID")
    return int(match.group(1))


def _meta_flags(meta: bytes) -> list[str]:
    match = _FLAGS_RE.search(meta)
    return match.group(1).decode(errors="replace").split() if match else []


def envelope_from_fetch(meta: bytes, header_bytes: bytes) -> EmailEnvelope:
    headers = BytesHeaderParser(policy=default_policy).parsebytes(header_bytes)
    return EmailEnvelope(
        uid=_meta_uid(meta),
        sender=str(headers.get("From", "")),
        recipient=str(headers.get("To", "")),
        subject=str(headers.get("Subject", "")),
        date=iso_date(headers.get("Date")),
        flags=_meta_flags(meta),
        message_id=str(headers["Message-ID"]) if headers.get("Message-ID") else None,
    )


def walk_parts(part: EmailMessage, number: str = "") -> Iterator[tuple[str, EmailMessage]]:
    """Yield (IMAP part number, leaf part). Attached messages are leaves."""
    if part.is_multipart() and part.get_content_type() != "message/rfc822":
        for i, child in enumerate(part.iter_parts(), 1):
            yield from walk_parts(child, f"{number}.{i}" if number else str(i))
    else:
        yield number or "1", part


def _is_attachment(part: EmailMessage) -> bool:
    return part.get_content_disposition() == "attachment" or bool(part.get_filename())


def _part_bytes(part: EmailMessage) -> bytes:
    if part.get_content_type() == "message/rfc822":
        inner = part.get_payload()
        return inner[0].as_bytes() if inner else b""
    return part.get_payload(decode=True) or b""


def _content(part: Optional[EmailMessage]) -> Optional[str]:
    if part is None:
        return None
    try:
        return part.get_content()
    except (LookupError, KeyError):
        return (part.get_payload(decode=True) or b"").decode("utf-8", errors="replace")


def parse_full_message(uid: int, flags: list[str], source: bytes) -> EmailFull:
    msg = message_from_bytes(source, policy=default_policy)

    text_part = msg.get_body(preferencelist=("plain",))
    html_part = msg.get_body(preferencelist=("html",))

    attachments = []
    for number, part in walk_parts(msg):
        if _is_attachment(part):
            attachments.append(AttachmentInfo(
                part=number,
                filename=part.get_filename() or f"part-{number}",
                content_type=part.get_content_type(),
                size=len(_part_bytes(part)),
            ))

    return EmailFull(
        uid=uid,
        sender=str(msg.get("From", "")),
        recipient=str(msg.get("To", "")),
        cc=str(msg["Cc"]) if msg.get("Cc") else None,
        subject=str(msg.get("Subject", "")),
        date=iso_date(msg.get("Date")),
        flags=flags,
        message_id=str(msg["Message-ID"]) if msg.get("Message-ID") else None,
        text=_content(text_part),
        html=_content(html_part),
        attachments=attachments,
    )


def search_terms(criteria: SearchCriteria) -> list[str]:
    terms: list[str] = []
    if criteria.sender:
        terms += ["FROM", quote(criteria.sender)]
    if criteria.recipient:
        terms += ["TO", quote(criteria.recipient)]
    if criteria.subject:
        terms += ["SUBJECT", quote(criteria.subject)]
    if criteria.since:
        terms += ["SINCE", imap_date(criteria.since)]
    if criteria.before:
        terms += ["BEFORE", imap_date(criteria.before)]
    if criteria.unseen:
        terms.append("UNSEEN")
    if criteria.text:
        terms += ["BODY", quote(criteria.text)]
    return terms or ["ALL"]


# --- Operations ---

class ImapMailbox:
    """Blocking IMAP operations against one account."""

    def __init__(self, config: ImapConfig, timeout_seconds: float = IMAP_TIMEOUT_SECONDS):
        self._config = config
        self._timeout = timeout_seconds

    def _connect(self) -> imaplib.IMAP4:
        cfg = self._config
        if cfg.tls:
            client = imaplib.IMAP4_SSL(cfg.host, cfg.port, timeout=self._timeout)
        else:
            client = imaplib.IMAP4(cfg.host, cfg.port, timeout=self._timeout)
        try:
            if not cfg.tls and "STARTTLS" in client.capabilities:
                client.starttls()
            client.login(cfg.user, cfg.password)
        except (imaplib.IMAP4.error, OSError):
            # Not logged in, so no LOGOUT; just close the socket.
            try:
                client.shutdown()
            except OSError as e:
                logger.debug(f"IMAP shutdown failed: {e}")
            raise
        return client

    @contextmanager
    def session(self, mailbox: Optional[str] = None, readonly: bool = True) -> Iterator[imaplib.IMAP4]:
        try:
            client = self._connect()
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailTransportError(f"IMAP connection to {self._config.host} failed: {e}") from e
        try:
            if mailbox is not None:
                typ, data = client.select(quote(mailbox), readonly=readonly)
                _check(typ, data, f"SELECT {mailbox}")
            yield client
        except imaplib.IMAP4.error as e:
            raise MailTransportError(f"IMAP error: {e}") from e
        except OSError as e:
            raise MailTransportError(f"IMAP connection to {self._config.host} lost: {e}") from e
        finally:
            try:
                client.logout()
            except (imaplib.IMAP4.error, OSError) as e:
                logger.debug(f"IMAP logout failed: {e}")

    def list_mailboxes(self) -> list[MailboxInfo]:
        with self.session() as client:
            typ, data = client.list()
            _check(typ, data, "LIST")
        boxes = []
        for line in data:
            if isinstance(line, tuple):
                prefix = re.sub(rb"\{\d+\}$", b"", line[0].rstrip())
                line = prefix + quote(line[1].decode(errors="replace")).encode()
            if not isinstance(line, bytes):
                continue
            info = parse_list_line(line)
            if info:
                boxes.append(info)
        return boxes

    def list_messages(self, mailbox: str, limit: int, offset: int) -> list[EmailEnvelope]:
        with self.session() as client:
            typ, data = client.select(quote(mailbox), readonly=True)
            total = int(_check(typ, data, f"SELECT {mailbox}")[0] or 0)
            if total == 0 or offset >= total or limit <= 0:
                return []
            end = total - offset
            start = max(1, end - limit + 1)
            typ, data = client.fetch(f"{start}:{end}", ENVELOPE_FIELDS)
            _check(typ, data, "FETCH")
        envelopes = [envelope_from_fetch(meta, literal) for meta, literal in split_fetch_response(data)]
        envelopes.sort(key=lambda e: e.uid, reverse=True)
        return envelopes

    def _fetch_full(self, client: imaplib.IMAP4, uid: int) -> tuple[list[str], bytes]:
        typ, data = client.uid("FETCH", str(uid), FULL_FIELDS)
        _check(typ, data, "UID FETCH")
        entries = split_fetch_response(data)
        if not entries:
            raise MailTransportError(f"Message UID {uid} not found")
        meta, source = entries[0]
        return _meta_flags(meta), source

    def get_message(self, mailbox: str, uid: int) -> EmailFull:
        with self.session(mailbox) as client:
            flags, source = self._fetch_full(client, uid)
        return parse_full_message(uid, flags, source)

    def search_messages(self, mailbox: str, criteria: SearchCriteria) -> list[EmailEnvelope]:
        terms = search_terms(criteria)
        with self.session(mailbox) as client:
            typ, data = client.uid("SEARCH", *terms)
            _check(typ, data, "UID SEARCH")
            uids = [int(u) for u in (data[0] or b"").split()]
            if not uids:
                return []
            limited = sorted(uids)[-MAX_SEARCH_RESULTS:]
            typ, data = client.uid("FETCH", ",".join(str(u) for u in limited), ENVELOPE_FIELDS)
            _check(typ, data, "UID FETCH")
        envelopes = [envelope_from_fetch(meta, literal) for meta, literal in split_fetch_response(data)]
        envelopes.sort(key=lambda e: e.uid, reverse=True)
        return envelopes

    def download_attachment(self, mailbox: str, uid: int, part: str) -> AttachmentContent:
        with self.session(mailbox) as client:
            _, source = self._fetch_full(client, uid)
        msg = message_from_bytes(source, policy=default_policy)
        for number, leaf in walk_parts(msg):
            if number == part:
                return AttachmentContent(
                    content=base64.b64encode(_part_bytes(leaf)).decode("ascii"),
                    content_type=leaf.get_content_type() or "application/octet-stream",
                )
        raise MailTransportError(f"Part {part} not found in message UID {uid}")

    def append_to_sent(self, raw_message: bytes) -> Optional[str]:
        boxes = self.list_mailboxes()
        sent = next((b for b in boxes if b.special_use == "\\Sent"), None) or next(
            (b for b in boxes if b.name.lower() == "sent"), None
        )
        if sent is None:
            logger.warning("No Sent folder found; message not saved")
            return None
        with self.session() as client:
            typ, data = client.append(
                quote(sent.path), "(\\Seen)", imaplib.Time2Internaldate(time.time()), raw_message
            )
            _check(typ, data, f"APPEND {sent.path}")
        return sent.path
