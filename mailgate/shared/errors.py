"""
Exception hierarchy for mailgate.

Configuration and authentication errors propagate to the request handler.
AuditSinkFailure is the one error that is caught and downgraded
(see audit_log.HttpAuditSink.deliver).
"""

from typing import Optional

from .constants import AUTH_ERROR_CODE, AUTH_ERROR_MESSAGE


class MailGateError(Exception):
    """Base class for all mailgate errors."""


class ConfigLoadFailure(MailGateError):
    """The credential file exists but could not be read or parsed."""


class MissingConfig(MailGateError):
    """A required setting resolved to absent."""

    def __init__(self, key: str, agent_id: Optional[str] = None):
        self.key = key
        self.agent_id = agent_id
        ctx = f" (agent: {agent_id})" if agent_id else ""
        super().__init__(f"Missing required config: {key}{ctx}")


class InvalidConfig(MailGateError):
    """A setting is present but cannot be parsed (e.g. a port out of range)."""

    def __init__(self, key: str, raw: str):
        self.key = key
        self.raw = raw
        super().__init__(f"Invalid {key}: {raw}")


class Unauthorized(MailGateError):
    """
    Authentication rejected.

    The message is identical for a missing key, a malformed key and a
    mismatched key so the response is not an oracle.
    """

    code = AUTH_ERROR_CODE

    def __init__(self):
        super().__init__(AUTH_ERROR_MESSAGE)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": AUTH_ERROR_MESSAGE}


class OpenAuthDisallowed(MailGateError):
    """Open (no-auth) mode is active but the deployment requires auth."""


class AuditSinkFailure(MailGateError):
    """The audit sink rejected or could not receive a record."""


class MailTransportError(MailGateError):
    """An SMTP/IMAP operation failed."""
