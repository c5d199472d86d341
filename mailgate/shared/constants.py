"""
Named constants for mailgate.

Defaults, header names and wire-level codes live here so the rest of the
code base refers to them by name.
"""

# ── Authentication ───────────────────────────────────────────

API_KEY_HEADER = "x-api-key"
"""Header carrying the caller's API key."""

AUTH_ERROR_CODE = -32001
"""Error code reported to the caller on any authentication failure."""

AUTH_ERROR_MESSAGE = "Unauthorized: Invalid or missing API key"
"""Single message for every authentication failure."""

PROTECTED_PATH_PREFIX = "/mcp"
"""Requests under this prefix must pass the authenticator."""

RESERVED_OVERRIDE_KEY = "apiKey"
"""Credential file key that is never reachable through override lookups."""

# ── Credential file ──────────────────────────────────────────

AGENTS_FILE_ENV = "MCP_AGENTS_FILE"
DEFAULT_AGENTS_FILE = "agents.json"

# ── Server defaults ──────────────────────────────────────────

DEFAULT_MCP_PORT = "3000"
DEFAULT_MCP_HOST = "127.0.0.1"
DEFAULT_SMTP_PORT = "587"
DEFAULT_IMAP_PORT = "993"
MIN_PORT = 1
MAX_PORT = 65535

# ── Mail ─────────────────────────────────────────────────────

DEFAULT_MAILBOX = "INBOX"
DEFAULT_LIST_LIMIT = 20
MAX_SEARCH_RESULTS = 50
"""search_emails returns at most this many of the newest matches."""

# ── Audit / gate ─────────────────────────────────────────────

DEFAULT_AUDIT_CHANNEL = "email-audit"
AUDIT_SINK_TIMEOUT_SECONDS = 10
UNKNOWN_AGENT = "unknown"
NO_BODY_PLACEHOLDER = "(no body)"
NO_ATTACHMENTS_PLACEHOLDER = "(none)"
NO_MESSAGE_ID_PLACEHOLDER = "(none)"

UNTRUSTED_OPEN = "<untrusted>"
UNTRUSTED_CLOSE = "</untrusted>"
MARKER_PLACEHOLDER = "[marker removed]"
"""Replaces any boundary-marker lookalike found inside fetched content."""
