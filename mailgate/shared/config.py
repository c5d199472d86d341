"""
Agent-aware configuration resolution for mailgate.

Every setting is looked up through ConfigResolver.get_env, which consults,
in order:

  1. the bound agent's own override (see agent_context),
  2. the shared defaults from the credential file,
  3. the process environment (empty strings count as unset).

The derived config objects below are rebuilt on every call because the
bound agent can differ from one call to the next.
"""

import os
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from .agent_context import current_agent_id
from .constants import (
    DEFAULT_AUDIT_CHANNEL,
    DEFAULT_IMAP_PORT,
    DEFAULT_MCP_HOST,
    DEFAULT_MCP_PORT,
    DEFAULT_SMTP_PORT,
    MAX_PORT,
    MIN_PORT,
)
from .credentials import CredentialStore, get_credential_store
from .errors import InvalidConfig, MissingConfig


@dataclass(frozen=True)
class ServerConfig:
    """Listener and authentication settings."""
    host: str = DEFAULT_MCP_HOST
    port: int = int(DEFAULT_MCP_PORT)
    api_key: Optional[str] = field(default=None, repr=False)
    require_auth: bool = False
    log_level: str = "INFO"
    log_file_dir: str = ""  # Directory for timestamped log files; empty = no file logging


@dataclass(frozen=True)
class EmailConfig:
    """SMTP settings for the bound agent."""
    host: str
    port: int
    from_addr: str
    user: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    save_sent: bool = True


@dataclass(frozen=True)
class ImapConfig:
    """IMAP settings for the bound agent."""
    host: str
    port: int
    user: str
    password: str = field(repr=False)
    tls: bool = True


@dataclass(frozen=True)
class AuditSinkConfig:
    """Where gated reads are logged. url/token may be absent (delivery then fails soft)."""
    url: Optional[str] = None
    token: Optional[str] = field(default=None, repr=False)
    channel: str = DEFAULT_AUDIT_CHANNEL


def parse_port(key: str, raw: str) -> int:
    """Parse a TCP port, failing fast on anything outside 1-65535."""
    text = raw.strip()
    if not (text.isascii() and text.isdigit()):
        raise InvalidConfig(key, raw)
    port = int(text)
    if port < MIN_PORT or port > MAX_PORT:
        raise InvalidConfig(key, raw)
    return port


def _flag(raw: Optional[str], default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class ConfigResolver:
    """Resolves settings for whichever agent is bound when a method is called."""

    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self._environ = environ if environ is not None else os.environ
        self._store_provider: Callable[[], CredentialStore] = (
            (lambda: store) if store is not None else get_credential_store
        )

    @property
    def store(self) -> CredentialStore:
        return self._store_provider()

    def get_env(self, key: str) -> Optional[str]:
        agent_id = current_agent_id()
        if agent_id:
            value = self.store.agent_override(agent_id, key)
            if value is not None:
                return value
        value = self._environ.get(key)
        return value or None

    def get_required_env(self, key: str) -> str:
        value = self.get_env(key)
        if not value:
            raise MissingConfig(key, current_agent_id())
        return value

    # --- Derived config ---

    def server_config(self) -> ServerConfig:
        port = parse_port("MCP_PORT", self.get_env("MCP_PORT") or DEFAULT_MCP_PORT)
        return ServerConfig(
            host=self.get_env("MCP_HOST") or DEFAULT_MCP_HOST,
            port=port,
            api_key=self.get_env("MCP_API_KEY"),
            require_auth=_flag(self.get_env("MCP_REQUIRE_AUTH"), default=False),
            log_level=(self.get_env("LOG_LEVEL") or "INFO").upper(),
            log_file_dir=self.get_env("LOG_FILE_DIR") or "",
        )

    def email_config(self) -> EmailConfig:
        return EmailConfig(
            host=self.get_required_env("SMTP_HOST"),
            port=parse_port("SMTP_PORT", self.get_env("SMTP_PORT") or DEFAULT_SMTP_PORT),
            from_addr=self.get_env("SMTP_FROM") or self.get_required_env("SMTP_USER"),
            user=self.get_env("SMTP_USER"),
            password=self.get_env("SMTP_PASS"),
            save_sent=_flag(self.get_env("SMTP_SAVE_SENT"), default=True),
        )

    def imap_config(self) -> ImapConfig:
        return ImapConfig(
            host=self.get_required_env("IMAP_HOST"),
            port=parse_port("IMAP_PORT", self.get_env("IMAP_PORT") or DEFAULT_IMAP_PORT),
            user=self.get_required_env("IMAP_USER"),
            password=self.get_required_env("IMAP_PASS"),
            tls=(self.get_env("IMAP_TLS") or "true") != "false",
        )

    def audit_sink_config(self) -> AuditSinkConfig:
        return AuditSinkConfig(
            url=self.get_env("AUDIT_SINK_URL"),
            token=self.get_env("AUDIT_SINK_TOKEN"),
            channel=self.get_env("AUDIT_CHANNEL") or DEFAULT_AUDIT_CHANNEL,
        )
