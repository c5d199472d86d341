"""
Credential Store - per-agent API keys and configuration overrides.

Loaded once from a JSON file shaped like:

    {
      "agents": {
        "coo": {"apiKey": "key-coo-123", "SMTP_FROM": "coo@biz.com"},
        "dev": {"apiKey": "key-dev-456"}
      },
      "shared": {"SMTP_HOST": "smtp.biz.com"}
    }

A missing file means "no agents configured" (single-tenant / local dev).
Any other read or parse failure is fatal. After loading, the store is
read-only and safe to share between concurrent requests without locking.
"""

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from .constants import AGENTS_FILE_ENV, DEFAULT_AGENTS_FILE, RESERVED_OVERRIDE_KEY
from .errors import ConfigLoadFailure
from .security import constant_time_equals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialRecord:
    """One agent: its identity, its API key and its own overrides."""
    agent_id: str
    api_key: bytes = field(repr=False)
    overrides: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


class CredentialStore:
    """Immutable view of the credential file."""

    def __init__(
        self,
        agents: Optional[Mapping[str, CredentialRecord]] = None,
        shared: Optional[Mapping[str, str]] = None,
    ):
        self._agents = MappingProxyType(dict(agents or {}))
        self._shared = MappingProxyType(dict(shared or {}))

    @classmethod
    def empty(cls) -> "CredentialStore":
        return cls()

    @classmethod
    def from_dict(cls, data: object, source: str = "<dict>") -> "CredentialStore":
        """Validate a parsed credential document and build a store."""
        if not isinstance(data, dict):
            raise ConfigLoadFailure(f"{source}: top level must be an object")

        raw_agents = data.get("agents", {})
        if not isinstance(raw_agents, dict):
            raise ConfigLoadFailure(f"{source}: 'agents' must be an object")

        raw_shared = data.get("shared") or {}
        if not isinstance(raw_shared, dict):
            raise ConfigLoadFailure(f"{source}: 'shared' must be an object")
        for key, value in raw_shared.items():
            if not isinstance(value, str):
                raise ConfigLoadFailure(f"{source}: shared.{key} must be a string")

        agents: dict[str, CredentialRecord] = {}
        seen_keys: list[tuple[str, bytes]] = []
        for agent_id, entry in raw_agents.items():
            if not isinstance(entry, dict):
                raise ConfigLoadFailure(f"{source}: agent '{agent_id}' must be an object")
            api_key = entry.get(RESERVED_OVERRIDE_KEY)
            if not isinstance(api_key, str) or not api_key:
                raise ConfigLoadFailure(
                    f"{source}: agent '{agent_id}' needs a non-empty string {RESERVED_OVERRIDE_KEY}"
                )
            overrides = {}
            for key, value in entry.items():
                if key == RESERVED_OVERRIDE_KEY:
                    continue
                if not isinstance(value, str):
                    raise ConfigLoadFailure(f"{source}: agents.{agent_id}.{key} must be a string")
                overrides[key] = value

            key_bytes = api_key.encode("utf-8")
            for other_id, other_key in seen_keys:
                if constant_time_equals(key_bytes, other_key):
                    raise ConfigLoadFailure(
                        f"{source}: agents '{other_id}' and '{agent_id}' share an API key"
                    )
            seen_keys.append((agent_id, key_bytes))

            agents[agent_id] = CredentialRecord(
                agent_id=agent_id,
                api_key=key_bytes,
                overrides=MappingProxyType(overrides),
            )

        return cls(agents=agents, shared=raw_shared)

    @classmethod
    def load(cls, path: str) -> "CredentialStore":
        """Load from a JSON file. A missing file yields an empty store."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            logger.info(f"No credential file at {path}; running without agents")
            return cls.empty()
        except OSError as e:
            raise ConfigLoadFailure(f"Failed to load {path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigLoadFailure(f"Failed to load {path}: {e}") from e

        store = cls.from_dict(data, source=path)
        logger.info(f"Loaded {len(store.agent_ids)} agent(s) from {path}")
        return store

    @property
    def agent_ids(self) -> tuple[str, ...]:
        return tuple(self._agents)

    @property
    def shared(self) -> Mapping[str, str]:
        return self._shared

    def has_agents(self) -> bool:
        return len(self._agents) > 0

    def resolve_by_api_key(self, candidate: bytes) -> Optional[str]:
        """
        Return the agent whose API key equals `candidate`, or None.

        Every record is compared with a constant-time check. Keys are unique
        (enforced at load), so at most one record can match.
        """
        matched = None
        for record in self._agents.values():
            if constant_time_equals(candidate, record.api_key) and matched is None:
                matched = record.agent_id
        return matched

    def agent_override(self, agent_id: str, key: str) -> Optional[str]:
        """Agent's own value, else the shared default, else None. Never the API key."""
        if key == RESERVED_OVERRIDE_KEY:
            return None
        record = self._agents.get(agent_id)
        if record is not None and key in record.overrides:
            return record.overrides[key]
        return self._shared.get(key)


# --- Process-wide store (loaded once) ---

_store: Optional[CredentialStore] = None
_store_lock = threading.Lock()


def agents_file_path() -> str:
    return os.path.abspath(os.environ.get(AGENTS_FILE_ENV) or DEFAULT_AGENTS_FILE)


def get_credential_store() -> CredentialStore:
    """Return the process-wide store, loading it on first use."""
    global _store
    if _store is not None:
        return _store
    with _store_lock:
        if _store is None:
            _store = CredentialStore.load(agents_file_path())
        return _store


def reset_credential_store() -> None:
    """Forget the loaded store so the next access reloads it. For tests."""
    global _store
    with _store_lock:
        _store = None
