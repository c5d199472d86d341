"""
Authenticator - API-key checks for inbound calls.

Three modes, chosen per call:

  MULTI_AGENT  the credential file defines agents; the key selects one and
               that agent is bound for the rest of the call.
  STATIC_KEY   no agents, but MCP_API_KEY is set; the key must match it.
  OPEN         neither is configured; every call is allowed with no
               identity bound. Local development only. Set
               MCP_REQUIRE_AUTH=true to refuse to start in this mode.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from .config import ConfigResolver
from .errors import OpenAuthDisallowed, Unauthorized
from .security import constant_time_equals

logger = logging.getLogger(__name__)


class AuthMode(Enum):
    OPEN = "open"
    STATIC_KEY = "static_key"
    MULTI_AGENT = "multi_agent"


@dataclass(frozen=True)
class AuthResult:
    mode: AuthMode
    agent_id: Optional[str] = None


def extract_api_key(values: Sequence[str]) -> Optional[str]:
    """Reduce the raw header values to one key, or None if absent/repeated/empty."""
    if len(values) != 1:
        return None
    value = values[0]
    if not isinstance(value, str) or not value:
        return None
    return value


class Authenticator:
    """Validates caller API keys against the credential store or the static key."""

    def __init__(self, resolver: ConfigResolver):
        self._resolver = resolver

    def current_mode(self) -> AuthMode:
        if self._resolver.store.has_agents():
            return AuthMode.MULTI_AGENT
        if self._resolver.get_env("MCP_API_KEY"):
            return AuthMode.STATIC_KEY
        return AuthMode.OPEN

    def assert_not_open(self) -> None:
        """Raise if calls would be accepted without any key."""
        if self.current_mode() == AuthMode.OPEN:
            raise OpenAuthDisallowed(
                "No agents file and no MCP_API_KEY configured, but MCP_REQUIRE_AUTH is set"
            )

    def authenticate(self, provided: object) -> AuthResult:
        """
        Check one call's key. Returns the mode and the bound agent (if any).
        Raises Unauthorized on any failure, with the same message every time.
        """
        store = self._resolver.store
        multi_agent = store.has_agents()
        static_key = None if multi_agent else self._resolver.get_env("MCP_API_KEY")

        if not multi_agent and not static_key:
            return AuthResult(mode=AuthMode.OPEN)

        if not isinstance(provided, str) or not provided:
            logger.warning("Rejected call: missing or malformed API key")
            raise Unauthorized()

        candidate = provided.encode("utf-8")

        if multi_agent:
            agent_id = store.resolve_by_api_key(candidate)
            if agent_id is None:
                logger.warning("Rejected call: API key matched no agent")
                raise Unauthorized()
            logger.debug(f"Authenticated agent {agent_id}")
            return AuthResult(mode=AuthMode.MULTI_AGENT, agent_id=agent_id)

        if not constant_time_equals(candidate, static_key.encode("utf-8")):
            logger.warning("Rejected call: API key mismatch")
            raise Unauthorized()
        return AuthResult(mode=AuthMode.STATIC_KEY)
