"""
Security primitives for mailgate.
Handles constant-time key comparison and untrusted-boundary neutralization.
"""

import hmac
import logging
import re
from typing import Optional

from .constants import MARKER_PLACEHOLDER, UNTRUSTED_CLOSE, UNTRUSTED_OPEN

logger = logging.getLogger(__name__)


def constant_time_equals(candidate: bytes, expected: bytes) -> bool:
    """
    Compare two byte strings without leaking where they differ.

    Only a length mismatch exits early; the length of the caller's key is
    already visible from the request.
    """
    if len(candidate) != len(expected):
        return False
    return hmac.compare_digest(candidate, expected)


class UntrustedContentGuard:
    """
    Demarcates external content for a downstream agent.

    Fetched mail is wrapped in a single <untrusted>...</untrusted> pair. Any
    lookalike of that boundary already inside the content is replaced first,
    so a message cannot close the boundary early and smuggle instructions
    out of it.
    """

    # Opening/closing forms with <>, [] or {} brackets, any case, optional
    # whitespace and a short suffix such as "-content" or ' source="x"'.
    MARKER_PATTERN = re.compile(
        r"[<\[{]\s*/?\s*untrusted(?:[\s_:-][^<>\[\]{}\n]{0,80})?\s*/?\s*[>\]}]",
        re.IGNORECASE,
    )

    def contains_marker(self, text: str) -> bool:
        return bool(self.MARKER_PATTERN.search(text))

    def neutralize(self, text: str) -> str:
        """Replace every boundary-marker lookalike with a fixed placeholder."""
        result, count = self.MARKER_PATTERN.subn(MARKER_PLACEHOLDER, text)
        if count:
            logger.warning(f"Neutralized {count} boundary marker(s) in untrusted content")
        return result

    def wrap(self, text: str) -> str:
        """Neutralize, then wrap in exactly one fresh boundary pair."""
        return f"{UNTRUSTED_OPEN}\n{self.neutralize(text)}\n{UNTRUSTED_CLOSE}"

    def sanitize_field(self, value: Optional[str]) -> Optional[str]:
        """Neutralize a short header-like field without wrapping it."""
        if value is None:
            return None
        return self.neutralize(value)
