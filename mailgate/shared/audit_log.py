"""
Audit sink - append-only external log for gated reads.

Each gated read produces one AuditRecord which is posted to a channel on
an HTTP log service:

    POST {AUDIT_SINK_URL}/channels/{channel}/messages
    Authorization: Bearer {AUDIT_SINK_TOKEN}
    {"channel": ..., "text": ..., "record": {...}}

Delivery is best effort. A missing URL/token, a non-2xx response or a
transport error is logged locally and reported as "not logged"; it never
fails the read.
"""

import asyncio
import logging

import aiohttp

from .config import AuditSinkConfig
from .constants import AUDIT_SINK_TIMEOUT_SECONDS
from .errors import AuditSinkFailure
from .interfaces import IAuditSink
from .models import AuditRecord

logger = logging.getLogger(__name__)


class HttpAuditSink(IAuditSink):
    """Posts audit records to an HTTP append endpoint."""

    def __init__(self, timeout_seconds: float = AUDIT_SINK_TIMEOUT_SECONDS):
        self._timeout = timeout_seconds

    async def deliver(self, config: AuditSinkConfig, record: AuditRecord) -> bool:
        try:
            await self._post(config, record)
        except AuditSinkFailure as e:
            logger.error(f"Audit record {record.ref_id} not logged: {e}")
            return False
        logger.info(f"Audit record {record.ref_id} logged to #{config.channel}")
        return True

    async def _post(self, config: AuditSinkConfig, record: AuditRecord) -> None:
        if not config.url or not config.token:
            raise AuditSinkFailure("AUDIT_SINK_URL / AUDIT_SINK_TOKEN not configured")

        url = f"{config.url.rstrip('/')}/channels/{config.channel}/messages"
        payload = {
            "channel": config.channel,
            "text": record.render(),
            "record": record.to_dict(),
        }
        headers = {"Authorization": f"Bearer {config.token}"}

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self._timeout),
                ) as resp:
                    if resp.status < 200 or resp.status >= 300:
                        raise AuditSinkFailure(f"HTTP {resp.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AuditSinkFailure(str(e) or type(e).__name__) from e
