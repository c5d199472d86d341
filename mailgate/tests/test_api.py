"""
Tests for the HTTP surface: auth middleware, agent binding and tool endpoints.
Module globals (_authenticator, _executor) are patched in place of the lifespan.
"""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from mailgate.api.app import RequestIDFilter, app
from mailgate.shared.agent_context import agent_scope, current_agent_id
from mailgate.shared.auth import Authenticator
from mailgate.shared.config import ConfigResolver
from mailgate.shared.credentials import CredentialStore
from mailgate.shared.models import ToolResult

UNAUTHORIZED_BODY = {
    "jsonrpc": "2.0",
    "error": {"code": -32001, "message": "Unauthorized: Invalid or missing API key"},
    "id": None,
}


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


def _make_executor():
    executor = MagicMock()
    executor.has_tool = MagicMock(side_effect=lambda name: name in ("list_mailboxes", "read_email"))
    executor.get_tool_definitions = MagicMock(return_value=[
        {"name": "list_mailboxes", "description": "List mailboxes", "input_schema": {"type": "object"}},
    ])
    seen = []

    async def execute(tool_call):
        seen.append((tool_call.tool_name, tool_call.arguments, current_agent_id()))
        return ToolResult(tool_name=tool_call.tool_name, success=True, output={"agent": current_agent_id()})

    executor.execute = AsyncMock(side_effect=execute)
    executor.seen = seen
    return executor


@pytest.fixture
def multi_agent_auth(store):
    return Authenticator(ConfigResolver(store=store, environ={}))


@pytest.fixture
def static_auth():
    return Authenticator(ConfigResolver(store=CredentialStore.empty(), environ={"MCP_API_KEY": "static-789"}))


@pytest.fixture
def open_auth():
    return Authenticator(ConfigResolver(store=CredentialStore.empty(), environ={}))


@pytest.mark.asyncio
class TestHealthEndpoint:
    async def test_health_needs_no_key(self, multi_agent_auth):
        with patch("mailgate.api.app._authenticator", multi_agent_auth):
            async with _client() as client:
                resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert "X-Request-ID" in resp.headers


@pytest.mark.asyncio
class TestAuthMiddleware:
    async def test_not_ready(self):
        with patch("mailgate.api.app._authenticator", None):
            async with _client() as client:
                resp = await client.get("/mcp/tools")
        assert resp.status_code == 503

    @pytest.mark.parametrize("headers", [{}, {"x-api-key": ""}, {"x-api-key": "wrong"}])
    async def test_rejections_identical(self, multi_agent_auth, headers):
        executor = _make_executor()
        with patch("mailgate.api.app._authenticator", multi_agent_auth), \
             patch("mailgate.api.app._executor", executor):
            async with _client() as client:
                resp = await client.post("/mcp/tools/list_mailboxes", headers=headers)
        assert resp.status_code == 401
        assert resp.json() == UNAUTHORIZED_BODY
        executor.execute.assert_not_called()

    async def test_repeated_header_rejected(self, multi_agent_auth):
        with patch("mailgate.api.app._authenticator", multi_agent_auth), \
             patch("mailgate.api.app._executor", _make_executor()):
            async with _client() as client:
                resp = await client.get(
                    "/mcp/tools", headers=[("x-api-key", "key-coo-123"), ("x-api-key", "key-coo-123")]
                )
        assert resp.status_code == 401

    async def test_agent_bound_for_request(self, multi_agent_auth):
        executor = _make_executor()
        with patch("mailgate.api.app._authenticator", multi_agent_auth), \
             patch("mailgate.api.app._executor", executor):
            async with _client() as client:
                coo = await client.post("/mcp/tools/list_mailboxes", headers={"x-api-key": "key-coo-123"})
                dev = await client.post("/mcp/tools/list_mailboxes", headers={"x-api-key": "key-dev-456"})
        assert coo.json()["output"] == {"agent": "coo"}
        assert dev.json()["output"] == {"agent": "dev"}
        assert current_agent_id() is None

    async def test_static_key(self, static_auth):
        executor = _make_executor()
        with patch("mailgate.api.app._authenticator", static_auth), \
             patch("mailgate.api.app._executor", executor):
            async with _client() as client:
                ok = await client.post("/mcp/tools/list_mailboxes", headers={"x-api-key": "static-789"})
                bad = await client.post("/mcp/tools/list_mailboxes", headers={"x-api-key": "static-000"})
        assert ok.status_code == 200
        assert ok.json()["output"] == {"agent": None}
        assert bad.status_code == 401

    async def test_open_mode_allows_keyless(self, open_auth):
        with patch("mailgate.api.app._authenticator", open_auth), \
             patch("mailgate.api.app._executor", _make_executor()):
            async with _client() as client:
                resp = await client.get("/mcp/tools")
        assert resp.status_code == 200


@pytest.mark.asyncio
class TestToolEndpoints:
    async def test_list_tools(self, open_auth):
        with patch("mailgate.api.app._authenticator", open_auth), \
             patch("mailgate.api.app._executor", _make_executor()):
            async with _client() as client:
                resp = await client.get("/mcp/tools")
        assert resp.json()["tools"][0]["name"] == "list_mailboxes"

    async def test_unknown_tool_404(self, open_auth):
        with patch("mailgate.api.app._authenticator", open_auth), \
             patch("mailgate.api.app._executor", _make_executor()):
            async with _client() as client:
                resp = await client.post("/mcp/tools/rm_rf", json={})
        assert resp.status_code == 404

    async def test_arguments_forwarded(self, open_auth):
        executor = _make_executor()
        with patch("mailgate.api.app._authenticator", open_auth), \
             patch("mailgate.api.app._executor", executor):
            async with _client() as client:
                resp = await client.post("/mcp/tools/read_email", json={"uid": 42})
        assert resp.status_code == 200
        assert executor.seen == [("read_email", {"uid": 42}, None)]

    async def test_non_object_body_rejected(self, open_auth):
        with patch("mailgate.api.app._authenticator", open_auth), \
             patch("mailgate.api.app._executor", _make_executor()):
            async with _client() as client:
                resp = await client.post("/mcp/tools/read_email", json=[1, 2])
        assert resp.status_code == 422

    async def test_malformed_json_rejected(self, open_auth):
        executor = _make_executor()
        with patch("mailgate.api.app._authenticator", open_auth), \
             patch("mailgate.api.app._executor", executor):
            async with _client() as client:
                resp = await client.post(
                    "/mcp/tools/read_email",
                    content=b'{"uid": 42',
                    headers={"content-type": "application/json"},
                )
        assert resp.status_code == 422
        assert "valid JSON" in resp.json()["detail"]
        assert executor.seen == []

    async def test_executor_not_ready(self, open_auth):
        with patch("mailgate.api.app._authenticator", open_auth), \
             patch("mailgate.api.app._executor", None):
            async with _client() as client:
                resp = await client.get("/mcp/tools")
        assert resp.status_code == 503


class TestRequestIDFilter:
    def test_injects_agent(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
        with agent_scope("coo"):
            RequestIDFilter().filter(record)
        assert record.agent_id == "coo"
        assert record.request_id == "-"
