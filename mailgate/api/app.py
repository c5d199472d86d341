"""
FastAPI application - HTTP surface for the mail gateway.
Every path under /mcp goes through the API-key middleware; /health does not.
"""

import contextvars
import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from mailgate import __version__
from mailgate.mail.transport import MailTransport
from mailgate.mcp_tools.executor import EmailToolExecutor
from mailgate.shared.agent_context import agent_scope, current_agent_id
from mailgate.shared.audit_log import HttpAuditSink
from mailgate.shared.auth import Authenticator, extract_api_key
from mailgate.shared.config import ConfigResolver
from mailgate.shared.constants import API_KEY_HEADER, PROTECTED_PATH_PREFIX
from mailgate.shared.credentials import get_credential_store
from mailgate.shared.errors import Unauthorized
from mailgate.shared.models import ToolCall

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] [%(agent_id)s] %(name)s:%(message)s"

# ── Request ID tracking via ContextVar ────────────────────────────────────────
_request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


class RequestIDFilter(logging.Filter):
    """Injects the current request ID and bound agent into every log record."""
    def filter(self, record):
        record.request_id = _request_id_ctx.get("-")
        record.agent_id = current_agent_id() or "-"
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Generates a unique request ID, stores it in ContextVar, adds to response header."""
    async def dispatch(self, request: Request, call_next):
        request_id = uuid.uuid4().hex[:12]
        _request_id_ctx.set(request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def unauthorized_response() -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"jsonrpc": "2.0", "error": Unauthorized().to_dict(), "id": None},
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Checks the x-api-key header on protected paths and binds the resolved
    agent for the rest of the request.
    """
    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(PROTECTED_PATH_PREFIX):
            return await call_next(request)

        if _authenticator is None:
            return JSONResponse(status_code=503, content={"detail": "Not ready"})

        provided = extract_api_key(request.headers.getlist(API_KEY_HEADER))
        try:
            result = _authenticator.authenticate(provided)
        except Unauthorized:
            return unauthorized_response()

        if result.agent_id is None:
            return await call_next(request)
        with agent_scope(result.agent_id):
            return await call_next(request)


# Global references set during lifespan
_resolver: Optional[ConfigResolver] = None
_authenticator: Optional[Authenticator] = None
_executor: Optional[EmailToolExecutor] = None


def configure_logging(log_level: str, log_file_dir: str) -> None:
    level = getattr(logging, log_level, logging.INFO)

    rid_filter = RequestIDFilter()
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addFilter(rid_filter)

    if not root_logger.handlers:
        console = logging.StreamHandler()
        console.setLevel(level)
        root_logger.addHandler(console)

    for handler in root_logger.handlers:
        handler.setFormatter(formatter)
        handler.addFilter(rid_filter)

    # uvicorn loggers don't propagate to root
    for uv_logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        uv_log = logging.getLogger(uv_logger_name)
        uv_log.addFilter(rid_filter)
        for handler in uv_log.handlers:
            handler.setFormatter(formatter)
            handler.addFilter(rid_filter)

    if log_file_dir:
        os.makedirs(log_file_dir, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        log_file = os.path.join(log_file_dir, f"mailgate_{timestamp}.log")
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(rid_filter)
        root_logger.addHandler(file_handler)
        for uv_logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
            logging.getLogger(uv_logger_name).addHandler(file_handler)
        logger.info(f"Logging to file: {log_file}")


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover
    """Application startup and shutdown."""
    global _resolver, _authenticator, _executor

    load_dotenv()
    store = get_credential_store()  # fail fast on a malformed agents file
    _resolver = ConfigResolver()
    server = _resolver.server_config()
    configure_logging(server.log_level, server.log_file_dir)

    _authenticator = Authenticator(_resolver)
    if server.require_auth:
        _authenticator.assert_not_open()

    _executor = EmailToolExecutor(_resolver, MailTransport(), HttpAuditSink())

    logger.info(
        f"mailgate started in {_authenticator.current_mode().value} mode "
        f"({len(store.agent_ids)} agents)"
    )
    yield
    logger.info("mailgate shutdown")


app = FastAPI(
    title="mailgate",
    description="Agent-scoped email gateway",
    version=__version__,
    lifespan=lifespan,
)

# Last added runs first: request id is assigned before auth logs anything.
app.add_middleware(AuthMiddleware)
app.add_middleware(RequestIDMiddleware)


# --- API Endpoints ---

@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/mcp/tools")
async def get_tools():
    if not _executor:
        raise HTTPException(503, "Not ready")
    return {"tools": _executor.get_tool_definitions()}


@app.post("/mcp/tools/{tool_name}")
async def call_tool(tool_name: str, request: Request):
    if not _executor:
        raise HTTPException(503, "Not ready")
    if not _executor.has_tool(tool_name):
        raise HTTPException(404, f"Unknown tool: {tool_name}")

    body = await request.body()
    try:
        arguments = await request.json() if body else {}
    except ValueError:
        raise HTTPException(422, "Tool arguments must be valid JSON")
    if not isinstance(arguments, dict):
        raise HTTPException(422, "Tool arguments must be a JSON object")

    result = await _executor.execute(ToolCall(tool_name=tool_name, arguments=arguments))
    return result.to_dict()
