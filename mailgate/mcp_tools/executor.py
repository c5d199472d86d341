"""
Tool executor - routes tool calls to the email tools.

Arguments are validated against the pydantic models in tool_schemas before
a tool runs. Config is resolved inside each tool, so the agent bound by the
authenticator decides which mailbox and SMTP account are used. No retries:
a failure is reported straight back to the caller.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from mailgate.gate.mail_gate import MailGate
from mailgate.shared.agent_context import current_agent_id
from mailgate.shared.config import ConfigResolver
from mailgate.shared.errors import MailGateError
from mailgate.shared.interfaces import IAuditSink, IMailTransport
from mailgate.shared.models import ToolCall, ToolResult
from mailgate.shared.security import UntrustedContentGuard

from .email_tools import (
    DownloadAttachmentTool,
    ListEmailsTool,
    ListMailboxesTool,
    ReadEmailTool,
    SearchEmailsTool,
    SendEmailTool,
)
from .tool_schemas import TOOL_ARG_MODELS

logger = logging.getLogger(__name__)


class EmailToolExecutor:
    """Validates and dispatches tool calls for the currently bound agent."""

    def __init__(
        self,
        resolver: ConfigResolver,
        transport: IMailTransport,
        sink: IAuditSink,
        guard: Optional[UntrustedContentGuard] = None,
    ):
        guard = guard or UntrustedContentGuard()
        self._gate = MailGate(transport, sink, resolver, guard)

        self._tool_map = {
            "send_email": SendEmailTool(resolver, transport),
            "list_mailboxes": ListMailboxesTool(resolver, transport),
            "list_emails": ListEmailsTool(resolver, transport, guard),
            "read_email": ReadEmailTool(self._gate),
            "search_emails": SearchEmailsTool(resolver, transport, guard),
            "download_attachment": DownloadAttachmentTool(resolver, transport),
        }

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self._tool_map

    def get_tool_definitions(self) -> list:
        return [tool.definition() for tool in self._tool_map.values()]

    async def execute(self, tool_call: ToolCall) -> ToolResult:
        tool = self._tool_map.get(tool_call.tool_name)
        if not tool:
            return ToolResult(
                tool_name=tool_call.tool_name,
                success=False,
                error=f"Unknown tool: {tool_call.tool_name}",
            )

        arg_model = TOOL_ARG_MODELS[tool_call.tool_name]
        try:
            validated_args = arg_model.model_validate(tool_call.arguments or {}).model_dump()
        except ValidationError as e:
            logger.warning(f"Arg validation failed for {tool_call.tool_name}: {e}")
            return ToolResult(
                tool_name=tool_call.tool_name,
                success=False,
                error=f"Invalid arguments: {e}",
            )

        agent = current_agent_id() or "-"
        logger.info(f"Executing tool: {tool_call.tool_name} (agent={agent})")

        try:
            raw = await tool.execute(**validated_args)
        except MailGateError as e:
            logger.error(f"{tool_call.tool_name} error: {e}")
            return ToolResult(tool_name=tool_call.tool_name, success=False, error=str(e))
        except Exception as e:
            logger.exception(f"{tool_call.tool_name} unexpected error")
            return ToolResult(
                tool_name=tool_call.tool_name,
                success=False,
                error=f"Execution error: {type(e).__name__}",
            )

        return ToolResult(
            tool_name=tool_call.tool_name,
            success=raw.get("success", False),
            output=raw.get("output"),
            error=raw.get("error"),
        )
