"""
Pydantic models for tool argument schemas - single source of truth.

Tool definitions and argument validation both derive from these models:
  - Tool.definition() calls `pydantic_to_input_schema(...)` for input_schema
  - EmailToolExecutor validates args with `schema.model_validate(args)` before execution
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from mailgate.shared.constants import DEFAULT_LIST_LIMIT, DEFAULT_MAILBOX


class AttachmentArg(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: str = Field(description="Attachment filename")
    content: str = Field(description="Base64-encoded file content")
    content_type: Optional[str] = Field(default=None, alias="contentType", description="MIME type (e.g. application/pdf)")


class SendEmailArgs(BaseModel):
    """Arguments for send_email tool."""
    to: str = Field(description="Recipient email address")
    subject: str = Field(description="Email subject line")
    body: str = Field(description="Email body text (plain text)")
    html: Optional[str] = Field(default=None, description="Email body HTML, sent alongside plain text")
    cc: Optional[str] = Field(default=None, description="CC recipients (comma-separated)")
    bcc: Optional[str] = Field(default=None, description="BCC recipients (comma-separated)")
    attachments: list[AttachmentArg] = Field(default_factory=list, description="File attachments")


class ListMailboxesArgs(BaseModel):
    """list_mailboxes takes no arguments."""
    pass


class ListEmailsArgs(BaseModel):
    """Arguments for list_emails tool."""
    mailbox: str = Field(default=DEFAULT_MAILBOX, description="Mailbox path")
    limit: int = Field(default=DEFAULT_LIST_LIMIT, ge=1, le=500, description="Max messages to return")
    offset: int = Field(default=0, ge=0, description="Skip N newest messages")


class ReadEmailArgs(BaseModel):
    """Arguments for read_email tool."""
    uid: int = Field(ge=1, description="Message UID from list_emails or search_emails")
    mailbox: str = Field(default=DEFAULT_MAILBOX, description="Mailbox path")
    include_body: bool = Field(default=True, description="Return the sanitized message body")


class SearchEmailsArgs(BaseModel):
    """Arguments for search_emails tool."""
    model_config = ConfigDict(populate_by_name=True)

    mailbox: str = Field(default=DEFAULT_MAILBOX, description="Mailbox path")
    sender: Optional[str] = Field(default=None, alias="from", description="Filter by sender address")
    recipient: Optional[str] = Field(default=None, alias="to", description="Filter by recipient address")
    subject: Optional[str] = Field(default=None, description="Filter by subject text")
    since: Optional[str] = Field(default=None, description="Messages since date (ISO 8601, e.g. 2026-01-01)")
    before: Optional[str] = Field(default=None, description="Messages before date (ISO 8601)")
    unseen: bool = Field(default=False, description="Only unread messages")
    text: Optional[str] = Field(default=None, description="Search in message body text")


class DownloadAttachmentArgs(BaseModel):
    """Arguments for download_attachment tool."""
    uid: int = Field(ge=1, description="Message UID")
    part: str = Field(description="Attachment part number from read_email")
    mailbox: str = Field(default=DEFAULT_MAILBOX, description="Mailbox path")


def pydantic_to_input_schema(model: type[BaseModel]) -> dict:
    """
    Convert a Pydantic model to an MCP-style input_schema.

    Strips the top-level 'title', which tool definitions do not need.
    """
    schema = model.model_json_schema(by_alias=True)
    schema.pop("title", None)
    schema.setdefault("type", "object")
    return schema


# Map tool names to their arg models for runtime validation
TOOL_ARG_MODELS: dict[str, type[BaseModel]] = {
    "send_email": SendEmailArgs,
    "list_mailboxes": ListMailboxesArgs,
    "list_emails": ListEmailsArgs,
    "read_email": ReadEmailArgs,
    "search_emails": SearchEmailsArgs,
    "download_attachment": DownloadAttachmentArgs,
}
