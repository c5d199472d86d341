"""Email tools: argument schemas, tool implementations, executor."""

__all__ = [
    "email_tools",
    "executor",
    "tool_schemas",
]
