"""Shared cross-cutting concerns: config, credentials, auth, agent context, audit."""

__all__ = [
    "agent_context",
    "audit_log",
    "auth",
    "config",
    "constants",
    "credentials",
    "errors",
    "interfaces",
    "models",
    "security",
]
