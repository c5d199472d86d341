"""Audited read path for untrusted inbound mail."""

__all__ = ["mail_gate"]
