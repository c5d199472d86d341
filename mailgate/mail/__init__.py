"""Mail transport adapter: SMTP sending and IMAP reading."""

__all__ = [
    "imap",
    "smtp",
    "transport",
]
