"""mailgate - agent-scoped email gateway with audited reads."""

__version__ = "0.1.0"
