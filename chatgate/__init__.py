"""ChatGate — multi-tenant chat-account session gateway."""

__version__ = "0.1.0"
