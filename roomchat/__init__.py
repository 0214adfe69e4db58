"""Password-gated multi-room chat with a realtime reconciliation client."""

__version__ = "0.3.0"
