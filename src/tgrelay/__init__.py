"""Relay messages between an MCP host and a single Telegram user."""

__version__ = "0.3.0"
