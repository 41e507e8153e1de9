"""Telegram notifications for application log errors."""

__version__ = "0.1.0"
