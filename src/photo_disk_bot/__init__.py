"""Telegram bot that browses, searches and likes photos stored on a cloud disk."""

__version__ = "0.1.0"
