"""Notification delivery and summarization engine."""

__version__ = "0.1.0"
