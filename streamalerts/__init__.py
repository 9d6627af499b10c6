"""Twitch EventSub alert ingestion and credential lifecycle service."""

__version__ = "2.0.0"
