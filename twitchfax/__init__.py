"""Twitch fax printer and stream overlay service."""

__version__ = "0.1.0"
