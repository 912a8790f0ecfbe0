"""Expo Updates protocol server."""

__version__ = "1.0.0"
