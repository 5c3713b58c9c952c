"""Trackly - journaling client for the Trackly API."""

__version__ = "0.1.0"
