"""Realtime messaging and call signaling core for the Amora backend."""

__version__ = "0.1.0"
