"""Frink Loop: a planning model driving a persistent coding-assistant session."""

__version__ = "0.3.0"
