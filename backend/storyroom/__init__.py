"""Collaborative turn-based story rooms service."""

__version__ = "0.1.0"
