"""
API Module

This module contains the API route handlers.
"""

from .routes import trades, capital, tags

__all__ = [
    "trades",
    "capital",
    "tags",
]
