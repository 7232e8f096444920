"""
API Routes Module

This module contains all API route handlers organized by domain.
"""

from . import trades
from . import capital
from . import tags

__all__ = [
    "trades",
    "capital",
    "tags",
]
