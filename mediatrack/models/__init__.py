"""
Models package initialization.
Provides database model functions for watchlists.
"""

__all__ = [
    'watchlist',
]

from . import watchlist
