"""
Utils package initialization.
Re-exports the watchlist deduplication helpers for easier imports.
"""

__all__ = [
    'WatchlistEntry',
    'DedupeResult',
    'UNSET',
    'parse_date',
    'merge_entry',
    'deduplicate_watchlist',
    'deduplicate_watchlist_with_report',
]

from .deduplicate import (
    WatchlistEntry,
    DedupeResult,
    UNSET,
    parse_date,
    merge_entry,
    deduplicate_watchlist,
    deduplicate_watchlist_with_report,
)
