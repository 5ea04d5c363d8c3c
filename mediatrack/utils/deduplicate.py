"""
Watchlist deduplication.

Collapses watchlist entries that point at the same media item, identified by
the ``(mediaType, externalId)`` pair, into one entry per item. Conflicting
fields are reconciled with fixed per-field rules; fields this module does not
know about are kept from the first entry seen for the item.
"""

import re
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, date, timezone
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Fractional seconds and a trailing +HHMM offset, normalised before fromisoformat
_FRACTION_RE = re.compile(r"\.(\d+)")
_COMPACT_OFFSET_RE = re.compile(r"([+-]\d{2})(\d{2})$")


class _Unset:
    """Marker for a field that was absent from the source record."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "UNSET"


UNSET = _Unset()

COMPLETED = "completed"

# Stored (camelCase) name -> attribute name
FIELD_NAMES = {
    "externalId": "external_id",
    "mediaType": "media_type",
    "status": "status",
    "userRating": "user_rating",
    "progress": "progress",
    "notes": "notes",
    "addedAt": "added_at",
    "updatedAt": "updated_at",
    "completedAt": "completed_at",
}


@dataclass
class WatchlistEntry:
    external_id: Any = UNSET
    media_type: Any = UNSET
    status: Any = UNSET
    user_rating: Any = UNSET
    progress: Any = UNSET
    notes: Any = UNSET
    added_at: Any = UNSET
    updated_at: Any = UNSET
    completed_at: Any = UNSET
    # Fields with no merge rule, passed through untouched
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping) -> "WatchlistEntry":
        known = {attr: data[key] for key, attr in FIELD_NAMES.items() if key in data}
        extra = {key: value for key, value in data.items() if key not in FIELD_NAMES}
        return cls(extra=extra, **known)

    def to_dict(self) -> Dict[str, Any]:
        """Back to the stored shape; absent fields stay absent."""
        out = {}
        for key, attr in FIELD_NAMES.items():
            value = getattr(self, attr)
            if value is not UNSET:
                out[key] = value
        out.update(self.extra)
        return out

    @property
    def identity_key(self) -> Tuple[str, str]:
        # Compared as text: 1 and "1" are the same item, True and 1 are not
        return (str(self.media_type), str(self.external_id))


@dataclass
class DedupeResult:
    entries: List[Dict[str, Any]] = field(default_factory=list)
    # (input index, reason) for every entry that was dropped
    skipped: List[Tuple[int, str]] = field(default_factory=list)
    # Entries folded into an earlier entry with the same key
    merged: int = 0


def _as_number(value) -> float:
    """Rating/progress comparison value; anything missing or non-numeric counts as 0."""
    if value is UNSET or value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def _normalise_iso(value: str) -> str:
    text = value.strip().replace("Z", "+00:00")
    if "T" not in text and " " not in text:
        return text
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    return _COMPACT_OFFSET_RE.sub(r"\1:\2", text)


def parse_date(value) -> Optional[datetime]:
    """Parse a stored date (datetime, date, ISO string or epoch millis). None if unusable."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(_normalise_iso(value))
        except ValueError:
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _is_later(candidate, current) -> bool:
    candidate_dt, current_dt = parse_date(candidate), parse_date(current)
    if candidate_dt is None or current_dt is None:
        return False
    return candidate_dt > current_dt


def _is_earlier(candidate, current) -> bool:
    candidate_dt, current_dt = parse_date(candidate), parse_date(current)
    if candidate_dt is None or current_dt is None:
        return False
    return candidate_dt < current_dt


def merge_entry(accumulated: WatchlistEntry, incoming: WatchlistEntry) -> WatchlistEntry:
    """Fold ``incoming`` into ``accumulated`` in place and return it."""
    # A completed status always wins; otherwise only an empty status is filled.
    # A later non-completed status never replaces an earlier one.
    if incoming.status == COMPLETED or not accumulated.status:
        accumulated.status = incoming.status

    if _as_number(incoming.user_rating) > _as_number(accumulated.user_rating):
        accumulated.user_rating = incoming.user_rating

    if _as_number(incoming.progress) > _as_number(accumulated.progress):
        accumulated.progress = incoming.progress

    if incoming.notes and accumulated.notes:
        accumulated.notes = f"{accumulated.notes}\n{incoming.notes}"
    elif incoming.notes:
        accumulated.notes = incoming.notes

    if incoming.updated_at and (not accumulated.updated_at
                                or _is_later(incoming.updated_at, accumulated.updated_at)):
        accumulated.updated_at = incoming.updated_at

    if incoming.completed_at and (not accumulated.completed_at
                                  or _is_later(incoming.completed_at, accumulated.completed_at)):
        accumulated.completed_at = incoming.completed_at

    # addedAt tracks the earliest occurrence
    if incoming.added_at and (not accumulated.added_at
                              or _is_earlier(incoming.added_at, accumulated.added_at)):
        accumulated.added_at = incoming.added_at

    return accumulated


def _coerce_entry(item) -> Optional[WatchlistEntry]:
    if isinstance(item, WatchlistEntry):
        return replace(item, extra=dict(item.extra))
    if isinstance(item, Mapping):
        return WatchlistEntry.from_dict(item)
    return None


def deduplicate_watchlist_with_report(watchlist) -> DedupeResult:
    """
    Merge duplicate watchlist entries and report what was dropped.

    Args:
        watchlist: list/tuple of entry dicts (or WatchlistEntry objects).
            Anything else is treated as an empty watchlist.

    Returns:
        DedupeResult with one entry dict per (mediaType, externalId), in
        first-seen order, plus the skipped input indexes and merge count.
    """
    result = DedupeResult()
    if not isinstance(watchlist, (list, tuple)):
        return result

    unique: Dict[Tuple[str, str], WatchlistEntry] = {}

    for index, item in enumerate(watchlist):
        entry = _coerce_entry(item)
        if entry is None:
            result.skipped.append((index, "not a mapping"))
            continue
        if not entry.external_id:
            result.skipped.append((index, "missing externalId"))
            continue
        if not entry.media_type:
            result.skipped.append((index, "missing mediaType"))
            continue

        key = entry.identity_key
        existing = unique.get(key)

        if existing is None:
            unique[key] = entry
        else:
            merge_entry(existing, entry)
            result.merged += 1

    result.entries = [entry.to_dict() for entry in unique.values()]

    if result.merged or result.skipped:
        logger.debug(
            f"Deduplicated watchlist: {len(watchlist)} in, {len(result.entries)} out, "
            f"{result.merged} merged, {len(result.skipped)} skipped"
        )
    return result


def deduplicate_watchlist(watchlist) -> List[Dict[str, Any]]:
    """Return a new list with duplicate entries merged. Never raises."""
    return deduplicate_watchlist_with_report(watchlist).entries
