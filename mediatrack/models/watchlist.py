import copy
import math
import logging
from datetime import datetime, timezone
from typing import List, Dict, Optional, Any

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from ..core.db_connector import watchlist_collection
from ..core.caching import cache_result, clear_user_cache
from ..core.config import get_config
from ..utils.deduplicate import (
    deduplicate_watchlist, deduplicate_watchlist_with_report, parse_date
)

# Setup logging
logger = logging.getLogger(__name__)

# Watchlist status constants
WATCHLIST_STATUSES = {
    'watching': 'watching',
    'completed': 'completed',
    'plan_to_watch': 'plan_to_watch',
    'on-hold': 'on-hold',
    'dropped': 'dropped'
}

MEDIA_TYPES = ('anime', 'movie', 'tv')

# Query value selecting entries that are rated but have no status
RATED_ONLY_FILTER = "null"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_key(external_id, media_type, check_media_type: bool = True) -> None:
    if not external_id or not media_type:
        raise ValueError("externalId and mediaType are required")
    if check_media_type and media_type not in MEDIA_TYPES:
        raise ValueError(f"Invalid media type: {media_type}")


def _empty_stats() -> Dict[str, Any]:
    return {
        "watching": 0,
        "completed": 0,
        "plan_to_watch": 0,
        "on-hold": 0,
        "dropped": 0,
        "rated_only": 0,
        "total": 0,
        "total_progress": 0,
        "by_media_type": {}
    }


def _load_watchlist(user_id) -> List[Dict[str, Any]]:
    """Raw stored array for a user. Raises PyMongoError."""
    doc = watchlist_collection.find_one({"_id": user_id}, {"watchlist": 1})
    if not doc:
        return []
    return doc.get("watchlist") or []


def _save_watchlist(user_id, watchlist: List[Dict[str, Any]], now: datetime) -> None:
    """Replace the user's array. Raises PyMongoError."""
    watchlist_collection.update_one(
        {"_id": user_id},
        {"$set": {"watchlist": watchlist}, "$setOnInsert": {"created_at": now}},
        upsert=True
    )
    clear_user_cache(user_id)


def _same_item(item: Dict[str, Any], external_id, media_type) -> bool:
    # Same textual key the deduplicator groups by
    return (str(item.get("externalId")) == str(external_id)
            and str(item.get("mediaType")) == str(media_type))


def _find_index(watchlist: List[Dict[str, Any]], external_id, media_type) -> int:
    for index, item in enumerate(watchlist):
        if _same_item(item, external_id, media_type):
            return index
    return -1


def create_watchlist_indexes():
    """Create the indexes used by per-item lookups and history queries."""
    try:
        watchlist_collection.create_index(
            [("watchlist.mediaType", ASCENDING), ("watchlist.externalId", ASCENDING)],
            name="watchlist_item_key"
        )
        watchlist_collection.create_index(
            [("watchlist.updatedAt", DESCENDING)],
            name="watchlist_updated"
        )
        logger.info("Watchlist indexes created successfully")
        return True
    except PyMongoError as e:
        logger.error(f"Error creating watchlist indexes: {e}")
        return False


def get_raw_watchlist(user_id) -> List[Dict[str, Any]]:
    """Return the stored array exactly as persisted, duplicates included."""
    try:
        return _load_watchlist(user_id)
    except PyMongoError as e:
        logger.error(f"Error loading raw watchlist for user {user_id}: {e}")
        return []


def get_user_watchlist(user_id, media_type: Optional[str] = None,
                       status: Optional[str] = None) -> List[Dict[str, Any]]:
    """Return the user's deduplicated watchlist, optionally filtered."""
    try:
        watchlist = deduplicate_watchlist(_load_watchlist(user_id))
    except PyMongoError as e:
        logger.error(f"Error getting watchlist: {e}")
        return []

    if media_type:
        watchlist = [w for w in watchlist if w.get("mediaType") == media_type]

    if status:
        if status == RATED_ONLY_FILTER:
            watchlist = [
                w for w in watchlist
                if w.get("status") is None and w.get("userRating") is not None
            ]
        else:
            watchlist = [w for w in watchlist if w.get("status") == status]

    return watchlist


def get_watchlist_entry(user_id, external_id: str, media_type: str) -> Optional[Dict[str, Any]]:
    """Return the merged entry for one item (or None)."""
    if not external_id or not media_type:
        return None
    for item in get_user_watchlist(user_id):
        if _same_item(item, external_id, media_type):
            return item
    return None


def update_watchlist_status(user_id, external_id: str, media_type: str, status: Optional[str],
                            progress: Optional[int] = None,
                            notes: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Set the watch status of an item, adding it when missing.

    A status of None clears the status of a rated item and removes an
    unrated one. Returns the resulting entry, or None when the entry was
    removed or the write failed.
    """
    _require_key(external_id, media_type)
    if status is not None and status not in WATCHLIST_STATUSES:
        raise ValueError(f"Invalid status: {status}")

    try:
        now = _utcnow()
        watchlist = deduplicate_watchlist(_load_watchlist(user_id))
        index = _find_index(watchlist, external_id, media_type)

        if status is None:
            if index == -1:
                return None
            entry = watchlist[index]
            if entry.get("userRating"):
                entry["status"] = None
                entry["updatedAt"] = now
            else:
                watchlist.pop(index)
                entry = None
        elif index != -1:
            entry = watchlist[index]
            entry["status"] = status
            if progress is not None:
                entry["progress"] = progress
            if notes:
                entry["notes"] = notes
            entry["updatedAt"] = now
            if status == "completed":
                entry["completedAt"] = now
        else:
            entry = {
                "externalId": external_id,
                "mediaType": media_type,
                "status": status,
                "progress": progress or 0,
                "notes": notes or "",
                "addedAt": now,
                "updatedAt": now,
                "userRating": None
            }
            if status == "completed":
                entry["completedAt"] = now
            watchlist.append(entry)

        _save_watchlist(user_id, watchlist, now)
        return entry
    except PyMongoError as e:
        logger.error(f"Error updating watchlist status: {e}")
        return None


def update_rating(user_id, external_id: str, media_type: str, rating: Optional[float],
                  notes: str = "") -> Optional[Dict[str, Any]]:
    """
    Set or clear the user's rating (1-10) for an item.

    Clearing the rating of an item with no status removes the item; rating
    an unknown item adds it without a status.
    """
    _require_key(external_id, media_type)
    if rating is not None:
        if isinstance(rating, bool) or not isinstance(rating, (int, float)):
            raise ValueError("Rating must be a number")
        if not 1 <= rating <= 10:
            raise ValueError("Rating must be between 1 and 10")

    try:
        now = _utcnow()
        watchlist = deduplicate_watchlist(_load_watchlist(user_id))
        index = _find_index(watchlist, external_id, media_type)

        if index != -1:
            entry = watchlist[index]
            if rating is None:
                entry["userRating"] = None
                if not entry.get("status"):
                    watchlist.pop(index)
                    entry = None
            else:
                entry["userRating"] = rating
                if notes:
                    entry["notes"] = notes
            if entry is not None:
                entry["updatedAt"] = now
        elif rating is not None:
            entry = {
                "externalId": external_id,
                "mediaType": media_type,
                "userRating": rating,
                "status": None,
                "notes": notes or "",
                "progress": 0,
                "addedAt": now,
                "updatedAt": now,
                "completedAt": None
            }
            watchlist.append(entry)
        else:
            return None

        _save_watchlist(user_id, watchlist, now)
        return entry
    except PyMongoError as e:
        logger.error(f"Error updating rating: {e}")
        return None


def get_rating(user_id, external_id: str, media_type: str) -> Dict[str, Any]:
    """Rating, notes, status and progress for one item."""
    entry = get_watchlist_entry(user_id, external_id, media_type)
    if not entry:
        return {"rating": None, "notes": "", "status": None, "progress": 0}
    return {
        "rating": entry.get("userRating") or None,
        "notes": entry.get("notes") or "",
        "status": entry.get("status") or None,
        "progress": entry.get("progress") or 0
    }


def record_watch_activity(user_id, external_id: str, media_type: str,
                          progress: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Touch an item's updatedAt (and progress); untracked items start as watching."""
    _require_key(external_id, media_type)

    try:
        now = _utcnow()
        watchlist = deduplicate_watchlist(_load_watchlist(user_id))
        index = _find_index(watchlist, external_id, media_type)

        if index != -1:
            entry = watchlist[index]
            entry["updatedAt"] = now
            if progress is not None:
                entry["progress"] = progress
            if not entry.get("status"):
                entry["status"] = "watching"
        else:
            entry = {
                "externalId": external_id,
                "mediaType": media_type,
                "status": "watching",
                "progress": progress or 0,
                "addedAt": now,
                "updatedAt": now,
                "userRating": None
            }
            watchlist.append(entry)

        _save_watchlist(user_id, watchlist, now)
        return entry
    except PyMongoError as e:
        logger.error(f"Error updating watch history: {e}")
        return None


def _activity_time(entry: Dict[str, Any]) -> datetime:
    value = entry.get("updatedAt") or entry.get("completedAt") or entry.get("addedAt")
    return parse_date(value) or _EPOCH


def get_watch_history(user_id, media_type: Optional[str] = None,
                      page: int = 1, limit: int = 50) -> Dict[str, Any]:
    """Items with recorded activity, newest first, paginated."""
    page = max(1, page)
    limit = max(1, limit)
    skip = (page - 1) * limit

    history = [
        w for w in get_user_watchlist(user_id, media_type=media_type)
        if w.get("updatedAt") or w.get("completedAt")
    ]
    history.sort(key=_activity_time, reverse=True)

    total = len(history)
    return {
        "history": history[skip:skip + limit],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit)
        }
    }


def remove_from_watchlist(user_id, external_id: str, media_type: str) -> bool:
    """Remove every stored element for the item, duplicates included."""
    if not external_id or not media_type:
        return False
    try:
        result = watchlist_collection.update_one(
            {"_id": user_id},
            {"$pull": {"watchlist": {"externalId": external_id, "mediaType": media_type}}}
        )
        if result.modified_count > 0:
            clear_user_cache(user_id)
            return True
        return False
    except PyMongoError as e:
        logger.error(f"Error removing from watchlist: {e}")
        return False


def _dedupe_document(user_id, raw: List[Dict[str, Any]], dry_run: bool) -> Dict[str, Any]:
    report = deduplicate_watchlist_with_report(raw)
    changed = report.merged > 0 or len(report.skipped) > 0
    written = False

    if changed and not dry_run:
        _save_watchlist(user_id, report.entries, _utcnow())
        written = True

    if changed:
        logger.info(
            f"{'Would deduplicate' if dry_run else 'Deduplicated'} watchlist for user {user_id}: "
            f"{len(raw)} -> {len(report.entries)} "
            f"({report.merged} merged, {len(report.skipped)} invalid dropped)"
        )

    return {
        "user_id": user_id,
        "before": len(raw),
        "after": len(report.entries),
        "merged": report.merged,
        "skipped": len(report.skipped),
        "written": written
    }


def deduplicate_user_watchlist(user_id, dry_run: bool = False) -> Dict[str, Any]:
    """Merge duplicates in one user's stored watchlist and persist the result."""
    try:
        return _dedupe_document(user_id, _load_watchlist(user_id), dry_run)
    except PyMongoError as e:
        logger.error(f"Error deduplicating watchlist for user {user_id}: {e}")
        return {
            "user_id": user_id,
            "before": 0,
            "after": 0,
            "merged": 0,
            "skipped": 0,
            "written": False,
            "error": str(e)
        }


def deduplicate_all_watchlists(dry_run: bool = False) -> Dict[str, Any]:
    """Run deduplication over every stored watchlist."""
    totals = {"users": 0, "changed": 0, "merged": 0, "skipped": 0, "written": 0}
    try:
        cursor = watchlist_collection.find({"watchlist": {"$exists": True}}, {"watchlist": 1})
        for doc in cursor:
            result = _dedupe_document(doc["_id"], doc.get("watchlist") or [], dry_run)
            totals["users"] += 1
            if result["merged"] or result["skipped"]:
                totals["changed"] += 1
            totals["merged"] += result["merged"]
            totals["skipped"] += result["skipped"]
            if result["written"]:
                totals["written"] += 1
        logger.info(f"Deduplication completed for {totals['users']} watchlists")
    except PyMongoError as e:
        logger.error(f"Error during watchlist deduplication: {e}")
        totals["error"] = str(e)
    return totals


@cache_result(duration=get_config().STATS_CACHE_DURATION)
def _compute_watchlist_stats(user_id) -> Dict[str, Any]:
    watchlist = deduplicate_watchlist(_load_watchlist(user_id))
    formatted = _empty_stats()

    for item in watchlist:
        status = item.get("status")
        if status in WATCHLIST_STATUSES:
            formatted[status] += 1
        elif status is None and item.get("userRating") is not None:
            formatted["rated_only"] += 1

        media_type = item.get("mediaType")
        formatted["by_media_type"][media_type] = formatted["by_media_type"].get(media_type, 0) + 1

        progress = item.get("progress")
        if isinstance(progress, (int, float)) and not isinstance(progress, bool):
            formatted["total_progress"] += progress

    formatted["total"] = len(watchlist)
    return formatted


def get_watchlist_stats(user_id) -> Dict[str, Any]:
    """Per-status and per-media-type counts over the deduplicated watchlist."""
    try:
        return copy.deepcopy(_compute_watchlist_stats(user_id))
    except PyMongoError as e:
        logger.error(f"Error computing watchlist stats: {e}")
        return _empty_stats()
