from __future__ import annotations

import copy
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from pymongo.errors import ServerSelectionTimeoutError

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from mediatrack.core import caching  # noqa: E402
from mediatrack.models import watchlist as watchlist_model  # noqa: E402


class InMemoryWatchlistCollection:
    """Just enough of a pymongo Collection for the one-document-per-user schema."""

    def __init__(self) -> None:
        self.docs: Dict[Any, Dict[str, Any]] = {}
        self.indexes: List[str] = []
        self.writes = 0

    def seed(self, user_id: Any, watchlist: List[Dict[str, Any]]) -> None:
        self.docs[user_id] = {"_id": user_id, "watchlist": copy.deepcopy(watchlist)}

    def stored(self, user_id: Any) -> List[Dict[str, Any]]:
        return self.docs.get(user_id, {}).get("watchlist", [])

    def find_one(self, filter: Dict[str, Any], projection: Dict[str, Any] | None = None):
        doc = self.docs.get(filter["_id"])
        return copy.deepcopy(doc) if doc is not None else None

    def find(self, filter: Dict[str, Any] | None = None, projection: Dict[str, Any] | None = None):
        return [copy.deepcopy(doc) for doc in self.docs.values() if "watchlist" in doc]

    def update_one(self, filter: Dict[str, Any], update: Dict[str, Any], upsert: bool = False):
        user_id = filter["_id"]
        doc = self.docs.get(user_id)
        if doc is None:
            if not upsert:
                return SimpleNamespace(matched_count=0, modified_count=0)
            doc = {"_id": user_id}
            doc.update(copy.deepcopy(update.get("$setOnInsert", {})))
            self.docs[user_id] = doc

        before = copy.deepcopy(doc)
        for key, value in update.get("$set", {}).items():
            doc[key] = copy.deepcopy(value)
        for key, match in update.get("$pull", {}).items():
            doc[key] = [
                item for item in doc.get(key, [])
                if not all(item.get(k) == v for k, v in match.items())
            ]
        self.writes += 1
        return SimpleNamespace(matched_count=1, modified_count=int(doc != before))

    def create_index(self, keys, **kwargs) -> str:
        name = kwargs.get("name", "_".join(k for k, _ in keys))
        self.indexes.append(name)
        return name


class UnreachableCollection:
    def _fail(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("no servers available")

    find_one = find = update_one = create_index = _fail


@pytest.fixture(autouse=True)
def clear_cache():
    caching.clear_all_cache()
    yield
    caching.clear_all_cache()


@pytest.fixture()
def collection(monkeypatch: pytest.MonkeyPatch) -> InMemoryWatchlistCollection:
    fake = InMemoryWatchlistCollection()
    monkeypatch.setattr(watchlist_model, "watchlist_collection", fake)
    return fake


@pytest.fixture()
def unreachable(monkeypatch: pytest.MonkeyPatch) -> UnreachableCollection:
    broken = UnreachableCollection()
    monkeypatch.setattr(watchlist_model, "watchlist_collection", broken)
    return broken
