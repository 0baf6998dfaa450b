"""
Persistence backends for the listing store.

A backend is the only place that performs I/O. It hands raw rows to the
store and accepts like and listing mutations, reporting success as a bool.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class ListingBackend(ABC):
    """Interface of the persistence collaborator."""

    @abstractmethod
    async def fetch_listings(self) -> List[Dict[str, Any]]:
        """Return raw apartment rows, newest first."""

    @abstractmethod
    async def insert_like(self, listing_id: str, user_id: str) -> bool:
        """Record that ``user_id`` likes ``listing_id``."""

    @abstractmethod
    async def delete_like(self, listing_id: str, user_id: str) -> bool:
        """Remove the like of ``user_id`` on ``listing_id``."""

    @abstractmethod
    async def insert_listing(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a new row and return it with its id and created_at set."""

    @abstractmethod
    async def update_listing(self, listing_id: str, changes: Dict[str, Any]) -> bool:
        """Apply column changes to an existing row."""

    @abstractmethod
    async def close_listing(self, listing_id: str, reason: str) -> bool:
        """Mark a row closed with the given reason."""

    @abstractmethod
    async def delete_listing(self, listing_id: str, reason: str) -> bool:
        """Delete a row permanently, recording why."""


class JsonFileBackend(ListingBackend):
    """Backend over a JSON snapshot file.

    The file holds ``{"listings": [...], "deletions": [...]}``; a bare list
    of rows is accepted on read. Every mutation rewrites the whole file.

    Attributes:
        path: Location of the snapshot file
    """

    def __init__(self, path: str):
        self.path = Path(path)

    async def fetch_listings(self) -> List[Dict[str, Any]]:
        return self._read()["listings"]

    async def insert_like(self, listing_id: str, user_id: str) -> bool:
        data = self._read()
        row = self._find(data, listing_id)
        if row is None:
            return False
        likes = row.setdefault("likes", [])
        if not any(self._like_user(like) == user_id for like in likes):
            likes.append({"user_id": user_id, "created_at": datetime.now().isoformat()})
        self._write(data)
        return True

    async def delete_like(self, listing_id: str, user_id: str) -> bool:
        data = self._read()
        row = self._find(data, listing_id)
        if row is None:
            return False
        row["likes"] = [like for like in row.get("likes", []) if self._like_user(like) != user_id]
        self._write(data)
        return True

    async def insert_listing(self, row: Dict[str, Any]) -> Dict[str, Any]:
        data = self._read()
        stored = dict(row)
        stored["id"] = stored.get("id") or str(uuid.uuid4())
        stored["created_at"] = stored.get("created_at") or datetime.now().isoformat()
        data["listings"].insert(0, stored)
        self._write(data)
        return stored

    async def update_listing(self, listing_id: str, changes: Dict[str, Any]) -> bool:
        data = self._read()
        row = self._find(data, listing_id)
        if row is None:
            return False
        row.update(changes)
        row["updated_at"] = datetime.now().isoformat()
        self._write(data)
        return True

    async def close_listing(self, listing_id: str, reason: str) -> bool:
        return await self.update_listing(listing_id, {"status": "closed", "close_reason": reason})

    async def delete_listing(self, listing_id: str, reason: str) -> bool:
        data = self._read()
        if self._find(data, listing_id) is None:
            return False
        data["listings"] = [row for row in data["listings"] if str(row.get("id")) != listing_id]
        data["deletions"].append({
            "listing_id": listing_id,
            "reason": reason,
            "deleted_at": datetime.now().isoformat(),
        })
        self._write(data)
        return True

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            logger.info(f"No listings snapshot at {self.path}, starting empty")
            return {"listings": [], "deletions": []}
        with open(self.path, 'r') as f:
            data = json.load(f)
        if isinstance(data, list):
            data = {"listings": data}
        data.setdefault("listings", [])
        data.setdefault("deletions", [])
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(data, f, indent=2, default=str)

    def _find(self, data: Dict[str, Any], listing_id: str):
        for row in data["listings"]:
            if str(row.get("id")) == listing_id:
                return row
        return None

    @staticmethod
    def _like_user(like: Any) -> Any:
        return like.get("user_id") if isinstance(like, dict) else like
