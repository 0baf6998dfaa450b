"""
In-memory backend used by the store and like toggle tests.
"""

import asyncio
from typing import Any, Dict, List, Optional

from apartment_feed.models import Listing
from apartment_feed.store import ListingBackend, listing_to_row


class InMemoryBackend(ListingBackend):
    """Backend keeping rows in a dict and recording every call.

    ``fail_with`` makes every write raise; ``reject`` makes every write
    return False. Each write yields to the event loop once so concurrent
    callers can interleave.
    """

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows = {str(row["id"]): row for row in (rows or [])}
        self.likes = {
            listing_id: [like["user_id"] if isinstance(like, dict) else like for like in row.get("likes", [])]
            for listing_id, row in self.rows.items()
        }
        self.calls: List[tuple] = []
        self.fail_with: Optional[Exception] = None
        self.reject = False

    @classmethod
    def with_listings(cls, listings: List[Listing]) -> 'InMemoryBackend':
        return cls([listing_to_row(listing) for listing in listings])

    async def _write(self, *call) -> bool:
        self.calls.append(call)
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        return not self.reject

    async def fetch_listings(self):
        self.calls.append(("fetch_listings",))
        if self.fail_with is not None:
            raise self.fail_with
        rows = []
        for listing_id, row in self.rows.items():
            rows.append({**row, "likes": [{"user_id": uid} for uid in self.likes[listing_id]]})
        return rows

    async def insert_like(self, listing_id, user_id):
        ok = await self._write("insert_like", listing_id, user_id)
        if ok and user_id not in self.likes[listing_id]:
            self.likes[listing_id].append(user_id)
        return ok

    async def delete_like(self, listing_id, user_id):
        ok = await self._write("delete_like", listing_id, user_id)
        if ok:
            self.likes[listing_id] = [uid for uid in self.likes[listing_id] if uid != user_id]
        return ok

    async def insert_listing(self, row):
        await self._write("insert_listing", row)
        stored = {**row, "id": row.get("id") or f"new-{len(self.rows) + 1}"}
        self.rows[stored["id"]] = stored
        self.likes[stored["id"]] = []
        return stored

    async def update_listing(self, listing_id, changes):
        ok = await self._write("update_listing", listing_id, changes)
        if ok:
            self.rows[listing_id].update(changes)
        return ok

    async def close_listing(self, listing_id, reason):
        ok = await self._write("close_listing", listing_id, reason)
        if ok:
            self.rows[listing_id].update(status="closed", close_reason=reason)
        return ok

    async def delete_listing(self, listing_id, reason):
        ok = await self._write("delete_listing", listing_id, reason)
        if ok:
            self.rows.pop(listing_id)
            self.likes.pop(listing_id)
        return ok
