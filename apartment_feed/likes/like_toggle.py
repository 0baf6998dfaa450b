"""
Like toggling for listings.

A toggle flips the user's membership in a listing's likes. The backend write
happens first; the store is only updated once it succeeds.
"""

import asyncio
import logging
from typing import Dict, Optional, Tuple

from apartment_feed.error_handling import LikeToggleError, ListingNotFoundError, MissingUserError
from apartment_feed.models import Listing
from apartment_feed.store import ListingStore

logger = logging.getLogger(__name__)


class LikeToggler:
    """Toggles likes through the store's backend.

    Calls for the same (listing, user) pair are queued behind an
    ``asyncio.Lock`` so an insert and a delete for the pair never overlap.
    Each queued call re-reads the current likes once it holds the lock.

    Attributes:
        store: Listing store holding the listings and the backend
    """

    def __init__(self, store: ListingStore):
        self.store = store
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._pending: Dict[Tuple[str, str], int] = {}

    def is_pending(self, listing_id: str, user_id: str) -> bool:
        """Whether a toggle for this pair is running or queued."""
        return self._pending.get((listing_id, user_id), 0) > 0

    async def toggle_like(self, listing_id: str, user_id: Optional[str]) -> Listing:
        """Like or unlike a listing for a user.

        Args:
            listing_id: Listing to toggle
            user_id: Current user id; guests have generated ids

        Returns:
            The listing after the toggle

        Raises:
            MissingUserError: No user id was given; nothing was called
            ListingNotFoundError: The listing is not in the store
            LikeToggleError: The backend write failed; likes are unchanged
        """
        if not user_id:
            raise self._report(MissingUserError("Sign in or continue as guest to like listings"))

        # Fail fast on unknown listings before queueing
        if self.store.find_listing(listing_id) is None:
            raise self._report(ListingNotFoundError(listing_id))

        key = (listing_id, user_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._pending[key] = self._pending.get(key, 0) + 1
        try:
            async with lock:
                return await self._apply_toggle(listing_id, user_id)
        finally:
            self._pending[key] -= 1
            if self._pending[key] == 0:
                del self._pending[key]
                del self._locks[key]

    async def _apply_toggle(self, listing_id: str, user_id: str) -> Listing:
        listing = self.store.find_listing(listing_id)
        if listing is None:
            # deleted while this call was queued
            raise self._report(ListingNotFoundError(listing_id))
        liked = user_id in listing.likes

        try:
            if liked:
                ok = await self.store.backend.delete_like(listing_id, user_id)
            else:
                ok = await self.store.backend.insert_like(listing_id, user_id)
        except Exception as e:
            raise self._fail(listing_id, user_id, str(e)) from e
        if not ok:
            raise self._fail(listing_id, user_id, "backend rejected the request")

        # Re-read in case the listing was replaced while the request was in flight
        current = self.store.find_listing(listing_id)
        if current is None:
            raise self._report(ListingNotFoundError(listing_id))
        updated = current.without_like(user_id) if liked else current.with_like(user_id)
        self.store.replace_listing(updated)
        self.store.error = None
        logger.debug(f"{'Unliked' if liked else 'Liked'} listing {listing_id} for {user_id}")
        return updated

    def _fail(self, listing_id: str, user_id: str, reason: str) -> LikeToggleError:
        return self._report(LikeToggleError(listing_id, user_id, reason))

    def _report(self, error: Exception) -> Exception:
        self.store.error = str(error)
        logger.warning(str(error))
        return error
