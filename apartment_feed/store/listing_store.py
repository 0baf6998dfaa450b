"""
In-memory listing store.

The store owns the listing collection and the active filters for one client.
It is handed to the components that need it instead of being reached
globally. Local state only changes after the backend confirms a write.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from apartment_feed.error_handling import (
    BackendError,
    ErrorHandler,
    InvalidListingError,
    ListingNotFoundError,
    MissingUserError,
    NotListingOwnerError,
)
from apartment_feed.filtering import ListingFilter
from apartment_feed.models import CloseReason, FilterSpec, Listing, ListingStatus
from .backends import ListingBackend
from .records import ApartmentRow, EDITABLE_COLUMNS, listing_to_row

logger = logging.getLogger(__name__)


class ListingStore:
    """Owned state container for listings and filters.

    Attributes:
        backend: Persistence collaborator
        error: Message of the last failed action, read by the presentation
            layer; None when the last action succeeded
        loading: Whether a fetch is in progress
    """

    def __init__(
        self,
        backend: ListingBackend,
        error_handler: Optional[ErrorHandler] = None
    ):
        self.backend = backend
        self.error_handler = error_handler or ErrorHandler()
        self.error: Optional[str] = None
        self.loading = False
        self._listings: List[Listing] = []
        self._filters = FilterSpec()

    # Reads

    def get_all_listings(self) -> List[Listing]:
        return list(self._listings)

    def find_listing(self, listing_id: str) -> Optional[Listing]:
        for listing in self._listings:
            if listing.id == listing_id:
                return listing
        return None

    def get_listing(self, listing_id: str) -> Listing:
        listing = self.find_listing(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing

    @property
    def filters(self) -> FilterSpec:
        return self._filters

    def set_filters(self, spec: FilterSpec) -> None:
        """Replace the active filters as a whole."""
        self._filters = spec

    def clear_filters(self) -> None:
        self._filters = FilterSpec()

    def filtered_listings(self, listing_filter: Optional[ListingFilter] = None) -> List[Listing]:
        """Listings that match the active filters, in store order."""
        listing_filter = listing_filter or ListingFilter()
        return listing_filter.filter_listings(self._listings, self._filters)

    def clear_error(self) -> None:
        self.error = None

    # Loading

    def load_rows(self, rows: Iterable[Dict[str, Any]]) -> int:
        """Normalize raw rows and replace the collection.

        Rows that fail validation are skipped with a warning.

        Returns:
            Number of listings loaded
        """
        listings = []
        for row in rows:
            try:
                listings.append(ApartmentRow.model_validate(row).to_listing())
            except ValidationError as e:
                row_id = row.get("id") if isinstance(row, dict) else None
                logger.warning(f"Skipping invalid listing row {row_id}: {e.error_count()} error(s)")
                logger.debug(f"Validation errors for row {row_id}: {e.errors()}")
        self._listings = listings
        return len(listings)

    async def refresh(self) -> List[Listing]:
        """Fetch all rows from the backend and reload the collection.

        Raises:
            BackendError: The fetch failed after all retries; the current
                collection is kept
        """
        self.loading = True
        self.error = None
        try:
            rows = await self.error_handler.retry_with_backoff(self.backend.fetch_listings)
        except Exception as e:
            details = self.error_handler.describe_backend_error(e)
            self.error = f"Failed to load listings: {details['error_message']}"
            raise BackendError(self.error) from e
        finally:
            self.loading = False

        count = self.load_rows(rows)
        logger.info(f"Loaded {count} listing(s)")
        return self.get_all_listings()

    def replace_listing(self, listing: Listing) -> None:
        """Swap in a new version of a listing, keeping its position."""
        for index, current in enumerate(self._listings):
            if current.id == listing.id:
                self._listings[index] = listing
                return
        raise ListingNotFoundError(listing.id)

    # Owner mutations

    async def add_listing(self, listing: Listing, user_id: Optional[str]) -> Listing:
        """Publish a new listing owned by ``user_id``.

        Raises:
            MissingUserError: No user id was given
            InvalidListingError: The listing breaks a creation rule
            BackendError: The backend rejected the insert
        """
        if not user_id:
            raise self._fail(MissingUserError("Sign in to publish a listing"))
        problems = validate_new_listing(listing)
        if problems:
            raise self._fail(InvalidListingError("; ".join(problems)))

        row = listing_to_row(replace(
            listing,
            owner=replace(listing.owner, user_id=user_id),
            status=ListingStatus.ACTIVE,
            close_reason=None,
            likes=[],
        ))
        if not row["id"]:
            row.pop("id")
        try:
            stored = await self.backend.insert_listing(row)
        except Exception as e:
            raise self._fail(BackendError(f"Failed to publish listing: {e}")) from e

        created = ApartmentRow.model_validate(stored).to_listing()
        self._listings.insert(0, created)
        self.error = None
        logger.info(f"Published listing {created.id}")
        return created

    async def edit_listing(
        self,
        listing_id: str,
        user_id: Optional[str],
        changes: Dict[str, Any]
    ) -> Listing:
        """Apply column changes to a listing the user owns.

        Args:
            listing_id: Listing to edit
            user_id: Current user, must be the owner
            changes: Row columns to change, see ``EDITABLE_COLUMNS``

        Returns:
            The updated listing
        """
        listing = self._owned_listing(listing_id, user_id)
        unknown = set(changes) - EDITABLE_COLUMNS
        if unknown:
            raise self._fail(InvalidListingError(f"Fields cannot be edited: {sorted(unknown)}"))

        try:
            updated = ApartmentRow.model_validate({**listing_to_row(listing), **changes}).to_listing()
        except ValidationError as e:
            raise self._fail(InvalidListingError(f"Invalid listing changes: {e.error_count()} error(s)")) from e

        updated_row = listing_to_row(updated)
        changes = {name: updated_row[name] for name in changes}

        await self._confirm(
            self.backend.update_listing(listing_id, changes),
            f"Failed to update listing {listing_id}",
        )
        self.replace_listing(updated)
        return updated

    async def close_listing(
        self,
        listing_id: str,
        user_id: Optional[str],
        reason: CloseReason
    ) -> Listing:
        """Close a listing the user owns; it stays in the store as closed."""
        listing = self._owned_listing(listing_id, user_id)
        try:
            reason = CloseReason(reason)
        except ValueError as e:
            raise self._fail(InvalidListingError(f"Unknown close reason: {reason}")) from e
        await self._confirm(
            self.backend.close_listing(listing_id, reason.value),
            f"Failed to close listing {listing_id}",
        )
        closed = replace(listing, status=ListingStatus.CLOSED, close_reason=reason)
        self.replace_listing(closed)
        logger.info(f"Closed listing {listing_id} ({reason.value})")
        return closed

    async def delete_listing(
        self,
        listing_id: str,
        user_id: Optional[str],
        reason: str
    ) -> None:
        """Permanently delete a listing the user owns.

        Raises:
            InvalidListingError: The reason is blank
        """
        self._owned_listing(listing_id, user_id)
        if not reason or not reason.strip():
            raise self._fail(InvalidListingError("Please provide a reason for deletion"))
        await self._confirm(
            self.backend.delete_listing(listing_id, reason.strip()),
            f"Failed to delete listing {listing_id}",
        )
        self._listings = [listing for listing in self._listings if listing.id != listing_id]
        logger.info(f"Deleted listing {listing_id}")

    def _owned_listing(self, listing_id: str, user_id: Optional[str]) -> Listing:
        if not user_id:
            raise self._fail(MissingUserError("Sign in to manage your listings"))
        listing = self.find_listing(listing_id)
        if listing is None:
            raise self._fail(ListingNotFoundError(listing_id))
        if listing.owner.user_id != user_id:
            raise self._fail(NotListingOwnerError(listing_id, user_id))
        return listing

    async def _confirm(self, call, message: str) -> None:
        """Await a backend write and raise BackendError unless it succeeded."""
        try:
            ok = await call
        except Exception as e:
            raise self._fail(BackendError(f"{message}: {e}")) from e
        if not ok:
            raise self._fail(BackendError(message))
        self.error = None

    def _fail(self, error: Exception) -> Exception:
        self.error = str(error)
        logger.warning(self.error)
        return error


def validate_new_listing(listing: Listing) -> List[str]:
    """Check the rules a listing must meet before it is published.

    Returns:
        Human-readable problems, empty when the listing can be published
    """
    problems = []
    if not listing.images:
        problems.append("At least one image is required")
    for name in ("size", "rooms"):
        if not getattr(listing, name) > 0:
            problems.append(f"{name} must be positive")
    for name in ("cost", "arnona"):
        if not getattr(listing, name) >= 0:
            problems.append(f"{name} cannot be negative")
    for name in ("city", "street", "neighborhood"):
        if not getattr(listing.address, name).strip():
            problems.append(f"{name} is required")
    if not listing.phone_number.strip():
        problems.append("phone_number is required")
    for item in listing.furniture:
        if item.quantity <= 0:
            problems.append(f"Furniture quantity for {item.name or 'item'} must be positive")
    return problems
