"""
Listing filter implementation for the apartment feed.

This module evaluates listings against a FilterSpec. Evaluation is pure and
total: missing or malformed listing fields degrade to neutral defaults
instead of raising.
"""

import math
from datetime import date, datetime, time
from typing import Iterable, List, Optional

from apartment_feed.models import (
    FilterSpec,
    Listing,
    ListingStatus,
    NumericRange,
    DateRange,
    StatusFilter,
)


class ListingFilter:
    """Filters apartment listings based on a FilterSpec.

    All predicates must hold for a listing to match. An unset constraint
    always passes.
    """

    def matches(self, listing: Listing, spec: FilterSpec) -> bool:
        """Check whether a listing passes every constraint of the filters.

        Args:
            listing: Listing to evaluate
            spec: Filter constraints

        Returns:
            True if all predicate groups pass
        """
        return (
            self._matches_flags(listing, spec)
            and self._matches_enums(listing, spec)
            and self._matches_location(listing, spec)
            and self._in_range(getattr(listing, 'cost', None), spec.price_range)
            and self._in_range(getattr(listing, 'rooms', None), spec.rooms_range)
            and self._matches_entry_date(getattr(listing, 'entry_date', None), spec.entry_date_range)
        )

    def filter_listings(
        self,
        listings: Iterable[Listing],
        spec: FilterSpec
    ) -> List[Listing]:
        """Filter listings, keeping the input order.

        Args:
            listings: Listings to filter
            spec: Filter constraints

        Returns:
            List of listings that match the filters
        """
        return [listing for listing in listings if self.matches(listing, spec)]

    def filter_by_status(
        self,
        listings: Iterable[Listing],
        status: StatusFilter = StatusFilter.ALL
    ) -> List[Listing]:
        """Partition listings by status.

        A listing with no status counts as active.

        Args:
            listings: Listings to filter
            status: ALL, ACTIVE or CLOSED

        Returns:
            List of listings in the requested partition
        """
        if status == StatusFilter.ALL:
            return list(listings)
        want_closed = status == StatusFilter.CLOSED
        return [
            listing for listing in listings
            if self._is_closed(listing) == want_closed
        ]

    def liked_by(
        self,
        listings: Iterable[Listing],
        user_id: Optional[str]
    ) -> List[Listing]:
        """Listings the given user has liked; empty when there is no user."""
        if not user_id:
            return []
        return [listing for listing in listings if user_id in (listing.likes or [])]

    def _matches_flags(self, listing: Listing, spec: FilterSpec) -> bool:
        for name in FilterSpec.FLAG_FIELDS:
            if getattr(spec, name) and not getattr(listing, name, False):
                return False
        return True

    def _matches_enums(self, listing: Listing, spec: FilterSpec) -> bool:
        if spec.rental_type is not None and getattr(listing, 'rental_type', None) != spec.rental_type:
            return False
        if spec.bomb_shelter is not None and getattr(listing, 'bomb_shelter', None) != spec.bomb_shelter:
            return False
        return True

    def _matches_location(self, listing: Listing, spec: FilterSpec) -> bool:
        address = getattr(listing, 'address', None)
        if spec.city and not self._contains(getattr(address, 'city', None), spec.city):
            return False
        if spec.neighborhood and not self._contains(getattr(address, 'neighborhood', None), spec.neighborhood):
            return False
        return True

    def _contains(self, value: Optional[str], pattern: str) -> bool:
        """Case-insensitive substring match; a missing value is empty."""
        return pattern.lower() in (value or "").lower()

    def _in_range(self, value, value_range: Optional[NumericRange]) -> bool:
        if value_range is None:
            return True
        return value_range.contains(self._as_number(value))

    def _as_number(self, value) -> float:
        """Coerce a listing number; anything that is not a finite number is 0."""
        if isinstance(value, bool) or value is None:
            return 0.0
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        if math.isnan(number):
            return 0.0
        return number

    def _matches_entry_date(
        self,
        entry_date: Optional[date],
        date_range: Optional[DateRange]
    ) -> bool:
        # A listing without an entry date accepts any move-in date.
        if date_range is None or not date_range.is_complete or entry_date is None:
            return True
        if not isinstance(entry_date, date):
            return True
        if not isinstance(entry_date, datetime):
            entry_date = datetime.combine(entry_date, time.min)
        start = datetime.combine(date_range.start, time.min)
        end = datetime.combine(date_range.end, time.max)
        return start <= entry_date.replace(tzinfo=None) <= end

    def _is_closed(self, listing: Listing) -> bool:
        return getattr(listing, 'status', None) == ListingStatus.CLOSED


_default_filter = ListingFilter()


def matches(listing: Listing, spec: FilterSpec) -> bool:
    """Module-level shortcut for ``ListingFilter().matches``."""
    return _default_filter.matches(listing, spec)


def filter_listings(listings: Iterable[Listing], spec: FilterSpec) -> List[Listing]:
    """Module-level shortcut for ``ListingFilter().filter_listings``."""
    return _default_filter.filter_listings(listings, spec)
