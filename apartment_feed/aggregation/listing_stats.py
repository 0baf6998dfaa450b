"""
Summary statistics over a listing collection.

Backs the data screen: total count, listings per city with relative bar
widths, and the active/closed split.
"""

from typing import Dict, Iterable, List

from apartment_feed.models import (
    CityCount,
    Listing,
    ListingStatus,
    ListingSummary,
    StatusCounts,
)


class ListingStats:
    """Derives summary statistics from listings.

    Callers apply any status or FilterSpec pre-filtering before calling
    ``summarize``; the result is recomputed from scratch on each call.
    """

    def summarize(self, listings: Iterable[Listing]) -> ListingSummary:
        """Count listings overall and per city.

        Cities are ordered by count, highest first. Cities with the same
        count keep the order in which they were first seen. Listings with
        no city are counted in the total but not in the breakdown.

        Args:
            listings: Listings to summarize

        Returns:
            ListingSummary with total count and per-city breakdown
        """
        listings = list(listings)
        return ListingSummary(
            total_count=len(listings),
            per_city=self.city_breakdown(listings),
        )

    def city_breakdown(self, listings: Iterable[Listing]) -> List[CityCount]:
        """Group listings by city, sorted by count descending.

        Returns:
            List of CityCount; ``ratio`` is the count relative to the
            largest group, empty when there are no cities
        """
        counts: Dict[str, int] = {}
        for listing in listings:
            city = getattr(getattr(listing, 'address', None), 'city', None)
            if not city:
                continue
            counts[city] = counts.get(city, 0) + 1

        if not counts:
            return []

        # sorted() is stable, so ties keep first-seen order
        ordered = sorted(counts.items(), key=lambda item: -item[1])
        max_count = ordered[0][1]
        return [
            CityCount(city=city, count=count, ratio=count / max_count)
            for city, count in ordered
        ]

    def status_counts(self, listings: Iterable[Listing]) -> StatusCounts:
        """Count active and closed listings.

        A listing without a status counts as active.
        """
        counts = StatusCounts()
        for listing in listings:
            counts.total += 1
            if getattr(listing, 'status', None) == ListingStatus.CLOSED:
                counts.closed += 1
            else:
                counts.active += 1
        return counts


_default_stats = ListingStats()


def summarize(listings: Iterable[Listing]) -> ListingSummary:
    """Module-level shortcut for ``ListingStats().summarize``."""
    return _default_stats.summarize(listings)


def status_counts(listings: Iterable[Listing]) -> StatusCounts:
    """Module-level shortcut for ``ListingStats().status_counts``."""
    return _default_stats.status_counts(listings)
