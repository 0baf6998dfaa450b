"""Aggregation module for listing statistics."""

from .listing_stats import ListingStats, summarize, status_counts

__all__ = ['ListingStats', 'summarize', 'status_counts']
