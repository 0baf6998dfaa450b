"""
Filtering module for apartment listings.

This module provides functionality to filter listings based on feature
flags, rental and shelter type, location, price, rooms and entry date.
"""

from .listing_filter import ListingFilter, matches, filter_listings

__all__ = ['ListingFilter', 'matches', 'filter_listings']
