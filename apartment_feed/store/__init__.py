"""
Listing store module.

Holds the client's listing collection and active filters, normalizes raw
backend rows, and talks to the persistence backend.
"""

from .backends import ListingBackend, JsonFileBackend
from .listing_store import ListingStore, validate_new_listing
from .records import ApartmentRow, EDITABLE_COLUMNS, listing_to_row

__all__ = [
    'ListingBackend',
    'JsonFileBackend',
    'ListingStore',
    'validate_new_listing',
    'ApartmentRow',
    'EDITABLE_COLUMNS',
    'listing_to_row',
]
