"""
Error handling module for the Apartment Feed.

Provides the exception hierarchy, retry logic and recovery suggestions.
"""

from .error_handler import ErrorHandler
from .errors import (
    ApartmentFeedError,
    BackendError,
    InvalidListingError,
    LikeToggleError,
    ListingNotFoundError,
    MissingUserError,
    NotListingOwnerError,
)

__all__ = [
    'ErrorHandler',
    'ApartmentFeedError',
    'BackendError',
    'InvalidListingError',
    'LikeToggleError',
    'ListingNotFoundError',
    'MissingUserError',
    'NotListingOwnerError',
]
