"""
Exception types raised by the Apartment Feed.

Every error is recoverable and local to the user action that triggered it.
"""


class ApartmentFeedError(Exception):
    """Base class for all Apartment Feed errors."""


class ListingNotFoundError(ApartmentFeedError):
    """No listing with the requested id is in the store."""

    def __init__(self, listing_id: str):
        super().__init__(f"Listing {listing_id} not found")
        self.listing_id = listing_id


class MissingUserError(ApartmentFeedError):
    """An operation that needs a user id was called without one."""


class NotListingOwnerError(ApartmentFeedError):
    """A user tried to change a listing they do not own."""

    def __init__(self, listing_id: str, user_id: str):
        super().__init__(f"User {user_id} does not own listing {listing_id}")
        self.listing_id = listing_id
        self.user_id = user_id


class InvalidListingError(ApartmentFeedError):
    """A listing or listing change breaks a data model invariant."""


class BackendError(ApartmentFeedError):
    """The persistence backend reported a failure."""


class LikeToggleError(BackendError):
    """The backend failed to record a like or unlike."""

    def __init__(self, listing_id: str, user_id: str, reason: str):
        super().__init__(f"Failed to toggle like on {listing_id} for {user_id}: {reason}")
        self.listing_id = listing_id
        self.user_id = user_id
        self.reason = reason
