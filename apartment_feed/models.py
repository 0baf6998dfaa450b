"""
Data models for the Apartment Feed.

This module defines the core data structures used throughout the application.
Instances are fully typed and defaulted; raw backend rows are normalized into
them by ``apartment_feed.store.records``.
"""

from dataclasses import dataclass, field, asdict, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class RentalType(str, Enum):
    """What is being rented."""
    ROOM = "room"
    APARTMENT = "apartment"
    SUBLET = "sublet"


class BombShelter(str, Enum):
    """Where the nearest bomb shelter is."""
    APARTMENT = "apartment"
    BUILDING = "building"
    WITHIN_100M = "within100m"
    NONE = "none"


class ListingStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class CloseReason(str, Enum):
    """Why an owner closed a listing."""
    RENTED_IN_APP = "app"
    RENTED_OUTSIDE = "outside"
    REGRET = "regret"
    APP_PROBLEMS = "problems"


class StatusFilter(str, Enum):
    """Status dimension used by the statistics view."""
    ALL = "all"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class Address:
    city: str = ""
    street: str = ""
    neighborhood: str = ""
    floor: int = 0


@dataclass
class FurnitureItem:
    name: str
    quantity: int


@dataclass
class OpenHouse:
    """A scheduled open house and the users registered to it."""
    date: date
    time: str = ""
    registered_user_ids: List[str] = field(default_factory=list)


@dataclass
class Owner:
    user_id: str = ""
    username: str = ""
    avatar_url: Optional[str] = None


@dataclass
class Listing:
    """Represents an apartment rental listing.

    Attributes:
        id: Unique listing identifier
        images: Ordered image URLs, the first one is the cover
        video_url: Optional video URL
        size: Apartment size in square meters
        rooms: Number of rooms (half rooms allowed)
        cost: Monthly rent
        arnona: Monthly municipal tax
        address: City, street, neighborhood and floor
        bomb_shelter: Nearest bomb shelter
        rental_type: Room, whole apartment or sublet
        entry_date: Date the apartment becomes available, if known
        status: Active or closed
        close_reason: Why the owner closed the listing
        likes: User ids that liked the listing, each at most once
    """
    id: str
    images: List[str] = field(default_factory=list)
    video_url: Optional[str] = None
    size: float = 0.0
    rooms: float = 0.0
    cost: float = 0.0
    arnona: float = 0.0
    address: Address = field(default_factory=Address)
    pets_allowed: bool = False
    smoking_allowed: bool = False
    has_parking: bool = False
    has_balcony: bool = False
    has_elevator: bool = False
    bomb_shelter: BombShelter = BombShelter.NONE
    furniture: List[FurnitureItem] = field(default_factory=list)
    rental_type: RentalType = RentalType.APARTMENT
    phone_number: str = ""
    entry_date: Optional[date] = None
    open_house: Optional[OpenHouse] = None
    status: ListingStatus = ListingStatus.ACTIVE
    close_reason: Optional[CloseReason] = None
    owner: Owner = field(default_factory=Owner)
    created_at: Optional[datetime] = None
    likes: List[str] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status != ListingStatus.CLOSED

    def is_liked_by(self, user_id: Optional[str]) -> bool:
        """Check like membership against the current likes."""
        return bool(user_id) and user_id in self.likes

    def with_like(self, user_id: str) -> 'Listing':
        """Return a copy with ``user_id`` appended to likes.

        Adding an id that is already present returns an unchanged copy so
        the at-most-once invariant holds.
        """
        if user_id in self.likes:
            return replace(self, likes=list(self.likes))
        return replace(self, likes=[*self.likes, user_id])

    def without_like(self, user_id: str) -> 'Listing':
        """Return a copy with ``user_id`` removed from likes."""
        return replace(self, likes=[uid for uid in self.likes if uid != user_id])

    def to_dict(self) -> dict:
        """Convert listing to dictionary for JSON serialization.

        Returns:
            Dictionary representation with dates converted to ISO format and
            enums converted to their values
        """
        data = asdict(self)
        data['bomb_shelter'] = self.bomb_shelter.value
        data['rental_type'] = self.rental_type.value
        data['status'] = self.status.value
        data['close_reason'] = self.close_reason.value if self.close_reason else None
        data['entry_date'] = self.entry_date.isoformat() if self.entry_date else None
        data['created_at'] = self.created_at.isoformat() if self.created_at else None
        if self.open_house is not None:
            data['open_house']['date'] = self.open_house.date.isoformat()
        return data


@dataclass(frozen=True)
class NumericRange:
    """Inclusive ``[min, max]`` range."""
    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    @classmethod
    def from_dict(cls, data: dict) -> 'NumericRange':
        """Raises KeyError, TypeError or ValueError for a non-numeric bound."""
        return cls(min=float(data['min']), max=float(data['max']))


@dataclass(frozen=True)
class DateRange:
    """Inclusive day range; ``start`` and ``end`` may each be unset."""
    start: Optional[date] = None
    end: Optional[date] = None

    @property
    def is_complete(self) -> bool:
        return self.start is not None and self.end is not None


@dataclass(frozen=True)
class FilterSpec:
    """User filter constraints for the listing feed.

    Every attribute is optional; an unset constraint always matches. Boolean
    flags only ever require ``True``, they never require ``False``.
    """
    pets_allowed: bool = False
    smoking_allowed: bool = False
    has_parking: bool = False
    has_balcony: bool = False
    has_elevator: bool = False
    rental_type: Optional[RentalType] = None
    bomb_shelter: Optional[BombShelter] = None
    city: str = ""
    neighborhood: str = ""
    price_range: Optional[NumericRange] = None
    rooms_range: Optional[NumericRange] = None
    entry_date_range: Optional[DateRange] = None

    FLAG_FIELDS = (
        'pets_allowed',
        'smoking_allowed',
        'has_parking',
        'has_balcony',
        'has_elevator',
    )

    def active_count(self) -> int:
        """Number of constraints currently set (the filter badge count)."""
        count = sum(1 for name in self.FLAG_FIELDS if getattr(self, name))
        for value in (self.rental_type, self.bomb_shelter, self.price_range, self.rooms_range):
            if value is not None:
                count += 1
        if self.city:
            count += 1
        if self.neighborhood:
            count += 1
        if self.entry_date_range is not None and self.entry_date_range.is_complete:
            count += 1
        return count

    def is_empty(self) -> bool:
        return self.active_count() == 0

    def to_dict(self) -> dict:
        """Convert filter spec to a JSON-serializable dictionary.

        Unset constraints are omitted.
        """
        data: Dict[str, Any] = {}
        for name in self.FLAG_FIELDS:
            if getattr(self, name):
                data[name] = True
        if self.rental_type is not None:
            data['rental_type'] = self.rental_type.value
        if self.bomb_shelter is not None:
            data['bomb_shelter'] = self.bomb_shelter.value
        if self.city:
            data['city'] = self.city
        if self.neighborhood:
            data['neighborhood'] = self.neighborhood
        if self.price_range is not None:
            data['price_range'] = {'min': self.price_range.min, 'max': self.price_range.max}
        if self.rooms_range is not None:
            data['rooms_range'] = {'min': self.rooms_range.min, 'max': self.rooms_range.max}
        if self.entry_date_range is not None and self.entry_date_range.is_complete:
            data['entry_date_range'] = {
                'from': self.entry_date_range.start.isoformat(),
                'to': self.entry_date_range.end.isoformat(),
            }
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'FilterSpec':
        """Create FilterSpec instance from dictionary.

        Args:
            data: Dictionary produced by ``to_dict``

        Returns:
            FilterSpec instance
        """
        kwargs: Dict[str, Any] = {name: bool(data.get(name, False)) for name in cls.FLAG_FIELDS}
        if data.get('rental_type'):
            kwargs['rental_type'] = RentalType(data['rental_type'])
        if data.get('bomb_shelter'):
            kwargs['bomb_shelter'] = BombShelter(data['bomb_shelter'])
        kwargs['city'] = str(data.get('city') or "")
        kwargs['neighborhood'] = str(data.get('neighborhood') or "")
        if data.get('price_range'):
            kwargs['price_range'] = NumericRange.from_dict(data['price_range'])
        if data.get('rooms_range'):
            kwargs['rooms_range'] = NumericRange.from_dict(data['rooms_range'])
        if data.get('entry_date_range'):
            kwargs['entry_date_range'] = DateRange(
                start=date.fromisoformat(data['entry_date_range']['from']),
                end=date.fromisoformat(data['entry_date_range']['to']),
            )
        return cls(**kwargs)


@dataclass
class CityCount:
    """Number of listings in one city and its bar width relative to the top city."""
    city: str
    count: int
    ratio: float


@dataclass
class ListingSummary:
    total_count: int
    per_city: List[CityCount] = field(default_factory=list)


@dataclass
class StatusCounts:
    total: int = 0
    active: int = 0
    closed: int = 0


@dataclass
class CurrentUser:
    """Identity supplied by the authentication collaborator.

    Attributes:
        id: User id, ``guest-<epoch ms>`` for guests
        name: Display name
        email: Email address
        is_guest: Whether this user was generated by "continue as guest"
    """
    id: str
    name: str = ""
    email: str = ""
    is_guest: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'CurrentUser':
        """Unknown keys are ignored; the id must be a non-empty string."""
        if not isinstance(data.get('id'), str) or not data['id']:
            raise ValueError(f"Invalid user id: {data.get('id')!r}")
        return cls(
            id=data['id'],
            name=str(data.get('name') or ""),
            email=str(data.get('email') or ""),
            is_guest=bool(data.get('is_guest', False)),
        )
