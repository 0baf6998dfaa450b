"""Raw backend row models and their normalization into ``Listing``."""

import math
from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from apartment_feed.models import (
    Address,
    BombShelter,
    CloseReason,
    FurnitureItem,
    Listing,
    ListingStatus,
    OpenHouse,
    Owner,
    RentalType,
)

# Older rows store the "within 100 meters" shelter under this spelling.
_BOMB_SHELTER_ALIASES = {
    "100meters": BombShelter.WITHIN_100M,
    "within_100m": BombShelter.WITHIN_100M,
}

_ADDRESS_FIELDS = ("city", "street", "neighborhood", "floor")

# Columns of an apartment row an owner may edit
EDITABLE_COLUMNS = frozenset({
    "size", "rooms", "cost", "arnona",
    "city", "street", "neighborhood", "floor",
    "pets_allowed", "smoking_allowed", "has_parking", "has_balcony", "has_elevator",
    "bomb_shelter", "rental_type", "phone_number", "entry_date", "video_url",
})


def _lenient_number(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _lenient_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _lenient_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _user_id_of(entry: Any) -> Optional[str]:
    """Likes and registrations come either as bare ids or as join rows."""
    if isinstance(entry, dict):
        entry = entry.get("user_id")
    return str(entry) if entry else None


def _unique(ids: List[Optional[str]]) -> List[str]:
    seen = []
    for user_id in ids:
        if user_id and user_id not in seen:
            seen.append(user_id)
    return seen


class FurnitureRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    item: str = ""
    quantity: int = 0

    @model_validator(mode="before")
    @classmethod
    def accept_name_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and "item" not in data and "name" in data:
            data = {**data, "item": data["name"]}
        return data

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, value: Any) -> int:
        return int(_lenient_number(value))


class OpenHouseRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    open_date: Optional[date] = Field(default=None, validation_alias="date")
    time: str = ""
    registrations: List[Any] = Field(default_factory=list)

    @field_validator("open_date", mode="before")
    @classmethod
    def coerce_date(cls, value: Any) -> Optional[date]:
        return _lenient_date(value)

    @field_validator("time", mode="before")
    @classmethod
    def coerce_time(cls, value: Any) -> str:
        return "" if value is None else str(value)


class OwnerRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    name: str = ""
    avatar_url: Optional[str] = None


class ApartmentRow(BaseModel):
    """One apartment row with its joined images, furniture, likes and open houses.

    Accepts both the flat table shape (``city`` on the row) and the feed
    shape (``address: {city, ...}``). Missing or malformed numbers become 0,
    booleans False and strings empty; unknown enum values fail validation.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str = ""
    images: List[Any] = Field(default_factory=list)
    video_url: Optional[str] = None
    size: float = 0.0
    rooms: float = 0.0
    cost: float = 0.0
    arnona: float = 0.0
    city: str = ""
    street: str = ""
    neighborhood: str = ""
    floor: int = 0
    pets_allowed: bool = False
    smoking_allowed: bool = False
    has_parking: bool = False
    has_balcony: bool = False
    has_elevator: bool = False
    bomb_shelter: BombShelter = BombShelter.NONE
    furniture: List[FurnitureRow] = Field(default_factory=list)
    rental_type: RentalType = RentalType.APARTMENT
    phone_number: str = ""
    entry_date: Optional[date] = None
    open_houses: List[OpenHouseRow] = Field(default_factory=list)
    status: ListingStatus = ListingStatus.ACTIVE
    close_reason: Optional[CloseReason] = None
    owner: Optional[OwnerRow] = None
    created_at: Optional[datetime] = None
    likes: List[Any] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def flatten_address(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("address"), dict):
            address = data["address"]
            data = {**data}
            for name in _ADDRESS_FIELDS:
                if data.get(name) is None and name in address:
                    data[name] = address[name]
        return data

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> str:
        if value is None or value == "":
            raise ValueError("listing id is required")
        return str(value)

    @field_validator("size", "rooms", "cost", "arnona", mode="before")
    @classmethod
    def coerce_number(cls, value: Any) -> float:
        return _lenient_number(value)

    @field_validator("floor", mode="before")
    @classmethod
    def coerce_floor(cls, value: Any) -> int:
        return int(_lenient_number(value))

    @field_validator(
        "pets_allowed", "smoking_allowed", "has_parking", "has_balcony", "has_elevator",
        mode="before",
    )
    @classmethod
    def coerce_flag(cls, value: Any) -> bool:
        return _lenient_bool(value)

    @field_validator("user_id", "city", "street", "neighborhood", "phone_number", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("bomb_shelter", mode="before")
    @classmethod
    def coerce_bomb_shelter(cls, value: Any) -> Any:
        if value is None or value == "":
            return BombShelter.NONE
        if isinstance(value, str):
            return _BOMB_SHELTER_ALIASES.get(value.strip().lower(), value.strip().lower())
        return value

    @field_validator("rental_type", "status", mode="before")
    @classmethod
    def normalize_enum_text(cls, value: Any, info) -> Any:
        if value is None or value == "":
            return RentalType.APARTMENT if info.field_name == "rental_type" else ListingStatus.ACTIVE
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("close_reason", mode="before")
    @classmethod
    def blank_close_reason(cls, value: Any) -> Any:
        return None if value == "" else value

    @field_validator("created_at", mode="before")
    @classmethod
    def coerce_created_at(cls, value: Any) -> Optional[datetime]:
        if value is None or value == "" or isinstance(value, datetime):
            return value or None
        try:
            return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None

    @field_validator("entry_date", mode="before")
    @classmethod
    def coerce_entry_date(cls, value: Any) -> Optional[date]:
        return _lenient_date(value)

    @field_validator("images", "furniture", "open_houses", "likes", mode="before")
    @classmethod
    def coerce_list(cls, value: Any) -> list:
        return value if isinstance(value, list) else []

    def to_listing(self) -> Listing:
        """Build the fully typed, defaulted ``Listing`` for this row."""
        images = [
            str(image.get("url") if isinstance(image, dict) else image)
            for image in self.images
            if image and (not isinstance(image, dict) or image.get("url"))
        ]
        open_house = None
        dated = [oh for oh in self.open_houses if oh.open_date is not None]
        if dated:
            first = dated[0]
            open_house = OpenHouse(
                date=first.open_date,
                time=first.time,
                registered_user_ids=_unique([_user_id_of(r) for r in first.registrations]),
            )
        owner = self.owner or OwnerRow()
        return Listing(
            id=self.id,
            images=images,
            video_url=self.video_url,
            size=self.size,
            rooms=self.rooms,
            cost=self.cost,
            arnona=self.arnona,
            address=Address(
                city=self.city,
                street=self.street,
                neighborhood=self.neighborhood,
                floor=self.floor,
            ),
            pets_allowed=self.pets_allowed,
            smoking_allowed=self.smoking_allowed,
            has_parking=self.has_parking,
            has_balcony=self.has_balcony,
            has_elevator=self.has_elevator,
            bomb_shelter=self.bomb_shelter,
            furniture=[
                FurnitureItem(name=row.item, quantity=row.quantity)
                for row in self.furniture
                if row.quantity > 0
            ],
            rental_type=self.rental_type,
            phone_number=self.phone_number,
            entry_date=self.entry_date,
            open_house=open_house,
            status=self.status,
            close_reason=self.close_reason if self.status == ListingStatus.CLOSED else None,
            owner=Owner(
                user_id=self.user_id or owner.id,
                username=owner.name,
                avatar_url=owner.avatar_url,
            ),
            created_at=self.created_at,
            likes=_unique([_user_id_of(entry) for entry in self.likes]),
        )


def listing_to_row(listing: Listing) -> dict:
    """Convert a listing back to the flat row shape ``ApartmentRow`` accepts.

    Dates stay ``date`` / ``datetime`` objects; backends serialize them.
    """
    row = {
        "id": listing.id,
        "user_id": listing.owner.user_id,
        "images": [{"url": url} for url in listing.images],
        "video_url": listing.video_url,
        "size": listing.size,
        "rooms": listing.rooms,
        "cost": listing.cost,
        "arnona": listing.arnona,
        "city": listing.address.city,
        "street": listing.address.street,
        "neighborhood": listing.address.neighborhood,
        "floor": listing.address.floor,
        "pets_allowed": listing.pets_allowed,
        "smoking_allowed": listing.smoking_allowed,
        "has_parking": listing.has_parking,
        "has_balcony": listing.has_balcony,
        "has_elevator": listing.has_elevator,
        "bomb_shelter": listing.bomb_shelter.value,
        "furniture": [{"item": f.name, "quantity": f.quantity} for f in listing.furniture],
        "rental_type": listing.rental_type.value,
        "phone_number": listing.phone_number,
        "entry_date": listing.entry_date,
        "open_houses": [],
        "status": listing.status.value,
        "close_reason": listing.close_reason.value if listing.close_reason else None,
        "owner": {
            "id": listing.owner.user_id,
            "name": listing.owner.username,
            "avatar_url": listing.owner.avatar_url,
        },
        "created_at": listing.created_at,
        "likes": [{"user_id": user_id} for user_id in listing.likes],
    }
    if listing.open_house is not None:
        row["open_houses"] = [{
            "date": listing.open_house.date,
            "time": listing.open_house.time,
            "registrations": [{"user_id": uid} for uid in listing.open_house.registered_user_ids],
        }]
    return row
