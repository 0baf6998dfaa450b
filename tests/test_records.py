"""
Tests for normalizing raw backend rows into listings.
"""

from datetime import date, datetime

import pytest
from pydantic import ValidationError

from apartment_feed.models import (
    BombShelter,
    CloseReason,
    ListingStatus,
    RentalType,
)
from apartment_feed.store.records import ApartmentRow, listing_to_row


def full_row(**overrides) -> dict:
    row = {
        "id": "apt-1",
        "user_id": "owner-1",
        "images": [{"url": "https://img.example.com/1.jpg"}, {"url": "https://img.example.com/2.jpg"}],
        "size": 75,
        "rooms": "3.5",
        "cost": 6200,
        "arnona": 450,
        "city": "Tel Aviv",
        "street": "Dizengoff 100",
        "neighborhood": "Old North",
        "floor": "3",
        "pets_allowed": True,
        "smoking_allowed": False,
        "has_parking": "true",
        "has_balcony": None,
        "has_elevator": 1,
        "bomb_shelter": "building",
        "furniture": [{"item": "sofa", "quantity": 1}, {"item": "chair", "quantity": 4}],
        "rental_type": "apartment",
        "phone_number": "050-1234567",
        "entry_date": "2024-06-15",
        "open_houses": [
            {"date": "2024-06-01", "time": "18:00", "registrations": [{"user_id": "u1"}, {"user_id": "u1"}]},
        ],
        "status": "active",
        "owner": {"id": "owner-1", "name": "Dana", "avatar_url": "https://img.example.com/dana.jpg"},
        "created_at": "2024-05-20T10:00:00+00:00",
        "likes": [{"user_id": "u1"}, {"user_id": "u2"}, {"user_id": "u1"}],
    }
    row.update(overrides)
    return row


def test_full_row_normalizes_to_typed_listing():
    listing = ApartmentRow.model_validate(full_row()).to_listing()

    assert listing.id == "apt-1"
    assert listing.images == ["https://img.example.com/1.jpg", "https://img.example.com/2.jpg"]
    assert listing.rooms == 3.5
    assert listing.cost == 6200.0
    assert listing.address.city == "Tel Aviv"
    assert listing.address.floor == 3
    assert listing.has_parking is True
    assert listing.has_balcony is False
    assert listing.has_elevator is True
    assert listing.bomb_shelter == BombShelter.BUILDING
    assert listing.rental_type == RentalType.APARTMENT
    assert [(f.name, f.quantity) for f in listing.furniture] == [("sofa", 1), ("chair", 4)]
    assert listing.entry_date == date(2024, 6, 15)
    assert listing.open_house.date == date(2024, 6, 1)
    assert listing.open_house.registered_user_ids == ["u1"]
    assert listing.owner.username == "Dana"
    assert isinstance(listing.created_at, datetime)


def test_duplicate_likes_are_collapsed_in_order():
    listing = ApartmentRow.model_validate(full_row()).to_listing()
    assert listing.likes == ["u1", "u2"]


def test_likes_as_bare_ids():
    listing = ApartmentRow.model_validate(full_row(likes=["u3", "u3", "u4"])).to_listing()
    assert listing.likes == ["u3", "u4"]


def test_minimal_row_gets_neutral_defaults():
    listing = ApartmentRow.model_validate({"id": 42}).to_listing()

    assert listing.id == "42"
    assert listing.cost == 0.0
    assert listing.rooms == 0.0
    assert listing.address.city == ""
    assert listing.pets_allowed is False
    assert listing.bomb_shelter == BombShelter.NONE
    assert listing.rental_type == RentalType.APARTMENT
    assert listing.status == ListingStatus.ACTIVE
    assert listing.entry_date is None
    assert listing.open_house is None
    assert listing.likes == []


@pytest.mark.parametrize("value", [None, "", "n/a", float("nan"), float("inf"), [1]])
def test_malformed_numbers_become_zero(value):
    listing = ApartmentRow.model_validate(full_row(cost=value, floor=value)).to_listing()
    assert listing.cost == 0.0
    assert listing.address.floor == 0


def test_nested_address_shape_is_accepted():
    row = full_row()
    for name in ("city", "street", "neighborhood", "floor"):
        row.pop(name)
    row["address"] = {"city": "Haifa", "street": "Herzl 5", "neighborhood": "Hadar", "floor": 2}

    listing = ApartmentRow.model_validate(row).to_listing()
    assert listing.address.city == "Haifa"
    assert listing.address.neighborhood == "Hadar"
    assert listing.address.floor == 2


@pytest.mark.parametrize("raw", ["100meters", "within100m", "WITHIN_100M"])
def test_legacy_shelter_spellings(raw):
    listing = ApartmentRow.model_validate(full_row(bomb_shelter=raw)).to_listing()
    assert listing.bomb_shelter == BombShelter.WITHIN_100M


@pytest.mark.parametrize("field,value", [
    ("rental_type", "penthouse"),
    ("bomb_shelter", "basement"),
    ("status", "archived"),
    ("close_reason", "bored"),
])
def test_unknown_enum_values_are_rejected(field, value):
    with pytest.raises(ValidationError):
        ApartmentRow.model_validate(full_row(**{field: value}))


def test_missing_id_is_rejected():
    with pytest.raises(ValidationError):
        ApartmentRow.model_validate(full_row(id=""))


def test_status_text_is_normalized():
    listing = ApartmentRow.model_validate(full_row(status="Closed", close_reason="outside")).to_listing()
    assert listing.status == ListingStatus.CLOSED
    assert listing.close_reason == CloseReason.RENTED_OUTSIDE
    assert not listing.is_active


def test_close_reason_dropped_for_active_listing():
    listing = ApartmentRow.model_validate(full_row(status="active", close_reason="app")).to_listing()
    assert listing.close_reason is None


def test_non_positive_furniture_is_dropped():
    row = full_row(furniture=[{"item": "bed", "quantity": 0}, {"name": "desk", "quantity": "2"}, {"item": "lamp", "quantity": -1}])
    listing = ApartmentRow.model_validate(row).to_listing()
    assert [(f.name, f.quantity) for f in listing.furniture] == [("desk", 2)]


def test_unparsable_dates_become_none():
    listing = ApartmentRow.model_validate(full_row(entry_date="soon", created_at="yesterday")).to_listing()
    assert listing.entry_date is None
    assert listing.created_at is None


def test_listing_to_row_round_trip():
    listing = ApartmentRow.model_validate(full_row()).to_listing()
    again = ApartmentRow.model_validate(listing_to_row(listing)).to_listing()
    assert again == listing
