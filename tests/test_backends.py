"""
Tests for the JSON snapshot backend.
"""

import asyncio
import json
from datetime import date

from apartment_feed.store import JsonFileBackend, ListingStore


def write_snapshot(path, data):
    path.write_text(json.dumps(data))


def read_snapshot(path):
    return json.loads(path.read_text())


def test_missing_file_is_empty(tmp_path):
    backend = JsonFileBackend(str(tmp_path / "listings.json"))
    assert asyncio.run(backend.fetch_listings()) == []


def test_bare_list_snapshot_is_accepted(tmp_path):
    path = tmp_path / "listings.json"
    write_snapshot(path, [{"id": "a"}, {"id": "b"}])

    rows = asyncio.run(JsonFileBackend(str(path)).fetch_listings())
    assert [row["id"] for row in rows] == ["a", "b"]


def test_like_and_unlike(tmp_path):
    path = tmp_path / "listings.json"
    write_snapshot(path, {"listings": [{"id": "a", "likes": [{"user_id": "u1"}]}]})
    backend = JsonFileBackend(str(path))

    assert asyncio.run(backend.insert_like("a", "u2"))
    assert asyncio.run(backend.insert_like("a", "u2"))
    likes = read_snapshot(path)["listings"][0]["likes"]
    assert [like["user_id"] for like in likes] == ["u1", "u2"]

    assert asyncio.run(backend.delete_like("a", "u1"))
    likes = read_snapshot(path)["listings"][0]["likes"]
    assert [like["user_id"] for like in likes] == ["u2"]


def test_unknown_listing_writes_return_false(tmp_path):
    path = tmp_path / "listings.json"
    write_snapshot(path, {"listings": [{"id": "a"}]})
    backend = JsonFileBackend(str(path))

    assert asyncio.run(backend.insert_like("zzz", "u1")) is False
    assert asyncio.run(backend.delete_like("zzz", "u1")) is False
    assert asyncio.run(backend.update_listing("zzz", {"cost": 1})) is False
    assert asyncio.run(backend.close_listing("zzz", "regret")) is False
    assert asyncio.run(backend.delete_listing("zzz", "gone")) is False


def test_insert_listing_assigns_id_and_prepends(tmp_path):
    path = tmp_path / "nested" / "listings.json"
    backend = JsonFileBackend(str(path))
    asyncio.run(backend.insert_listing({"id": "old", "city": "Haifa"}))

    stored = asyncio.run(backend.insert_listing({"city": "Tel Aviv", "entry_date": date(2024, 6, 1)}))

    assert stored["id"]
    assert stored["created_at"]
    rows = read_snapshot(path)["listings"]
    assert [row["id"] for row in rows] == [stored["id"], "old"]
    assert rows[0]["entry_date"] == "2024-06-01"


def test_close_and_delete(tmp_path):
    path = tmp_path / "listings.json"
    write_snapshot(path, {"listings": [{"id": "a"}, {"id": "b"}]})
    backend = JsonFileBackend(str(path))

    assert asyncio.run(backend.close_listing("a", "outside"))
    assert asyncio.run(backend.delete_listing("b", "Rented to a friend"))

    data = read_snapshot(path)
    assert data["listings"][0]["status"] == "closed"
    assert data["listings"][0]["close_reason"] == "outside"
    assert [row["id"] for row in data["listings"]] == ["a"]
    assert data["deletions"][0]["listing_id"] == "b"
    assert data["deletions"][0]["reason"] == "Rented to a friend"


def test_store_round_trip_through_snapshot(tmp_path):
    path = tmp_path / "listings.json"
    write_snapshot(path, {"listings": [
        {"id": "a", "city": "Haifa", "cost": 3000, "bomb_shelter": "100meters", "likes": ["u1"]},
        {"id": "b", "address": {"city": "Eilat"}, "rental_type": "sublet"},
    ]})
    store = ListingStore(JsonFileBackend(str(path)))

    listing_list = asyncio.run(store.refresh())

    assert [listing.address.city for listing in listing_list] == ["Haifa", "Eilat"]
    assert listing_list[0].bomb_shelter.value == "within100m"
    assert listing_list[0].likes == ["u1"]
