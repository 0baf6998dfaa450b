"""
Property-based tests for like toggling.

A toggle must never leave a user twice in a listing's likes, must leave the
store untouched when the backend fails, and must not call the backend at all
without a user.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from hypothesis import given, settings, strategies as st

from apartment_feed.error_handling import LikeToggleError, ListingNotFoundError, MissingUserError
from apartment_feed.likes import LikeToggler
from apartment_feed.models import Listing
from apartment_feed.store import ListingBackend, ListingStore
from fakes import InMemoryBackend
from strategies import listings, user_ids


def make_store(listing_list):
    backend = InMemoryBackend.with_listings(listing_list)
    store = ListingStore(backend)
    asyncio.run(store.refresh())
    return store, backend


def sample_listing(**kwargs) -> Listing:
    defaults = dict(id="apt-1", images=["https://img.example.com/a.jpg"], cost=4000.0, rooms=3.0)
    defaults.update(kwargs)
    return Listing(**defaults)


@given(listing=listings, user_id=user_ids)
@settings(max_examples=50)
def test_toggle_flips_membership(listing, user_id):
    store, backend = make_store([listing])
    was_liked = user_id in store.get_listing(listing.id).likes

    updated = asyncio.run(LikeToggler(store).toggle_like(listing.id, user_id))

    assert (user_id in updated.likes) != was_liked
    assert updated.likes.count(user_id) <= 1
    assert store.get_listing(listing.id) == updated
    assert backend.calls[-1][0] == ("delete_like" if was_liked else "insert_like")


@given(listing=listings, user_id=user_ids)
@settings(max_examples=50)
def test_double_toggle_restores_likes(listing, user_id):
    store, _ = make_store([listing])
    before = store.get_listing(listing.id)
    toggler = LikeToggler(store)

    async def toggle_twice():
        await toggler.toggle_like(listing.id, user_id)
        return await toggler.toggle_like(listing.id, user_id)

    after = asyncio.run(toggle_twice())
    assert sorted(after.likes) == sorted(before.likes)
    assert after.likes.count(user_id) == before.likes.count(user_id)


@given(listing=listings, user_id=user_ids)
@settings(max_examples=50)
def test_failed_toggle_leaves_likes_unchanged(listing, user_id):
    store, backend = make_store([listing])
    before = store.get_listing(listing.id)
    backend.fail_with = ConnectionError("connection refused")

    with pytest.raises(LikeToggleError):
        asyncio.run(LikeToggler(store).toggle_like(listing.id, user_id))

    assert store.get_listing(listing.id) == before
    assert store.error is not None
    assert "connection refused" in store.error


def test_rejected_toggle_raises_and_sets_error():
    store, backend = make_store([sample_listing()])
    backend.reject = True

    with pytest.raises(LikeToggleError) as exc_info:
        asyncio.run(LikeToggler(store).toggle_like("apt-1", "u1"))

    assert exc_info.value.listing_id == "apt-1"
    assert store.get_listing("apt-1").likes == []
    assert store.error


@pytest.mark.parametrize("user_id", [None, ""])
def test_missing_user_never_calls_backend(user_id):
    backend = AsyncMock(spec=ListingBackend)
    store = ListingStore(backend)
    store.load_rows([{"id": "apt-1", "likes": [{"user_id": "u1"}]}])

    with pytest.raises(MissingUserError):
        asyncio.run(LikeToggler(store).toggle_like("apt-1", user_id))

    backend.insert_like.assert_not_called()
    backend.delete_like.assert_not_called()
    assert store.error
    assert store.get_listing("apt-1").likes == ["u1"]


def test_unknown_listing_is_not_found():
    store, backend = make_store([sample_listing()])

    with pytest.raises(ListingNotFoundError):
        asyncio.run(LikeToggler(store).toggle_like("missing", "u1"))

    assert [call for call in backend.calls if call[0] != "fetch_listings"] == []
    assert "missing" in store.error


def test_success_clears_previous_error():
    store, _ = make_store([sample_listing()])
    store.error = "Failed to load listings"

    asyncio.run(LikeToggler(store).toggle_like("apt-1", "u1"))

    assert store.error is None


def test_guest_can_like():
    store, backend = make_store([sample_listing()])

    updated = asyncio.run(LikeToggler(store).toggle_like("apt-1", "guest-1718000000000"))

    assert updated.likes == ["guest-1718000000000"]
    assert backend.likes["apt-1"] == ["guest-1718000000000"]


@given(listing=listings, user_id=user_ids, times=st.integers(min_value=2, max_value=5))
@settings(max_examples=30)
def test_concurrent_toggles_are_serialized(listing, user_id, times):
    """Overlapping toggles for one pair run one after another.

    After ``times`` toggles the membership equals the starting membership
    flipped ``times`` times, and the backend agrees with the store.
    """
    store, backend = make_store([listing])
    was_liked = user_id in store.get_listing(listing.id).likes
    toggler = LikeToggler(store)

    async def toggle_concurrently():
        await asyncio.gather(*[toggler.toggle_like(listing.id, user_id) for _ in range(times)])

    asyncio.run(toggle_concurrently())

    expected = was_liked if times % 2 == 0 else not was_liked
    likes = store.get_listing(listing.id).likes
    assert (user_id in likes) == expected
    assert likes.count(user_id) <= 1
    assert (user_id in backend.likes[listing.id]) == expected

    writes = [call[0] for call in backend.calls if call[0] != "fetch_listings"]
    first, second = ("delete_like", "insert_like") if was_liked else ("insert_like", "delete_like")
    assert writes == [first if i % 2 == 0 else second for i in range(times)]

    assert not toggler.is_pending(listing.id, user_id)
    assert toggler._locks == {}


def test_pending_while_in_flight():
    store, backend = make_store([sample_listing()])
    toggler = LikeToggler(store)
    observed = []

    async def scenario():
        task = asyncio.create_task(toggler.toggle_like("apt-1", "u1"))
        await asyncio.sleep(0)
        observed.append(toggler.is_pending("apt-1", "u1"))
        await task
        observed.append(toggler.is_pending("apt-1", "u1"))

    asyncio.run(scenario())
    assert observed == [True, False]


def test_toggles_for_different_users_are_independent():
    store, backend = make_store([sample_listing(likes=["u1"])])
    toggler = LikeToggler(store)

    async def scenario():
        await asyncio.gather(
            toggler.toggle_like("apt-1", "u1"),
            toggler.toggle_like("apt-1", "u2"),
        )

    asyncio.run(scenario())
    assert store.get_listing("apt-1").likes == ["u2"]
    assert backend.likes["apt-1"] == ["u2"]


def test_listing_deleted_while_queued_is_not_found():
    store, backend = make_store([sample_listing()])
    toggler = LikeToggler(store)

    async def like_then_delete():
        first = asyncio.create_task(toggler.toggle_like("apt-1", "u1"))
        second = asyncio.create_task(toggler.toggle_like("apt-1", "u1"))
        await asyncio.sleep(0)
        store.load_rows([])
        return await asyncio.gather(first, second, return_exceptions=True)

    first, second = asyncio.run(like_then_delete())

    assert isinstance(second, ListingNotFoundError)
    assert "apt-1" in store.error
    assert [call[0] for call in backend.calls].count("insert_like") == 1
