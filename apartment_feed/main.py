"""
Main entry point and CLI for the Apartment Feed.

Provides a command-line front end over a listings backend: browse the
filtered feed, view city statistics, like listings and manage your own posts.
"""

import asyncio
import argparse
import calendar
import logging
import sys
from datetime import date
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

from apartment_feed.aggregation import ListingStats
from apartment_feed.config import AppSettings, FilterDefaults, get_app_settings, load_app_config
from apartment_feed.error_handling import ApartmentFeedError, ErrorHandler
from apartment_feed.filtering import ListingFilter
from apartment_feed.likes import LikeToggler
from apartment_feed.models import (
    BombShelter,
    CloseReason,
    DateRange,
    FilterSpec,
    Listing,
    ListingSummary,
    NumericRange,
    RentalType,
    StatusCounts,
    StatusFilter,
)
from apartment_feed.session import UserSessionManager
from apartment_feed.store import JsonFileBackend, ListingBackend, ListingStore
from apartment_feed.store.postgres_backend import PostgresListingBackend


logger = logging.getLogger(__name__)

BAR_WIDTH = 30


def format_listing(listing: Listing, user_id: Optional[str] = None) -> str:
    """
    Format a listing for console output.

    Args:
        listing: Listing to format
        user_id: Current user, used to mark liked listings

    Returns:
        Formatted string representation of the listing
    """
    lines = []

    heart = "♥" if listing.is_liked_by(user_id) else "♡"
    address = listing.address
    place = ", ".join(part for part in (address.neighborhood, address.city) if part)
    lines.append(f"🏠 {listing.rental_type.value.title()} in {place or 'unknown location'}")
    lines.append(f"   ID: {listing.id}")
    lines.append(f"   Price: ₪{listing.cost:,.0f}/month" + (f" + ₪{listing.arnona:,.0f} arnona" if listing.arnona else ""))
    lines.append(f"   {listing.rooms:g} rooms, {listing.size:g} m², floor {address.floor}")

    features = [
        label for label, on in (
            ("pets", listing.pets_allowed),
            ("smoking", listing.smoking_allowed),
            ("parking", listing.has_parking),
            ("balcony", listing.has_balcony),
            ("elevator", listing.has_elevator),
        ) if on
    ]
    if features:
        lines.append(f"   Features: {', '.join(features)}")
    lines.append(f"   Bomb shelter: {listing.bomb_shelter.value}")

    if listing.entry_date:
        lines.append(f"   Available from: {listing.entry_date.isoformat()}")
    if listing.open_house:
        lines.append(f"   Open house: {listing.open_house.date.isoformat()} {listing.open_house.time}".rstrip())
    if not listing.is_active:
        reason = listing.close_reason.value if listing.close_reason else "no reason"
        lines.append(f"   CLOSED ({reason})")

    lines.append(f"   {heart} {len(listing.likes)}")
    lines.append("")

    return "\n".join(lines)


def format_feed(listings: List[Listing], spec: FilterSpec, user_id: Optional[str] = None) -> str:
    """
    Format the filtered feed for console output.

    Args:
        listings: Listings that passed the filters
        spec: Filters that were applied
        user_id: Current user

    Returns:
        Formatted string representation of the feed
    """
    if not listings:
        return "No apartments found. Try adjusting your filters.\n"

    output = []
    output.append(f"\n{'='*60}")
    header = f"{len(listings)} apartment(s)"
    if spec.active_count():
        header += f" ({spec.active_count()} filter(s) active)"
    output.append(header)
    output.append(f"{'='*60}\n")

    for listing in listings:
        output.append(format_listing(listing, user_id))

    return "\n".join(output)


def format_stats(summary: ListingSummary, counts: StatusCounts) -> str:
    """
    Format listing statistics with proportional city bars.

    Args:
        summary: Summary of the status-filtered listings
        counts: Active/closed counts over all listings

    Returns:
        Formatted statistics
    """
    lines = [
        f"Total listings: {summary.total_count}",
        f"Active: {counts.active}   Closed: {counts.closed}",
        "",
        "Listings by city:",
    ]
    if not summary.per_city:
        lines.append("  (none)")
    width = max((len(c.city) for c in summary.per_city), default=0)
    for city_count in summary.per_city:
        bar = "█" * max(1, round(city_count.ratio * BAR_WIDTH))
        lines.append(f"  {city_count.city:<{width}}  {bar} {city_count.count}")
    lines.append("")
    return "\n".join(lines)


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping to the end of shorter months."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def build_filter_spec(
    args: argparse.Namespace,
    defaults: FilterDefaults,
    today: Optional[date] = None
) -> FilterSpec:
    """
    Build a FilterSpec from feed arguments.

    A range given with only one bound is completed from the configured
    defaults. An entry date range given with only one end is completed with
    today or the configured window.

    Raises:
        ValueError: A range has its minimum above its maximum
    """
    today = today or date.today()

    price_range = None
    if args.min_price is not None or args.max_price is not None:
        price_range = NumericRange(
            min=args.min_price if args.min_price is not None else defaults.price_min,
            max=args.max_price if args.max_price is not None else defaults.price_max,
        )
        if price_range.min < 0 or price_range.max < 0:
            raise ValueError("Price cannot be negative")
        if price_range.min > price_range.max:
            raise ValueError(
                f"Minimum price ({price_range.min:g}) cannot be greater than maximum price ({price_range.max:g})"
            )

    rooms_range = None
    if args.min_rooms is not None or args.max_rooms is not None:
        rooms_range = NumericRange(
            min=args.min_rooms if args.min_rooms is not None else defaults.rooms_min,
            max=args.max_rooms if args.max_rooms is not None else defaults.rooms_max,
        )
        if rooms_range.min > rooms_range.max:
            raise ValueError(
                f"Minimum rooms ({rooms_range.min:g}) cannot be greater than maximum rooms ({rooms_range.max:g})"
            )

    entry_date_range = None
    if args.entry_from is not None or args.entry_to is not None:
        start = args.entry_from or today
        end = args.entry_to or add_months(start, defaults.entry_window_months)
        if start > end:
            raise ValueError(f"Entry date from ({start}) is after entry date to ({end})")
        entry_date_range = DateRange(start=start, end=end)

    return FilterSpec(
        pets_allowed=args.pets,
        smoking_allowed=args.smoking,
        has_parking=args.parking,
        has_balcony=args.balcony,
        has_elevator=args.elevator,
        rental_type=RentalType(args.rental_type) if args.rental_type else None,
        bomb_shelter=BombShelter(args.bomb_shelter) if args.bomb_shelter else None,
        city=args.city or "",
        neighborhood=args.neighborhood or "",
        price_range=price_range,
        rooms_range=rooms_range,
        entry_date_range=entry_date_range,
    )


def create_backend(settings: AppSettings, args: argparse.Namespace) -> ListingBackend:
    storage = settings.storage_config
    if args.database_url:
        storage.backend = "postgres"
        storage.database_url = args.database_url
    if args.snapshot:
        storage.backend = "file"
        storage.snapshot_path = args.snapshot

    if storage.backend == "postgres":
        return PostgresListingBackend(config=storage)
    return JsonFileBackend(storage.snapshot_path)


async def run_command(args: argparse.Namespace, settings: Optional[AppSettings] = None) -> int:
    """
    Execute one CLI command against the configured backend.

    Args:
        args: Parsed command-line arguments
        settings: Application settings (default: from environment)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Verbose logging enabled")

    settings = settings or get_app_settings()
    sessions = UserSessionManager(
        session_id=settings.session_config.session_id,
        base_dir=settings.session_config.base_dir,
    )
    session = sessions.load_session()

    if args.command == "guest":
        guest = sessions.continue_as_guest(session)
        sessions.save_session(sessions.update_session_timestamp(session))
        print(f"Continuing as guest: {guest.id}")
        return 0

    backend = create_backend(settings, args)
    try:
        if isinstance(backend, PostgresListingBackend):
            await backend.connect()

        store = ListingStore(backend, ErrorHandler(settings.retry_config))
        await store.refresh()
        user_id = getattr(args, "user", None) or sessions.current_user_id(session)

        if args.command == "feed":
            return run_feed(args, settings, store, sessions, session, user_id)
        if args.command == "stats":
            return run_stats(args, store)
        if args.command == "liked":
            liked = ListingFilter().liked_by(store.get_all_listings(), user_id)
            print(format_feed(liked, FilterSpec(), user_id))
            return 0
        if args.command == "like":
            listing = await LikeToggler(store).toggle_like(args.listing_id, user_id)
            state = "Liked" if listing.is_liked_by(user_id) else "Unliked"
            print(f"{state} {listing.id} ({len(listing.likes)} like(s))")
            return 0
        if args.command == "close":
            await store.close_listing(args.listing_id, user_id, CloseReason(args.reason))
            print(f"Closed {args.listing_id}")
            return 0
        if args.command == "delete":
            await store.delete_listing(args.listing_id, user_id, args.reason)
            print(f"Deleted {args.listing_id}")
            return 0

        logger.error(f"Unknown command: {args.command}")
        return 1

    except ApartmentFeedError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1

    finally:
        if isinstance(backend, PostgresListingBackend):
            await backend.close()


def run_feed(
    args: argparse.Namespace,
    settings: AppSettings,
    store: ListingStore,
    sessions: UserSessionManager,
    session: dict,
    user_id: Optional[str]
) -> int:
    try:
        spec = build_filter_spec(args, settings.filter_defaults)
    except ValueError as e:
        logger.error(f"Invalid filters: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.clear_filters:
        spec = FilterSpec()
    elif spec.is_empty():
        spec = sessions.saved_filters(session)

    store.set_filters(spec)
    logger.info(f"Applying {spec.active_count()} filter(s): {spec.to_dict()}")
    print(format_feed(store.filtered_listings(), spec, user_id))

    if args.save_filters or args.clear_filters:
        sessions.save_filters(session, spec)
        sessions.save_session(sessions.update_session_timestamp(session))
    return 0


def run_stats(args: argparse.Namespace, store: ListingStore) -> int:
    listings = store.get_all_listings()
    stats = ListingStats()
    selected = ListingFilter().filter_by_status(listings, StatusFilter(args.status))
    print(format_stats(stats.summarize(selected), stats.status_counts(listings)))
    return 0


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="apartment-feed",
        description="Browse, filter and manage apartment rental listings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Browse apartments in Tel Aviv under 6000 with a balcony
  apartment-feed feed --city tel --max-price 6000 --balcony

  # Save the filters for next time
  apartment-feed feed --rental-type room --pets --save-filters

  # Listings per city, active only
  apartment-feed stats --status active

  # Like a listing as a guest
  apartment-feed guest
  apartment-feed like 3f1c2a

  # Close your own listing
  apartment-feed close 3f1c2a --reason outside --user my-user-id
        """
    )

    parser.add_argument(
        "--snapshot",
        default=None,
        help="JSON snapshot file with listing rows (overrides LISTINGS_SNAPSHOT_PATH)"
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="PostgreSQL URL; use the database instead of a snapshot file"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging output"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    feed = subparsers.add_parser("feed", help="Show the filtered listing feed")
    feed.add_argument("--pets", action="store_true", help="Pets allowed")
    feed.add_argument("--smoking", action="store_true", help="Smoking allowed")
    feed.add_argument("--parking", action="store_true", help="Has parking")
    feed.add_argument("--balcony", action="store_true", help="Has balcony")
    feed.add_argument("--elevator", action="store_true", help="Has elevator")
    feed.add_argument("--rental-type", choices=[t.value for t in RentalType], default=None)
    feed.add_argument("--bomb-shelter", choices=[b.value for b in BombShelter], default=None)
    feed.add_argument("--city", default=None, help="City contains (case-insensitive)")
    feed.add_argument("--neighborhood", default=None, help="Neighborhood contains (case-insensitive)")
    feed.add_argument("--min-price", type=float, default=None)
    feed.add_argument("--max-price", type=float, default=None)
    feed.add_argument("--min-rooms", type=float, default=None)
    feed.add_argument("--max-rooms", type=float, default=None)
    feed.add_argument("--entry-from", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
    feed.add_argument("--entry-to", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
    feed.add_argument("--save-filters", action="store_true", help="Remember these filters")
    feed.add_argument("--clear-filters", action="store_true", help="Forget saved filters")
    feed.add_argument("--user", default=None, help="User id (default: session user)")

    stats = subparsers.add_parser("stats", help="Show listing counts per city")
    stats.add_argument("--status", choices=[s.value for s in StatusFilter], default="all")

    liked = subparsers.add_parser("liked", help="Show listings you liked")
    liked.add_argument("--user", default=None, help="User id (default: session user)")

    like = subparsers.add_parser("like", help="Like or unlike a listing")
    like.add_argument("listing_id")
    like.add_argument("--user", default=None, help="User id (default: session user)")

    close = subparsers.add_parser("close", help="Close one of your listings")
    close.add_argument("listing_id")
    close.add_argument("--reason", choices=[r.value for r in CloseReason], required=True)
    close.add_argument("--user", default=None, help="User id (default: session user)")

    delete = subparsers.add_parser("delete", help="Delete one of your listings")
    delete.add_argument("listing_id")
    delete.add_argument("--reason", required=True, help="Why the listing is being deleted")
    delete.add_argument("--user", default=None, help="User id (default: session user)")

    subparsers.add_parser("guest", help="Continue as a guest user")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI application.

    Returns:
        Exit code (0 for success, 1 for error, 130 when interrupted)
    """
    # .env next to where the CLI is run, without overriding the real environment
    load_dotenv(find_dotenv(usecwd=True))
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        settings = get_app_settings(load_app_config())
        return asyncio.run(run_command(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        print("\n\n⚠️  Interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        logger.exception(f"Unexpected error in main: {str(e)}")
        print(f"❌ Unexpected error: {str(e)}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
