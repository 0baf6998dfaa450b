"""
PostgreSQL backend for the listing store.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

import asyncpg

from apartment_feed.config.app_config import StorageConfig
from .backends import ListingBackend
from .records import EDITABLE_COLUMNS

logger = logging.getLogger(__name__)


class PostgresListingBackend(ListingBackend):
    """Backend over the apartments schema, using an asyncpg pool.

    Either pass an existing pool or call ``connect()`` to create one from
    the storage configuration.
    """

    def __init__(
        self,
        config: Optional[StorageConfig] = None,
        pool: Optional[asyncpg.Pool] = None
    ):
        self.config = config or StorageConfig()
        self.pool = pool

    async def connect(self) -> None:
        """Create the connection pool and make sure the tables exist."""
        try:
            self.pool = await asyncpg.create_pool(
                self.config.database_url,
                min_size=self.config.pool_min_size,
                max_size=self.config.pool_max_size,
            )
            logger.info("PostgreSQL connection pool created")
            await self.create_tables()
        except Exception as e:
            logger.error(f"Failed to connect to PostgreSQL: {e}")
            raise

    async def close(self) -> None:
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("PostgreSQL connection pool closed")

    def _get_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise RuntimeError("Database not initialized")
        return self.pool

    async def create_tables(self) -> None:
        """Create database tables if they don't exist"""
        async with self._get_pool().acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL,
                    name TEXT NOT NULL,
                    avatar_url TEXT,
                    created_at TIMESTAMP NOT NULL DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS apartments (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    size FLOAT NOT NULL,
                    rooms FLOAT NOT NULL,
                    pets_allowed BOOLEAN NOT NULL DEFAULT FALSE,
                    smoking_allowed BOOLEAN NOT NULL DEFAULT FALSE,
                    has_parking BOOLEAN NOT NULL DEFAULT FALSE,
                    has_balcony BOOLEAN NOT NULL DEFAULT FALSE,
                    cost FLOAT NOT NULL,
                    arnona FLOAT NOT NULL DEFAULT 0,
                    city TEXT NOT NULL,
                    street TEXT NOT NULL,
                    neighborhood TEXT NOT NULL,
                    floor INTEGER NOT NULL DEFAULT 0,
                    has_elevator BOOLEAN NOT NULL DEFAULT FALSE,
                    bomb_shelter TEXT NOT NULL DEFAULT 'none',
                    rental_type TEXT NOT NULL,
                    phone_number TEXT NOT NULL,
                    entry_date DATE,
                    video_url TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    close_reason TEXT,
                    created_at TIMESTAMP NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMP NOT NULL DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_apartments_created_at ON apartments(created_at);
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS apartment_images (
                    id SERIAL PRIMARY KEY,
                    apartment_id TEXT NOT NULL REFERENCES apartments(id) ON DELETE CASCADE,
                    url TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS apartment_furniture (
                    id SERIAL PRIMARY KEY,
                    apartment_id TEXT NOT NULL REFERENCES apartments(id) ON DELETE CASCADE,
                    item TEXT NOT NULL,
                    quantity INTEGER NOT NULL CHECK (quantity > 0),
                    created_at TIMESTAMP NOT NULL DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS apartment_likes (
                    id SERIAL PRIMARY KEY,
                    apartment_id TEXT NOT NULL REFERENCES apartments(id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL DEFAULT NOW(),
                    UNIQUE (apartment_id, user_id)
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS open_houses (
                    id SERIAL PRIMARY KEY,
                    apartment_id TEXT NOT NULL REFERENCES apartments(id) ON DELETE CASCADE,
                    date DATE NOT NULL,
                    time TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS open_house_registrations (
                    id SERIAL PRIMARY KEY,
                    open_house_id INTEGER NOT NULL REFERENCES open_houses(id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL DEFAULT NOW()
                )
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS listing_deletions (
                    id SERIAL PRIMARY KEY,
                    listing_id TEXT NOT NULL,
                    reason TEXT NOT NULL,
                    deleted_at TIMESTAMP NOT NULL DEFAULT NOW()
                )
            """)

            logger.info("Database tables created/verified")

    async def fetch_listings(self) -> List[Dict[str, Any]]:
        async with self._get_pool().acquire() as conn:
            apartments = await conn.fetch("""
                SELECT a.*, u.name AS owner_name, u.avatar_url AS owner_avatar_url
                FROM apartments a
                LEFT JOIN users u ON u.id = a.user_id
                ORDER BY a.created_at DESC
            """)
            if not apartments:
                return []

            ids = [row["id"] for row in apartments]
            images = await conn.fetch("""
                SELECT apartment_id, url FROM apartment_images
                WHERE apartment_id = ANY($1::text[]) ORDER BY id
            """, ids)
            furniture = await conn.fetch("""
                SELECT apartment_id, item, quantity FROM apartment_furniture
                WHERE apartment_id = ANY($1::text[]) ORDER BY id
            """, ids)
            likes = await conn.fetch("""
                SELECT apartment_id, user_id FROM apartment_likes
                WHERE apartment_id = ANY($1::text[]) ORDER BY id
            """, ids)
            open_houses = await conn.fetch("""
                SELECT oh.id, oh.apartment_id, oh.date, oh.time, r.user_id
                FROM open_houses oh
                LEFT JOIN open_house_registrations r ON r.open_house_id = oh.id
                WHERE oh.apartment_id = ANY($1::text[])
                ORDER BY oh.id, r.id
            """, ids)

        children = defaultdict(lambda: defaultdict(list))
        for row in images:
            children[row["apartment_id"]]["images"].append({"url": row["url"]})
        for row in furniture:
            children[row["apartment_id"]]["furniture"].append(
                {"item": row["item"], "quantity": row["quantity"]}
            )
        for row in likes:
            children[row["apartment_id"]]["likes"].append({"user_id": row["user_id"]})

        houses: Dict[Any, Dict[str, Any]] = {}
        for row in open_houses:
            house = houses.get(row["id"])
            if house is None:
                house = {"date": row["date"], "time": row["time"], "registrations": []}
                houses[row["id"]] = house
                children[row["apartment_id"]]["open_houses"].append(house)
            if row["user_id"]:
                house["registrations"].append({"user_id": row["user_id"]})

        rows = []
        for apartment in apartments:
            row = dict(apartment)
            row["owner"] = {
                "id": row.get("user_id") or "",
                "name": row.pop("owner_name", None) or "",
                "avatar_url": row.pop("owner_avatar_url", None),
            }
            related = children[row["id"]]
            for key in ("images", "furniture", "likes", "open_houses"):
                row[key] = related[key]
            rows.append(row)
        return rows

    async def insert_like(self, listing_id: str, user_id: str) -> bool:
        async with self._get_pool().acquire() as conn:
            await conn.execute("""
                INSERT INTO apartment_likes (apartment_id, user_id)
                VALUES ($1, $2)
                ON CONFLICT (apartment_id, user_id) DO NOTHING
            """, listing_id, user_id)
        return True

    async def delete_like(self, listing_id: str, user_id: str) -> bool:
        async with self._get_pool().acquire() as conn:
            await conn.execute("""
                DELETE FROM apartment_likes WHERE apartment_id = $1 AND user_id = $2
            """, listing_id, user_id)
        return True

    async def insert_listing(self, row: Dict[str, Any]) -> Dict[str, Any]:
        columns = sorted(name for name in EDITABLE_COLUMNS if name in row) + ["user_id"]
        values = [row.get(name) for name in columns]
        placeholders = ", ".join(f"${i}" for i in range(2, len(columns) + 2))

        async with self._get_pool().acquire() as conn:
            async with conn.transaction():
                created = await conn.fetchrow(f"""
                    INSERT INTO apartments (id, {", ".join(columns)})
                    VALUES (COALESCE($1, gen_random_uuid()::text), {placeholders})
                    RETURNING id, created_at
                """, row.get("id"), *values)
                apartment_id = created["id"]

                await conn.executemany("""
                    INSERT INTO apartment_images (apartment_id, url) VALUES ($1, $2)
                """, [(apartment_id, image["url"]) for image in row.get("images", [])])
                await conn.executemany("""
                    INSERT INTO apartment_furniture (apartment_id, item, quantity) VALUES ($1, $2, $3)
                """, [(apartment_id, f["item"], f["quantity"]) for f in row.get("furniture", [])])
                for house in row.get("open_houses", []):
                    await conn.execute("""
                        INSERT INTO open_houses (apartment_id, date, time) VALUES ($1, $2, $3)
                    """, apartment_id, house["date"], house["time"])

        stored = dict(row)
        stored["id"] = apartment_id
        stored["created_at"] = created["created_at"]
        return stored

    async def update_listing(self, listing_id: str, changes: Dict[str, Any]) -> bool:
        unknown = set(changes) - EDITABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns cannot be edited: {sorted(unknown)}")
        if not changes:
            return True

        columns = list(changes)
        assignments = ", ".join(f"{name} = ${i}" for i, name in enumerate(columns, start=2))
        async with self._get_pool().acquire() as conn:
            result = await conn.execute(f"""
                UPDATE apartments SET {assignments}, updated_at = NOW() WHERE id = $1
            """, listing_id, *[changes[name] for name in columns])
        return result != "UPDATE 0"

    async def close_listing(self, listing_id: str, reason: str) -> bool:
        async with self._get_pool().acquire() as conn:
            result = await conn.execute("""
                UPDATE apartments
                SET status = 'closed', close_reason = $2, updated_at = NOW()
                WHERE id = $1
            """, listing_id, reason)
        return result != "UPDATE 0"

    async def delete_listing(self, listing_id: str, reason: str) -> bool:
        async with self._get_pool().acquire() as conn:
            async with conn.transaction():
                result = await conn.execute("""
                    DELETE FROM apartments WHERE id = $1
                """, listing_id)
                if result == "DELETE 0":
                    return False
                await conn.execute("""
                    INSERT INTO listing_deletions (listing_id, reason) VALUES ($1, $2)
                """, listing_id, reason)
        return True
