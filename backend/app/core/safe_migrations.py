import logging

from sqlalchemy import func, inspect, select, text, update
from sqlalchemy.ext.asyncio import AsyncConnection

logger = logging.getLogger(__name__)


async def _apply_postgres(conn: AsyncConnection) -> None:
    stmts: list[str] = [
        # --- mechanics: spatial key (older databases predate it) ---
        "ALTER TABLE mechanics ADD COLUMN IF NOT EXISTS geohash VARCHAR(12);",
        "CREATE INDEX IF NOT EXISTS ix_mechanics_geohash ON mechanics (geohash);",
        # --- mechanics: PostGIS point + GiST index, kept in sync by trigger ---
        "CREATE EXTENSION IF NOT EXISTS postgis;",
        "ALTER TABLE mechanics ADD COLUMN IF NOT EXISTS location geography(POINT, 4326);",
        "CREATE INDEX IF NOT EXISTS ix_mechanics_location ON mechanics USING GIST (location);",
        """
        CREATE OR REPLACE FUNCTION mechanics_sync_location() RETURNS trigger AS $$
        BEGIN
            IF NEW.latitude IS NOT NULL AND NEW.longitude IS NOT NULL THEN
                NEW.location := ST_SetSRID(ST_MakePoint(NEW.longitude, NEW.latitude), 4326)::geography;
            ELSE
                NEW.location := NULL;
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """,
        "DROP TRIGGER IF EXISTS trg_mechanics_location ON mechanics;",
        """
        CREATE TRIGGER trg_mechanics_location
            BEFORE INSERT OR UPDATE OF latitude, longitude ON mechanics
            FOR EACH ROW EXECUTE FUNCTION mechanics_sync_location();
        """,
        # rows written before the trigger existed
        """
        UPDATE mechanics
        SET location = ST_SetSRID(ST_MakePoint(longitude, latitude), 4326)::geography
        WHERE location IS NULL AND latitude IS NOT NULL AND longitude IS NOT NULL;
        """,
    ]

    for stmt in stmts:
        await conn.execute(text(stmt))


def _mechanic_columns(sync_conn) -> set[str]:
    return {col["name"] for col in inspect(sync_conn).get_columns("mechanics")}


async def _apply_sqlite(conn: AsyncConnection) -> None:
    # SQLite: no ADD COLUMN IF NOT EXISTS, look first
    columns = await conn.run_sync(_mechanic_columns)
    if "geohash" not in columns:
        await conn.execute(text("ALTER TABLE mechanics ADD COLUMN geohash VARCHAR(12);"))
    await conn.execute(text("CREATE INDEX IF NOT EXISTS ix_mechanics_geohash ON mechanics (geohash);"))


async def backfill_geohash(conn: AsyncConnection) -> int:
    """Derive the spatial key for positioned mechanics that lack one."""
    from ..models import Mechanic
    from ..models.derived import derive_geohash

    mechanics = Mechanic.__table__
    rows = (
        await conn.execute(
            select(mechanics.c.id, mechanics.c.latitude, mechanics.c.longitude).where(
                mechanics.c.geohash.is_(None),
                mechanics.c.latitude.is_not(None),
                mechanics.c.longitude.is_not(None),
            )
        )
    ).all()

    fixed = 0
    for mechanic_id, latitude, longitude in rows:
        geohash = derive_geohash(latitude, longitude)
        if geohash is None:
            continue
        await conn.execute(
            update(mechanics).where(mechanics.c.id == mechanic_id).values(geohash=geohash)
        )
        fixed += 1
    return fixed


async def rebuild_stale_ratings(conn: AsyncConnection) -> int:
    """Recompute rating aggregates that disagree with the published reviews (count or mean)."""
    from ..models import Mechanic, Review
    from ..models.derived import recompute_mechanic_rating, round_rating

    mechanics = Mechanic.__table__
    reviews = Review.__table__

    published = (
        select(
            reviews.c.mechanic_id,
            func.count().label("review_count"),
            func.avg(reviews.c.rating).label("avg_rating"),
        )
        .where(reviews.c.is_published.is_(True))
        .group_by(reviews.c.mechanic_id)
        .subquery()
    )
    rows = (
        await conn.execute(
            select(
                mechanics.c.id,
                mechanics.c.rating,
                mechanics.c.review_count,
                published.c.review_count,
                published.c.avg_rating,
            ).outerjoin(published, published.c.mechanic_id == mechanics.c.id)
        )
    ).all()

    stale_ids = []
    for mechanic_id, rating, stored_count, count, avg_rating in rows:
        count = int(count or 0)
        expected = round_rating(avg_rating) if count else round_rating(0)
        if stored_count != count or round_rating(rating or 0) != expected:
            stale_ids.append(mechanic_id)

    for mechanic_id in stale_ids:
        await conn.run_sync(recompute_mechanic_rating, mechanic_id)
    return len(stale_ids)


async def apply_safe_migrations(conn: AsyncConnection, db_type: str) -> None:
    if (db_type or "").lower().startswith("postgres"):
        await _apply_postgres(conn)
    else:
        await _apply_sqlite(conn)

    fixed = await backfill_geohash(conn)
    stale = await rebuild_stale_ratings(conn)
    if fixed or stale:
        logger.warning(
            "safe_migrations: rebuilt derived fields (geohash=%s, ratings=%s)",
            fixed,
            stale,
        )
