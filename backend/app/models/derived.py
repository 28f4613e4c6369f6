"""
Derived fields, maintained on write inside the flushing transaction.

1) Mechanic.geohash <- (latitude, longitude)
   recomputed before every INSERT/UPDATE of a mechanic row.
2) Mechanic.rating / review_count <- published reviews of that mechanic
   recomputed after every INSERT/UPDATE/DELETE of a review row, on the same
   connection, with the mechanic row locked (FOR UPDATE where supported).

Both hooks are ORM mapper events: bulk Core statements (insert()/update() on
the tables) bypass them and must be followed by a rebuild
(see core/safe_migrations.py).

On PostgreSQL the PostGIS point mechanics.location is derived by a database
trigger instead (also installed by core/safe_migrations.py).
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional, Set, Tuple

from sqlalchemy import event, func, inspect, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session, object_session
from sqlalchemy.orm.attributes import set_committed_value

from ..core.geo import encode_geohash, is_valid_position
from .mechanic import Mechanic
from .review import Review

logger = logging.getLogger(__name__)

_RATING_SNAPSHOTS = "mechanic_rating_snapshots"
_TWO_PLACES = Decimal("0.01")


# ----------------------------------------------------------------------
# Spatial key
# ----------------------------------------------------------------------

def derive_geohash(latitude: Optional[float], longitude: Optional[float]) -> Optional[str]:
    if latitude is None or longitude is None:
        return None
    latitude = float(latitude)
    longitude = float(longitude)
    if not is_valid_position(latitude, longitude):
        # left to the CHECK constraints to reject
        return None
    return encode_geohash(latitude, longitude)


@event.listens_for(Mechanic, "before_insert")
@event.listens_for(Mechanic, "before_update")
def _sync_mechanic_geohash(mapper, connection, target: Mechanic) -> None:
    target.geohash = derive_geohash(target.latitude, target.longitude)


# ----------------------------------------------------------------------
# Rating aggregate
# ----------------------------------------------------------------------

def round_rating(value) -> Decimal:
    return Decimal(str(value)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def recompute_mechanic_rating(connection: Connection, mechanic_id: int) -> Tuple[Decimal, int]:
    """
    Recompute rating (mean of published ratings, 2 decimals; 0.00 when there
    are none) and review_count for one mechanic and store them.
    """
    mechanics = Mechanic.__table__
    reviews = Review.__table__

    # concurrent review writers for the same mechanic serialize here
    connection.execute(
        select(mechanics.c.id)
        .where(mechanics.c.id == mechanic_id)
        .with_for_update()
    )

    avg_rating, count = connection.execute(
        select(func.avg(reviews.c.rating), func.count(reviews.c.id)).where(
            reviews.c.mechanic_id == mechanic_id,
            reviews.c.is_published.is_(True),
        )
    ).one()

    count = int(count or 0)
    rating = round_rating(avg_rating) if count else Decimal("0.00")

    connection.execute(
        update(mechanics)
        .where(mechanics.c.id == mechanic_id)
        .values(rating=rating, review_count=count)
    )
    return rating, count


def _affected_mechanic_ids(target: Review) -> Set[int]:
    ids: Set[int] = set()
    if target.mechanic_id is not None:
        ids.add(target.mechanic_id)
    # review moved to another mechanic: the previous owner changes too
    history = inspect(target).attrs.mechanic_id.history
    ids.update(v for v in history.deleted if v is not None)
    return ids


def _refresh_ratings(connection: Connection, target: Review) -> None:
    snapshots: Dict[int, Tuple[Decimal, int]] = {}
    for mechanic_id in _affected_mechanic_ids(target):
        snapshots[mechanic_id] = recompute_mechanic_rating(connection, mechanic_id)
        logger.debug(
            "mechanic rating recomputed: mechanic_id=%s rating=%s review_count=%s",
            mechanic_id,
            *snapshots[mechanic_id],
        )

    session = object_session(target)
    if session is not None:
        session.info.setdefault(_RATING_SNAPSHOTS, {}).update(snapshots)


@event.listens_for(Review, "after_insert")
@event.listens_for(Review, "after_update")
@event.listens_for(Review, "after_delete")
def _review_changed(mapper, connection, target: Review) -> None:
    _refresh_ratings(connection, target)


@event.listens_for(Session, "after_flush_postexec")
def _apply_rating_snapshots(session: Session, flush_context) -> None:
    """
    Push recomputed aggregates into Mechanic objects already loaded in this
    session, so a read right after the write never sees the old rating.
    """
    snapshots = session.info.pop(_RATING_SNAPSHOTS, None)
    if not snapshots:
        return

    for mechanic_id, (rating, count) in snapshots.items():
        mechanic = session.identity_map.get(session.identity_key(Mechanic, mechanic_id))
        if mechanic is None:
            continue
        set_committed_value(mechanic, "rating", rating)
        set_committed_value(mechanic, "review_count", count)
