"""Row-lock helpers built on the store's own atomicity.

Lock rows are created with an insert-ignore so concurrent first-time
claimers never fail on the primary key, then locked with
``SELECT ... FOR UPDATE`` in key order. Locks live until the caller's
commit or rollback.
"""
import logging
from datetime import datetime
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import GeoCell

logger = logging.getLogger(__name__)


def insert_ignore(db: Session, model, rows: List[dict], key: str):
    """Insert rows, skipping any whose primary key already exists."""
    if not rows:
        return
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        _insert_ignore_generic(db, model, rows)
        return
    stmt = insert(model).values(rows).on_conflict_do_nothing(index_elements=[key])
    db.execute(stmt)


def _insert_ignore_generic(db: Session, model, rows: List[dict]):
    for row in rows:
        try:
            with db.begin_nested():
                db.add(model(**row))
        except IntegrityError:
            logger.debug(f"{model.__tablename__} row already present: {row}")


def claim_cells(db: Session, keys: List[str], now: datetime) -> List[GeoCell]:
    """Lock the given grid cells for the rest of the current transaction."""
    keys = sorted(set(keys))
    insert_ignore(db, GeoCell, [{"key": k} for k in keys], "key")
    cells = (
        db.query(GeoCell)
        .filter(GeoCell.key.in_(keys))
        .order_by(GeoCell.key)
        .with_for_update()
        .all()
    )
    for cell in cells:
        cell.last_claimed_at = now
    # Flush so the write lock is taken now even where FOR UPDATE is a no-op
    db.flush()
    return cells
