"""Atomic named counters (anonymous device numbers)"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import StoreError
from locks import insert_ignore
from models import Counter

logger = logging.getLogger(__name__)

ANON_USER_COUNTER = "anon_user_number"


def next_counter_value(db: Session, name: str = ANON_USER_COUNTER) -> int:
    """Increment the named counter under a row lock and return the new value."""
    try:
        insert_ignore(db, Counter, [{"name": name, "value": 0}], "name")
        counter = (
            db.query(Counter)
            .filter(Counter.name == name)
            .with_for_update()
            .one()
        )
        counter.value = counter.value + 1
        value = counter.value
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"increment_counter error ({name})")
        raise StoreError("Failed to assign user number")

    logger.info(f"Assigned {name}={value}")
    return value
