# Overview: Monthly reference code allocation for transfers and adjustments.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ReferenceSequence
from ..time_utils import utcnow
from ..validation import ConflictError


TRANSFER_ENTITY = "TRANSFER"
ADJUSTMENT_ENTITY = "ADJUSTMENT"

TRANSFER_PREFIX = "TRF"
ADJUSTMENT_PREFIX = "ADJ"

# Highest number that still fits the 4-digit NNNN part
MAX_SEQUENCE = 9999


class ReferenceSequenceError(ConflictError):
    """Raised when a reference code cannot be allocated."""
    pass


def format_reference_code(prefix: str, year: int, month: int, number: int, pad: int = 4) -> str:
    return f"{prefix}-{year % 100:02d}{month:02d}-{number:0{pad}d}"


def _bump(entity_type: str, year: int, month: int) -> int | None:
    stmt = (
        update(ReferenceSequence)
        .where(
            ReferenceSequence.entity_type == entity_type,
            ReferenceSequence.year == year,
            ReferenceSequence.month == month,
        )
        .values(next_number=ReferenceSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(ReferenceSequence.next_number)
        .filter_by(entity_type=entity_type, year=year, month=month)
        .scalar()
    )
    return current - 1


def allocate_reference_code(
    *,
    prefix: str,
    entity_type: str,
    now: datetime | None = None,
) -> str:
    """
    Atomically allocate the next PREFIX-YYMM-NNNN code for an entity type.

    The counter row for (entity_type, year, month) is bumped with a single
    UPDATE, so the row lock serializes concurrent allocations. The first
    allocation of a month inserts the row inside a savepoint; losing that
    insert race falls back to the UPDATE path without disturbing the
    caller's transaction.

    Must run before the owning record is flushed so a failure here leaves
    nothing behind.
    """
    if not prefix:
        raise ReferenceSequenceError("prefix is required")
    if not entity_type:
        raise ReferenceSequenceError("entity_type is required")

    moment = now or utcnow()
    year, month = moment.year, moment.month

    number = _bump(entity_type, year, month)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(
                    ReferenceSequence(entity_type=entity_type, year=year, month=month, next_number=2)
                )
            number = 1
        except IntegrityError:
            number = _bump(entity_type, year, month)
            if number is None:
                raise

    if number > MAX_SEQUENCE:
        raise ReferenceSequenceError(
            f"{entity_type} reference sequence exhausted for {year}-{month:02d}"
        )

    return format_reference_code(prefix, year, month, number)


def peek_next_number(entity_type: str, now: datetime | None = None) -> int:
    """Next number that would be handed out this month (no allocation)."""
    moment = now or utcnow()
    current = (
        db.session.query(ReferenceSequence.next_number)
        .filter_by(entity_type=entity_type, year=moment.year, month=moment.month)
        .scalar()
    )
    return current or 1
