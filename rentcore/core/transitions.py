"""Compare-and-set status transitions.

Every status change on bookings, escrows, vouchers, card payments and
disputes is issued as a single ``UPDATE ... WHERE status IN (:expected)``.
The row only changes if it is still in an expected prior state, so two
concurrent actors can never both apply a transition from the same state.
"""

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import ColumnElement, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def compare_and_set(
    db: AsyncSession,
    model: type,
    criterion: ColumnElement[bool],
    expected: str | Iterable[str],
    instance: Any | None = None,
    **values: Any,
) -> bool:
    """Apply ``values`` to the row matching ``criterion`` if its status is expected.

    Args:
        db: Database session
        model: ORM model class with a ``status`` column
        criterion: Row selector, e.g. ``Escrow.booking_id == booking_id``
        expected: Allowed prior status or statuses
        instance: Loaded ORM object to refresh after a successful update
        **values: Column values to set (usually including ``status``)

    Returns:
        True if exactly one row was updated
    """
    expected_states = (expected,) if isinstance(expected, str) else tuple(expected)
    stmt = (
        update(model)
        .where(criterion, model.status.in_(expected_states))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    changed = result.rowcount == 1

    if changed and instance is not None:
        await db.refresh(instance)
    if not changed:
        logger.debug(
            f"CAS miss on {model.__name__}: expected {expected_states}, target {values.get('status')}"
        )
    return changed
