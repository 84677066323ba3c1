import uuid

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from db.models import Order


def parse_order_guid(value: str | None) -> uuid.UUID | None:
    """Return the UUID for a well-formed guid string, else None."""
    if not value:
        return None
    try:
        return uuid.UUID(str(value).strip())
    except ValueError:
        return None


async def find_order_by_guid(db, order_guid: uuid.UUID) -> Order | None:
    # Notes are loaded eagerly; appending to a lazy collection is not
    # possible on an AsyncSession.
    result = await db.execute(
        select(Order)
        .options(selectinload(Order.notes))
        .where(Order.order_guid == order_guid)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def find_order_by_correlation_id(db, correlation_id: str | None) -> Order | None:
    """Resolve a webhook correlation id (the order guid) to an order.

    Malformed ids resolve to None just like unknown ones.
    """
    order_guid = parse_order_guid(correlation_id)
    if order_guid is None:
        return None
    return await find_order_by_guid(db, order_guid)
