"""
Order read routes
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from api.schemas import OrderOut
from db.session import get_async_db
from orders.repository import find_order_by_guid

router = APIRouter()


@router.get("/{order_guid}", response_model=OrderOut)
async def get_order(order_guid: UUID, db=Depends(get_async_db)):
    """Payment state of an order together with its notes, oldest first."""
    order = await find_order_by_guid(db, order_guid)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order
