"""
Customer-facing order lookup.
"""
from typing import Annotated

from fastapi import APIRouter, Query

from storefront.routers.dependencies import OrderStoreDep
from storefront.schemas.order import CustomerOrderResponse

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/{order_number}", response_model=CustomerOrderResponse)
async def get_customer_order(
    order_number: str,
    email: Annotated[str, Query(min_length=3, max_length=255)],
    store: OrderStoreDep,
) -> CustomerOrderResponse:
    """Look up an order by number; the email it was placed with must match."""
    order = await store.lookup_for_customer(order_number, email)
    return CustomerOrderResponse.model_validate(order)
