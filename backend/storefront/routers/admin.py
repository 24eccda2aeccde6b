"""
Owner-only order administration API.

Every route depends on ``require_owner``; a caller who is not the owner gets
a plain 404. Every mutation leaves an "OWNER ACTION" audit line.
"""
import math
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel

from storefront.core.logging import get_logger, log_owner_action
from storefront.models.order import FulfillmentStatus, PaymentStatus
from storefront.models.reservation import ReservationStatus
from storefront.repositories.interfaces import OrderQuery
from storefront.routers.dependencies import (
    OrderStoreDep,
    OwnerDep,
    get_order_number_generator,
)
from storefront.schemas.order import (
    CounterSnapshotResponse,
    FulfillmentAction,
    NoteAction,
    OrderAction,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    OrderUpdate,
    PaginationSchema,
    RefundAction,
    ReservationResponse,
    ResolveReservationRequest,
)
from storefront.services.order_numbers import OrderNumberGenerator

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

GeneratorDep = Annotated[OrderNumberGenerator, Depends(get_order_number_generator)]


class OrderDeleteResponse(BaseModel):
    id: str
    deleted: bool
    order: Optional[OrderResponse] = None


def _parse_statuses(raw: Optional[str], enum: type[Enum], name: str) -> list[str]:
    """Comma-separated status list, every entry checked against ``enum``."""
    if not raw:
        return []
    values = [value.strip().lower() for value in raw.split(",") if value.strip()]
    allowed = {member.value for member in enum}
    invalid = [value for value in values if value not in allowed]
    if invalid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid {name}: {', '.join(invalid)}",
        )
    return values


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    owner: OwnerDep,
    store: OrderStoreDep,
    search: Annotated[Optional[str], Query(max_length=200)] = None,
    date_from: Annotated[Optional[datetime], Query(alias="dateFrom")] = None,
    date_to: Annotated[Optional[datetime], Query(alias="dateTo")] = None,
    payment_status: Annotated[Optional[str], Query(alias="paymentStatus")] = None,
    fulfillment_status: Annotated[Optional[str], Query(alias="fulfillmentStatus")] = None,
    total_min: Annotated[Optional[Decimal], Query(alias="totalMin", ge=0)] = None,
    total_max: Annotated[Optional[Decimal], Query(alias="totalMax", ge=0)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    sort_by: Annotated[
        Literal["orderDate", "orderTotal", "customerName"], Query(alias="sortBy")
    ] = "orderDate",
    sort_order: Annotated[Literal["asc", "desc"], Query(alias="sortOrder")] = "desc",
) -> OrderListResponse:
    """Search, filter, sort and paginate orders. All filters are AND-combined."""
    query = OrderQuery(
        search=search.strip() if search and search.strip() else None,
        date_from=_as_utc(date_from),
        date_to=_as_utc(date_to),
        payment_statuses=_parse_statuses(payment_status, PaymentStatus, "paymentStatus"),
        fulfillment_statuses=_parse_statuses(
            fulfillment_status, FulfillmentStatus, "fulfillmentStatus"
        ),
        total_min=total_min,
        total_max=total_max,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    orders, total = await store.filter_orders(query)
    return OrderListResponse(
        orders=[OrderResponse.model_validate(order) for order in orders],
        pagination=PaginationSchema(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
        ),
    )


@router.post("/orders", response_model=OrderResponse)
async def apply_order_action(
    owner: OwnerDep,
    action: Annotated[OrderAction, Body(discriminator="type")],
    store: OrderStoreDep,
) -> OrderResponse:
    """Run one owner action: refund, fulfillment update or note."""
    if isinstance(action, RefundAction):
        order = await store.process_refund(
            action.order_id, action.amount, action.reason, processed_by=owner
        )
        log_owner_action(
            logger,
            "refund",
            owner=owner,
            order_id=action.order_id,
            amount=action.amount,
            reason=action.reason,
        )
    elif isinstance(action, FulfillmentAction):
        order = await store.update_fulfillment(
            action.order_id,
            action.status,
            tracking_numbers=action.tracking_numbers,
            carrier=action.carrier,
            shipments=[
                shipment.model_dump(by_alias=True, exclude_none=True, mode="json")
                for shipment in action.shipments
            ],
        )
        log_owner_action(
            logger,
            "update_fulfillment",
            owner=owner,
            order_id=action.order_id,
            status=action.status.value,
            tracking_numbers=action.tracking_numbers,
            carrier=action.carrier,
        )
    elif isinstance(action, NoteAction):
        order = await store.add_owner_note(action.order_id, action.content, author=owner)
        log_owner_action(logger, "add_note", owner=owner, order_id=action.order_id)
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown action")

    return OrderResponse.model_validate(order)


@router.get("/orders/stats", response_model=OrderStatsResponse)
async def order_statistics(owner: OwnerDep, store: OrderStoreDep) -> OrderStatsResponse:
    stats = await store.statistics()
    return OrderStatsResponse.model_validate(stats)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, owner: OwnerDep, store: OrderStoreDep) -> OrderResponse:
    order = await store.require_order(order_id)
    return OrderResponse.model_validate(order)


@router.put("/orders/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: str,
    update: OrderUpdate,
    owner: OwnerDep,
    store: OrderStoreDep,
) -> OrderResponse:
    """Generic update of the fields sent; status changes are checked and logged."""
    changes = update.to_changes()
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )
    order = await store.apply_owner_update(order_id, changes)
    log_owner_action(
        logger,
        "update_order",
        owner=owner,
        order_id=order_id,
        fields=sorted(changes),
    )
    return OrderResponse.model_validate(order)


@router.delete("/orders/{order_id}", response_model=OrderDeleteResponse)
async def delete_order(
    order_id: str,
    owner: OwnerDep,
    store: OrderStoreDep,
    purge: bool = False,
    reason: Annotated[Optional[str], Query(max_length=500)] = None,
) -> OrderDeleteResponse:
    """
    Cancel an order, or with ``purge=true`` delete it permanently.

    A purged order's number is never issued again.
    """
    if purge:
        await store.delete_order(order_id)
        log_owner_action(logger, "purge_order", owner=owner, order_id=order_id)
        return OrderDeleteResponse(id=order_id, deleted=True)

    order = await store.cancel_order(order_id, reason=reason)
    log_owner_action(logger, "cancel_order", owner=owner, order_id=order_id, reason=reason)
    return OrderDeleteResponse(
        id=order_id,
        deleted=False,
        order=OrderResponse.model_validate(order),
    )


@router.get("/counters", response_model=CounterSnapshotResponse)
async def order_counters(owner: OwnerDep, generator: GeneratorDep) -> CounterSnapshotResponse:
    """Current sequence per product key. Read-only."""
    return CounterSnapshotResponse(counters=await generator.get_order_counters())


@router.get("/reservations", response_model=list[ReservationResponse])
async def list_reservations(
    owner: OwnerDep,
    generator: GeneratorDep,
    status_filter: Annotated[Optional[ReservationStatus], Query(alias="status")] = None,
) -> list[ReservationResponse]:
    """Minted order numbers, e.g. ``?status=orphaned`` for reconciliation."""
    reservations = await generator.list_reservations(
        status_filter.value if status_filter else None
    )
    return [ReservationResponse.model_validate(r) for r in reservations]


@router.post("/reservations/{order_number}/resolve", response_model=ReservationResponse)
async def resolve_reservation(
    order_number: str,
    owner: OwnerDep,
    generator: GeneratorDep,
    body: Optional[ResolveReservationRequest] = None,
) -> ReservationResponse:
    """Mark an orphaned order number as reconciled. Counters are not touched."""
    note = body.note if body else None
    reservation = await generator.resolve(order_number, note=note)
    log_owner_action(
        logger,
        "resolve_reservation",
        owner=owner,
        order_number=order_number,
        note=note,
    )
    return ReservationResponse.model_validate(reservation)
