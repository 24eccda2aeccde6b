"""
Payment provider webhook.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.routers.dependencies import get_payment_handler, get_payment_validator
from storefront.schemas.order import OrderSummary
from storefront.schemas.payment import PaymentConfirmationResponse, PaymentConfirmedEvent
from storefront.services.notifications import notification_service
from storefront.services.payment_handler import (
    ConfirmationStatus,
    PaymentConfirmationHandler,
)
from storefront.services.payment_security import PaymentSecurityValidator

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/webhook", response_model=PaymentConfirmationResponse)
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    validator: Annotated[PaymentSecurityValidator, Depends(get_payment_validator)],
    handler: Annotated[PaymentConfirmationHandler, Depends(get_payment_handler)],
    x_webhook_signature: Annotated[Optional[str], Header()] = None,
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
) -> PaymentConfirmationResponse:
    """
    Receive a payment-confirmed event.

    The signature is checked against the raw body before anything is
    parsed. Orders are only created for ``status == "success"``; replays of
    the same transaction return the orders created the first time.
    """
    payload = await request.body()
    if not validator.verify_webhook_signature(
        payload,
        x_webhook_signature,
        settings.webhook_secret,
        tolerance_seconds=settings.webhook_tolerance_seconds,
    ):
        logger.warning("Webhook signature rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        event = PaymentConfirmedEvent.model_validate_json(payload)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False)) from e

    result = await handler.handle_payment_confirmation(event, idempotency_key=idempotency_key)
    orders = [OrderSummary.model_validate(order) for order in result.orders]

    if result.status == ConfirmationStatus.CONFIRMED:
        background_tasks.add_task(
            notification_service.send_order_confirmation,
            event.user_email,
            event.user_name,
            [order.model_dump(by_alias=True, mode="json") for order in orders],
        )

    return PaymentConfirmationResponse(
        status=result.status.value,
        message=result.message,
        order_numbers=result.order_numbers,
        orders=orders,
        flagged=result.flagged,
    )
