"""
Shared FastAPI dependencies.

The storage tier is picked per request: SqlStorage on the request's session
when the database is up, otherwise the process-wide InMemoryStorage kept on
``app.state``.
"""
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from storefront.core.database import DbSession
from storefront.core.logging import get_logger
from storefront.core.security import verify_owner
from storefront.services.order_numbers import OrderNumberGenerator
from storefront.services.order_store import OrderStore
from storefront.services.payment_handler import PaymentConfirmationHandler
from storefront.services.payment_security import PaymentSecurityValidator
from storefront.services.storage import SqlStorage, Storage

logger = get_logger(__name__)


async def get_storage(request: Request, session: DbSession) -> Storage:
    """Dependency to get the storage tier for this request."""
    if session is not None:
        return SqlStorage(session, request.app.state.counter_locks)
    return request.app.state.memory_storage


StorageDep = Annotated[Storage, Depends(get_storage)]


async def get_order_store(storage: StorageDep) -> OrderStore:
    return OrderStore(storage)


async def get_order_number_generator(storage: StorageDep) -> OrderNumberGenerator:
    return OrderNumberGenerator(storage.counters, storage.reservations)


async def get_payment_validator() -> PaymentSecurityValidator:
    return PaymentSecurityValidator()


async def get_payment_handler(
    request: Request,
    storage: StorageDep,
    validator: Annotated[PaymentSecurityValidator, Depends(get_payment_validator)],
) -> PaymentConfirmationHandler:
    return PaymentConfirmationHandler(
        storage,
        validator=validator,
        generator=OrderNumberGenerator(storage.counters, storage.reservations),
        transaction_locks=request.app.state.transaction_locks,
    )


async def require_owner(
    request: Request,
    x_user_id: Annotated[Optional[str], Header()] = None,
    authorization: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Only the store owner gets past this dependency.

    Everyone else sees a plain 404 so the admin API does not reveal itself.
    """
    if not verify_owner(x_user_id, authorization):
        logger.warning("Owner check failed", path=request.url.path)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    return x_user_id or "owner"


OwnerDep = Annotated[str, Depends(require_owner)]
OrderStoreDep = Annotated[OrderStore, Depends(get_order_store)]
