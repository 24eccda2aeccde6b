"""
Payment webhook Pydantic schemas.
"""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.models.order import LoginMethod
from storefront.schemas.order import AddressSchema, OrderSummary


class LineItem(BaseModel):
    """One purchased item inside a product group."""

    id: str = Field(..., min_length=1)
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    sku: Optional[str] = None


class ProductGroup(BaseModel):
    """Items bought under one product name. Each group becomes one order."""

    name: str = Field(..., min_length=1)
    items: list[LineItem] = Field(..., min_length=1)


class PaymentMethodDetails(BaseModel):
    """How the customer paid."""

    type: str = "card"
    brand: Optional[str] = None
    last4: Optional[str] = Field(None, max_length=4)


class PaymentConfirmedEvent(BaseModel):
    """Payment-confirmed event delivered by the payment provider webhook."""

    transaction_id: str = Field(..., min_length=1, max_length=255, alias="transactionId")
    status: Literal["success", "failed", "pending"]
    amount: float
    currency: str = Field(..., min_length=3, max_length=3)
    user_id: str = Field(..., alias="userId")
    user_email: str = Field(..., alias="userEmail")
    user_name: str = Field(..., alias="userName")
    products: list[ProductGroup] = Field(default_factory=list)

    payment_provider: str = Field("stripe", alias="paymentProvider")
    payment_method: Optional[PaymentMethodDetails] = Field(None, alias="paymentMethod")
    login_method: LoginMethod = Field(LoginMethod.GUEST, alias="loginMethod")
    shipping_address: Optional[AddressSchema] = Field(None, alias="shippingAddress")
    billing_address: Optional[AddressSchema] = Field(None, alias="billingAddress")
    shipping_method: str = Field("Standard", alias="shippingMethod")
    shipping_cost: float = Field(0, ge=0, alias="shippingCost")
    tax_total: float = Field(0, ge=0, alias="taxTotal")
    discount_total: float = Field(0, ge=0, alias="discountTotal")
    metadata: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class PaymentConfirmationResponse(BaseModel):
    """Result of handling one payment-confirmed event."""

    status: Literal["confirmed", "rejected", "duplicate"]
    message: str
    order_numbers: list[str] = Field(default_factory=list, alias="orderNumbers")
    orders: list[OrderSummary] = Field(default_factory=list)
    flagged: bool = False

    model_config = ConfigDict(populate_by_name=True)
