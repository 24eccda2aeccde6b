"""
Payment security checks run before any order is created.

Validation methods raise PaymentSecurityError with a specific code; the
boolean checks (signature, duplicate, suspicious activity) never raise and
leave the reaction to the caller.
"""
import hashlib
import hmac
import math
import re
import time
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from storefront.core.config import settings
from storefront.core.exceptions import PaymentSecurityError
from storefront.core.logging import get_logger

logger = get_logger(__name__)

_IDEMPOTENCY_KEY = re.compile(r"^[0-9a-f]{64}$")


def compute_signature(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """HMAC-SHA256 hex digest of ``payload`` (prefixed by ``timestamp.`` when given)."""
    signed = payload if timestamp is None else f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a ``t=<unix>,v1=<hex>`` signature header for ``payload``."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v1={compute_signature(payload, secret, timestamp)}"


def _field(record: Any, name: str, default: Any = None) -> Any:
    if isinstance(record, dict):
        return record.get(name, default)
    return getattr(record, name, default)


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class PaymentSecurityValidator:
    """Amount, currency, method, signature and idempotency checks."""

    def __init__(
        self,
        supported_currencies: Optional[Iterable[str]] = None,
        supported_payment_methods: Optional[Iterable[str]] = None,
        max_amount: Optional[float] = None,
        suspicious_window_seconds: Optional[int] = None,
        suspicious_max_payments: Optional[int] = None,
        suspicious_amount_multiplier: Optional[float] = None,
        suspicious_amount_floor: Optional[float] = None,
    ) -> None:
        self.supported_currencies = {
            code.upper() for code in (supported_currencies or settings.supported_currencies)
        }
        self.supported_payment_methods = set(
            supported_payment_methods or settings.supported_payment_methods
        )
        self.max_amount = max_amount if max_amount is not None else settings.max_payment_amount
        self.window = timedelta(
            seconds=suspicious_window_seconds or settings.suspicious_window_seconds
        )
        self.max_payments = suspicious_max_payments or settings.suspicious_max_payments
        self.amount_multiplier = (
            suspicious_amount_multiplier or settings.suspicious_amount_multiplier
        )
        self.amount_floor = (
            suspicious_amount_floor
            if suspicious_amount_floor is not None
            else settings.suspicious_amount_floor
        )

    def validate_amount(self, amount: Any) -> None:
        """Amount must be a finite number in (0, max_amount]."""
        if isinstance(amount, bool) or not isinstance(amount, (int, float, Decimal)):
            raise PaymentSecurityError("Invalid payment amount", "INVALID_AMOUNT")
        if not math.isfinite(float(amount)):
            raise PaymentSecurityError("Invalid payment amount", "INVALID_AMOUNT")
        if amount <= 0:
            raise PaymentSecurityError("Payment amount must be positive", "INVALID_AMOUNT")
        if amount > self.max_amount:
            raise PaymentSecurityError("Payment amount exceeds maximum limit", "AMOUNT_TOO_HIGH")

    def validate_currency(self, code: str) -> str:
        """Return the upper-cased code if it is on the allow-list."""
        normalized = (code or "").strip().upper()
        if normalized not in self.supported_currencies:
            raise PaymentSecurityError(f"Unsupported currency: {code}", "UNSUPPORTED_CURRENCY")
        return normalized

    def validate_payment_method(self, method: str) -> None:
        if method not in self.supported_payment_methods:
            raise PaymentSecurityError(
                f"Unsupported payment method: {method}", "UNSUPPORTED_METHOD"
            )

    def verify_webhook_signature(
        self,
        payload: bytes | str,
        signature: Optional[str],
        secret: Optional[str],
        tolerance_seconds: Optional[int] = None,
        now: Optional[float] = None,
    ) -> bool:
        """
        Check a webhook signature in constant time.

        Accepts ``t=<unix>,v1=<hex>[,v1=<hex>...]`` (the timestamp is part of
        the signed content) or a bare hex digest of the payload. Returns
        False for anything malformed; never raises.
        """
        if not secret:
            logger.warning("Webhook secret not configured, rejecting signature")
            return False
        if not signature:
            return False
        body = payload.encode() if isinstance(payload, str) else payload

        try:
            parts = [part.strip() for part in signature.split(",") if part.strip()]
            if len(parts) == 1 and "=" not in parts[0]:
                expected = compute_signature(body, secret)
                return hmac.compare_digest(expected.encode(), parts[0].lower().encode())

            timestamp: Optional[int] = None
            candidates: list[str] = []
            for part in parts:
                name, _, value = part.partition("=")
                if name == "t":
                    timestamp = int(value)
                elif name == "v1":
                    candidates.append(value.lower())
            if timestamp is None or not candidates:
                return False

            if tolerance_seconds is not None:
                current = time.time() if now is None else now
                if abs(current - timestamp) > tolerance_seconds:
                    logger.warning("Webhook signature timestamp outside tolerance", timestamp=timestamp)
                    return False

            expected = compute_signature(body, secret, timestamp)
            # Compare against every candidate so timing does not depend on position
            matched = False
            for candidate in candidates:
                if hmac.compare_digest(expected.encode(), candidate.encode()):
                    matched = True
            return matched
        except ValueError as e:
            logger.warning("Malformed webhook signature", error=str(e))
            return False

    @staticmethod
    def generate_idempotency_key(*parts: Any) -> str:
        """Deterministic sha256 hex key for the given parts."""
        data = "_".join(str(part) for part in parts)
        return hashlib.sha256(data.encode()).hexdigest()

    @staticmethod
    def validate_idempotency_key(key: str) -> str:
        normalized = (key or "").strip().lower()
        if not _IDEMPOTENCY_KEY.match(normalized):
            raise PaymentSecurityError(
                "Idempotency key must be a 64 character hex string",
                "INVALID_IDEMPOTENCY_KEY",
            )
        return normalized

    @staticmethod
    def check_duplicate_payment(transaction_id: str, existing_orders: Iterable[Any]) -> bool:
        """True if any existing order already references ``transaction_id``."""
        for order in existing_orders:
            if _field(order, "transaction_id") == transaction_id:
                return True
            metadata = _field(order, "order_metadata") or _field(order, "metadata") or {}
            if isinstance(metadata, dict) and metadata.get("transactionId") == transaction_id:
                return True
        return False

    def check_suspicious_activity(
        self,
        user_id: str,
        amount: float,
        history: Iterable[dict[str, Any]],
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Flag too many payments in a short window, or an amount far above
        the user's average. Informational only.
        """
        now = now or datetime.now(timezone.utc)
        user_history = [entry for entry in history if entry.get("userId") == user_id]

        recent = 0
        for entry in user_history:
            created_at = _as_datetime(entry.get("createdAt"))
            if created_at is not None and now - created_at < self.window:
                recent += 1
        if recent > self.max_payments:
            return True

        amounts = [float(entry.get("amount", 0)) for entry in user_history]
        average = sum(amounts) / len(amounts) if amounts else 0.0
        if amount > average * self.amount_multiplier and amount > self.amount_floor:
            return True

        return False
