"""
Notification Service - order confirmation email via the Resend API.

Runs as a background task after a confirmed payment. Delivery problems are
logged and reported as False; they never affect the payment or its orders.
"""
from html import escape
from typing import Any, Optional

import httpx

from storefront.core.config import settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Transactional email for customers."""

    RESEND_API_URL = "https://api.resend.com/emails"

    def __init__(self, api_key: Optional[str] = None, sender: Optional[str] = None) -> None:
        self.resend_api_key = api_key if api_key is not None else settings.resend_api_key
        self.sender = sender or settings.mail_from

    async def send_email(
        self,
        to: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> bool:
        """
        Send email via Resend API.

        Args:
            to: Recipient email address
            subject: Email subject
            html_content: HTML email body
            text_content: Plain text fallback

        Returns:
            True if sent successfully
        """
        if not self.resend_api_key:
            logger.warning("Resend API key not configured, skipping email")
            return False

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {self.resend_api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": self.sender,
                        "to": [to],
                        "subject": subject,
                        "html": html_content,
                        "text": text_content or subject,
                    },
                    timeout=10.0,
                )
        except httpx.HTTPError as e:
            logger.error("Email send error", to=to, error=str(e))
            return False

        if response.status_code == 200:
            logger.info("Email sent", to=to, subject=subject)
            return True

        logger.error(
            "Email send failed",
            status=response.status_code,
            response=response.text,
        )
        return False

    def format_order_confirmation(
        self,
        customer_name: str,
        orders: list[dict[str, Any]],
    ) -> tuple[str, str, str]:
        """
        Format the confirmation email for one payment.

        ``orders`` are order summaries (orderNumber, productName, orderTotal,
        currency).

        Returns:
            Tuple of (subject, html_content, text_content)
        """
        numbers = ", ".join(order["orderNumber"] for order in orders)
        subject = f"Order confirmation {numbers}"

        lines = [
            f"{order['orderNumber']} - {order['productName']} "
            f"({order['orderTotal']:.2f} {order['currency']})"
            for order in orders
        ]
        rows = "".join(
            f"<tr><td>{escape(order['orderNumber'])}</td>"
            f"<td>{escape(order['productName'])}</td>"
            f"<td>{order['orderTotal']:.2f} {escape(order['currency'])}</td></tr>"
            for order in orders
        )

        html = f"""
<!DOCTYPE html>
<html>
<body style="font-family: system-ui, sans-serif; color: #111827;">
    <h1>Thank you, {escape(customer_name)}!</h1>
    <p>Your payment was received. Keep your order number{'s' if len(orders) > 1 else ''} for reference:</p>
    <table cellpadding="8">
        <tr><th align="left">Order</th><th align="left">Product</th><th align="left">Total</th></tr>
        {rows}
    </table>
    <p>We will let you know as soon as your order ships.</p>
</body>
</html>
"""
        text = "\n".join(
            [
                f"Thank you, {customer_name}!",
                "",
                "Your payment was received. Your orders:",
                *lines,
                "",
                "We will let you know as soon as your order ships.",
            ]
        )
        return subject, html, text

    async def send_order_confirmation(
        self,
        to: str,
        customer_name: str,
        orders: list[dict[str, Any]],
    ) -> bool:
        if not orders:
            return False
        subject, html, text = self.format_order_confirmation(customer_name, orders)
        return await self.send_email(to, subject, html, text)


# Singleton instance
notification_service = NotificationService()
