"""
Post-commit order notifications.

The order route schedules a notification and returns; the task runs
detached. Whatever happens here (catalog read errors, e-mail API outages)
is logged and dropped: a committed order is never affected.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Set

import structlog
from sqlalchemy.exc import SQLAlchemyError

from shared.config.database import Database
from shared.config.settings import Settings
from shared.observability import ecomm_order_emails_total
from services.catalog_service.repository import CatalogRepository

from .email_client import BrevoEmailClient, EmailResult
from .templates import EmailLine, OrderEmail, render_admin_email, render_customer_email

logger = structlog.get_logger(__name__)


@dataclass
class LineRequest:
    """A line item as the client submitted it (fallback display data)."""
    ref_id: int
    quantity: int
    name: Optional[str] = None
    price: Optional[Decimal] = None


@dataclass
class OrderNotification:
    order_id: int
    order_number: str
    created_at: datetime
    total_amount: Decimal
    customer_email: Optional[str]
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    payment_method: Optional[str] = None
    shipping_method: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    products: List[LineRequest] = field(default_factory=list)
    services: List[LineRequest] = field(default_factory=list)

    @classmethod
    def from_order(cls, order, request) -> "OrderNotification":
        address = request.address
        if address is not None and not isinstance(address, str):
            address = address.as_text()
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            created_at=order.created_at,
            total_amount=order.total_amount,
            customer_email=order.customer_email,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            payment_method=order.payment_method,
            shipping_method=order.shipping_method,
            address=address,
            notes=order.notes,
            products=[
                LineRequest(i.product_id, i.quantity, i.name, i.price) for i in request.items or []
            ],
            services=[
                LineRequest(s.service_id, s.quantity, s.name, s.price) for s in request.service_items or []
            ],
        )


@dataclass
class NotificationResult:
    admin: EmailResult
    customer: Optional[EmailResult]


class OrderNotifier:

    def __init__(self, database: Database, email_client: BrevoEmailClient, settings: Settings):
        self.database = database
        self.email_client = email_client
        self.admin_email = settings.admin_email
        self.base_url = settings.public_base_url
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, notification: OrderNotification) -> asyncio.Task:
        """Start sending in the background; the caller does not wait."""
        task = asyncio.create_task(self.notify(notification))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight notifications (used on shutdown and in tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def notify(self, notification: OrderNotification) -> Optional[NotificationResult]:
        log = logger.bind(order_number=notification.order_number)
        try:
            async with self.database.session() as db:
                products = [await self._product_line(db, line) for line in notification.products]
                services = [await self._service_line(db, line) for line in notification.services]

            email = OrderEmail(
                order_number=notification.order_number,
                created_at=notification.created_at,
                total_amount=notification.total_amount,
                customer_name=notification.customer_name,
                customer_email=notification.customer_email,
                customer_phone=notification.customer_phone,
                payment_method=notification.payment_method,
                shipping_method=notification.shipping_method,
                address=notification.address,
                notes=notification.notes,
                products=products,
                services=services,
            )

            admin_result = await self.email_client.send_email(
                to=[{"email": self.admin_email, "name": "Admin"}],
                subject=f"New order received - {notification.order_number}",
                html_content=render_admin_email(email, self.base_url),
            )
            self._record("admin", admin_result, log)

            customer_result = None
            if notification.customer_email:
                recipient = {"email": notification.customer_email}
                if notification.customer_name:
                    recipient["name"] = notification.customer_name
                customer_result = await self.email_client.send_email(
                    to=[recipient],
                    subject=f"Order confirmation - {notification.order_number}",
                    html_content=render_customer_email(email, self.base_url),
                )
                self._record("customer", customer_result, log)

            return NotificationResult(admin=admin_result, customer=customer_result)
        except Exception:
            # Order success never depends on notification success
            log.exception("order_notification_failed")
            return None

    @staticmethod
    def _record(recipient: str, result: EmailResult, log) -> None:
        ecomm_order_emails_total.labels(recipient=recipient, status="sent" if result.success else "failed").inc()
        if result.success:
            log.info("order_email_sent", recipient=recipient)
        else:
            log.warning("order_email_failed", recipient=recipient, error=result.error)

    @staticmethod
    async def _product_line(db, line: LineRequest) -> EmailLine:
        product = None
        try:
            product = await CatalogRepository.get_product(db, line.ref_id)
        except SQLAlchemyError as exc:
            logger.warning("email_product_lookup_failed", product_id=line.ref_id, error=str(exc))
            await db.rollback()

        if product is None:
            unit_price = line.price or Decimal("0")
            return EmailLine(
                name=line.name or f"Product #{line.ref_id}",
                quantity=line.quantity,
                unit_price=unit_price,
                total_price=unit_price * line.quantity,
            )
        return EmailLine(
            name=product.name,
            quantity=line.quantity,
            unit_price=product.price,
            total_price=product.price * line.quantity,
            slug=product.slug or "",
            image_url=product.image_url or "",
        )

    @staticmethod
    async def _service_line(db, line: LineRequest) -> EmailLine:
        service = None
        try:
            service = await CatalogRepository.get_service(db, line.ref_id)
        except SQLAlchemyError as exc:
            logger.warning("email_service_lookup_failed", service_id=line.ref_id, error=str(exc))
            await db.rollback()

        if service is None:
            unit_price = line.price or Decimal("0")
            return EmailLine(
                name=line.name or f"Service #{line.ref_id}",
                quantity=line.quantity,
                unit_price=unit_price,
                total_price=unit_price * line.quantity,
            )
        return EmailLine(
            name=service.name,
            quantity=line.quantity,
            unit_price=service.price,
            total_price=service.price * line.quantity,
        )
