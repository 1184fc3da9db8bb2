"""
Order creation.

validate -> number -> (guest account) -> header + line items in ONE
transaction -> schedule notification e-mails. Line item prices always come
from the catalog tables, never from the request body. Any failure inside the
transaction rolls back every row written for the order, including a freshly
created guest user and address.
"""
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import Database
from shared.exceptions import ConfigurationError, NotFoundError, PersistenceError, ValidationError
from shared.observability import ecomm_order_creation_duration_seconds, ecomm_orders_created_total
from services.catalog_service.repository import CatalogRepository
from services.notification_service.notifier import OrderNotification, OrderNotifier
from services.user_service.service import GuestAccountResolver

from .models import Order, OrderItem, OrderServiceItem, OrderStatusHistory
from .repository import OrderRepository
from .schemas import OrderCreate, OrderItemIn, ServiceItemIn

logger = structlog.get_logger(__name__)

ORDER_NUMBER_PREFIX = "ORD"
ORDER_NUMBER_SUFFIX_LENGTH = 9
_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits

PENDING_STATUS = "pending"
MISSING_FIELDS_MESSAGE = "Customer email, total amount, and at least one item are required"


def generate_order_number(now_ms: Optional[int] = None) -> str:
    """ORD-<epoch ms>-<random suffix>. Not checked against the database;
    the unique index on orders.order_number is the backstop."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(ORDER_NUMBER_SUFFIX_LENGTH))
    return f"{ORDER_NUMBER_PREFIX}-{now_ms}-{suffix}"


def validate_order_request(data: OrderCreate) -> str:
    """Returns the normalised customer e-mail or raises ValidationError."""
    if not data.customer_email or not data.total_amount:
        raise ValidationError(MISSING_FIELDS_MESSAGE)
    if not data.items and not data.service_items:
        raise ValidationError(MISSING_FIELDS_MESSAGE)
    return data.customer_email


class CheckoutService:

    def __init__(self, database: Database, notifier: OrderNotifier, guest_resolver: GuestAccountResolver):
        self.database = database
        self.notifier = notifier
        self.guest_resolver = guest_resolver

    async def create_order(self, data: OrderCreate) -> Order:
        try:
            customer_email = validate_order_request(data)
        except ValidationError:
            ecomm_orders_created_total.labels(status="invalid").inc()
            raise

        order_number = generate_order_number()
        log = logger.bind(order_number=order_number, customer_email=customer_email)
        started = time.perf_counter()

        try:
            async with self.database.transaction() as db:
                order = await self._persist(db, data, customer_email, order_number)
        except NotFoundError as exc:
            ecomm_orders_created_total.labels(status="not_found").inc()
            log.warning("order_rejected", reason=exc.message)
            raise
        except ConfigurationError as exc:
            ecomm_orders_created_total.labels(status="failed").inc()
            log.error("order_configuration_error", reason=exc.message)
            raise
        except SQLAlchemyError as exc:
            ecomm_orders_created_total.labels(status="failed").inc()
            log.error("order_persistence_error", error=str(exc))
            raise PersistenceError("Failed to create order") from exc
        finally:
            ecomm_order_creation_duration_seconds.observe(time.perf_counter() - started)

        ecomm_orders_created_total.labels(status="success").inc()
        log.info("order_created", order_id=order.id, user_id=order.user_id)

        if data.skip_email:
            log.info("order_notification_skipped")
        else:
            self.notifier.schedule(OrderNotification.from_order(order, data))
        return order

    async def _persist(self, db: AsyncSession, data: OrderCreate, customer_email: str, order_number: str) -> Order:
        pending = await OrderRepository.get_status_by_name(db, PENDING_STATUS)
        if pending is None:
            raise ConfigurationError(f"Order status '{PENDING_STATUS}' is not configured")

        user_id = data.user_id
        shipping_address_id = data.shipping_address_id
        if user_id is None:
            resolution = await self.guest_resolver.resolve(
                db,
                email=customer_email,
                customer_name=data.customer_name,
                customer_phone=data.customer_phone,
                shipping_method=data.shipping_method,
                address=data.address,
                shipping_address_id=shipping_address_id,
            )
            user_id = resolution.user_id
            shipping_address_id = resolution.shipping_address_id

        now = datetime.now(timezone.utc)
        order = Order(
            order_number=order_number,
            user_id=user_id,
            status_id=pending.id,
            subtotal=data.subtotal if data.subtotal is not None else data.total_amount,
            tax_amount=data.tax_amount,
            shipping_amount=data.shipping_amount,
            discount_amount=data.discount_amount,
            total_amount=data.total_amount,
            shipping_address_id=shipping_address_id,
            billing_address_id=data.billing_address_id,
            notes=data.notes or None,
            customer_email=customer_email,
            customer_phone=data.customer_phone or None,
            customer_name=data.customer_name or None,
            payment_method=data.payment_method or None,
            shipping_method=data.shipping_method or None,
            created_at=now,
            updated_at=now,
        )
        await OrderRepository.add_order(db, order)
        await OrderRepository.add_history(
            db,
            OrderStatusHistory(order_id=order.id, status_id=pending.id, notes="Order created", created_at=now),
        )

        for item in data.items or []:
            await self._add_product_item(db, order.id, item)
        for item in data.service_items or []:
            await self._add_service_item(db, order.id, item)
        return order

    @staticmethod
    async def _add_product_item(db: AsyncSession, order_id: int, item: OrderItemIn) -> OrderItem:
        product = await CatalogRepository.get_product(db, item.product_id)
        if product is None:
            raise NotFoundError(f"Product not found: {item.product_id}")

        unit_price = product.price
        sku = product.sku
        if item.variant_id is not None:
            variant = await CatalogRepository.get_variant(db, product.id, item.variant_id)
            if variant is None:
                raise NotFoundError(f"Product variant not found: {item.variant_id}")
            if variant.price is not None:
                unit_price = variant.price
            sku = variant.sku or sku

        return await OrderRepository.add_item(
            db,
            OrderItem(
                order_id=order_id,
                product_id=product.id,
                product_variant_id=item.variant_id,
                product_name=product.name,
                product_sku=sku,
                quantity=item.quantity,
                unit_price=unit_price,
                total_price=unit_price * item.quantity,
            ),
        )

    @staticmethod
    async def _add_service_item(db: AsyncSession, order_id: int, item: ServiceItemIn) -> OrderServiceItem:
        service = await CatalogRepository.get_service(db, item.service_id)
        if service is None:
            raise NotFoundError(f"Service not found: {item.service_id}")
        if item.schedule_id is not None:
            schedule = await CatalogRepository.get_schedule(db, service.id, item.schedule_id)
            if schedule is None:
                raise NotFoundError(f"Service schedule not found: {item.schedule_id}")

        return await OrderRepository.add_service_item(
            db,
            OrderServiceItem(
                order_id=order_id,
                service_id=service.id,
                service_schedule_id=item.schedule_id,
                service_name=service.name,
                quantity=item.quantity,
                unit_price=service.price,
                total_price=service.price * item.quantity,
            ),
        )
