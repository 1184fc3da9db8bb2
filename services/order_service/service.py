import math
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.exceptions import ConfigurationError, NotFoundError

from .models import Order, OrderStatus, OrderStatusHistory
from .repository import OrderRepository
from .schemas import OrderStats, OrderStatusOut, OrderStatusUpdate, Pagination

logger = structlog.get_logger(__name__)

PENDING_STATUS = "pending"
DELIVERED_STATUS = "delivered"
CANCELLED_STATUS = "cancelled"
RECENT_ORDER_DAYS = 30

DEFAULT_STATUSES = [
    {"name": "pending", "description": "Pending", "color": "#f59e0b", "sort_order": 0},
    {"name": "confirmed", "description": "Confirmed", "color": "#3b82f6", "sort_order": 1},
    {"name": "processing", "description": "Processing", "color": "#8b5cf6", "sort_order": 2},
    {"name": "shipped", "description": "Shipped", "color": "#06b6d4", "sort_order": 3},
    {"name": "delivered", "description": "Delivered", "color": "#22c55e", "sort_order": 4},
    {"name": "cancelled", "description": "Cancelled", "color": "#ef4444", "sort_order": 5},
]


def build_pagination(total: int, page: int, limit: int) -> Pagination:
    total_pages = math.ceil(total / limit) if limit else 0
    return Pagination(
        total=total,
        total_pages=total_pages,
        current_page=page,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


def _start_of(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class OrderService:

    @staticmethod
    async def seed_statuses(db: AsyncSession) -> int:
        """Insert the default lifecycle statuses into an empty table."""
        if await OrderRepository.list_statuses(db):
            return 0
        for values in DEFAULT_STATUSES:
            await OrderRepository.add_status(db, OrderStatus(**values))
        await db.commit()
        logger.info("order_statuses_seeded", count=len(DEFAULT_STATUSES))
        return len(DEFAULT_STATUSES)

    @staticmethod
    async def list_statuses(db: AsyncSession) -> List[OrderStatusOut]:
        statuses = await OrderRepository.list_statuses(db)
        if not statuses:
            return [OrderStatusOut(id=s["name"], **s) for s in DEFAULT_STATUSES]
        return [OrderStatusOut.model_validate(s) for s in statuses]

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int) -> Optional[Order]:
        return await OrderRepository.get_order(db, order_id)

    @staticmethod
    async def _status_id_filter(db: AsyncSession, status_name: Optional[str]) -> Optional[int]:
        # Unknown status names mean "no filter"
        if not status_name:
            return None
        status = await OrderRepository.get_status_by_name(db, status_name)
        return status.id if status else None

    @staticmethod
    async def list_user_orders(
        db: AsyncSession, user_id: int, status_name: Optional[str], page: int, limit: int
    ):
        status_id = await OrderService._status_id_filter(db, status_name)
        orders, total = await OrderRepository.list_orders(
            db,
            user_id=user_id,
            status_id=status_id,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return orders, build_pagination(total, page, limit)

    @staticmethod
    async def list_orders_admin(
        db: AsyncSession,
        *,
        search: Optional[str] = None,
        status_name: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        limit: int = 20,
    ):
        filters = dict(
            status_id=await OrderService._status_id_filter(db, status_name),
            search=(search or "").strip() or None,
            created_from=_start_of(date_from) if date_from else None,
            # date_to is inclusive: everything before the next midnight
            created_before=_start_of(date_to + timedelta(days=1)) if date_to else None,
        )
        orders, total = await OrderRepository.list_orders(
            db, offset=(page - 1) * limit, limit=limit, **filters
        )

        pending = await OrderRepository.get_status_by_name(db, PENDING_STATUS)
        delivered = await OrderRepository.get_status_by_name(db, DELIVERED_STATUS)
        stats = await OrderRepository.order_stats(
            db,
            pending_status_id=pending.id if pending else None,
            delivered_status_id=delivered.id if delivered else None,
            recent_since=datetime.now(timezone.utc) - timedelta(days=RECENT_ORDER_DAYS),
            **filters,
        )
        return orders, build_pagination(total, page, limit), OrderStats(**stats)

    @staticmethod
    async def update_status(db: AsyncSession, order_id: int, data: OrderStatusUpdate) -> Order:
        order = await OrderRepository.get_order(db, order_id)
        if not order:
            raise NotFoundError("Order not found")

        status_id = order.status_id
        if data.status_id is not None:
            status = await OrderRepository.get_status_by_id(db, data.status_id)
            if not status:
                raise NotFoundError("Status not found")
            status_id = status.id

        return await OrderService._transition(
            db,
            order,
            status_id,
            notes=data.notes,
            history_note=data.notes or "Status updated",
            tracking=data.model_dump(include={"tracking_id", "carrier_company", "tracking_url"}, exclude_unset=True),
        )

    @staticmethod
    async def cancel_order(db: AsyncSession, order_id: int) -> Order:
        order = await OrderRepository.get_order(db, order_id)
        if not order:
            raise NotFoundError("Order not found")

        cancelled = await OrderRepository.get_status_by_name(db, CANCELLED_STATUS)
        if not cancelled:
            raise ConfigurationError("Cancelled status not found")

        return await OrderService._transition(
            db, order, cancelled.id, notes="Order cancelled", history_note="Order cancelled"
        )

    @staticmethod
    async def _transition(
        db: AsyncSession,
        order: Order,
        status_id: int,
        *,
        notes: Optional[str],
        history_note: str,
        tracking: Optional[dict] = None,
    ) -> Order:
        now = datetime.now(timezone.utc)
        order.status_id = status_id
        if notes is not None:
            order.notes = notes
        for field_name, value in (tracking or {}).items():
            setattr(order, field_name, value or None)
        order.updated_at = now

        await OrderRepository.add_history(
            db, OrderStatusHistory(order_id=order.id, status_id=status_id, notes=history_note, created_at=now)
        )
        await db.commit()
        logger.info("order_status_changed", order_id=order.id, status_id=status_id)
        return await OrderRepository.get_order(db, order.id)
