from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import case, func, literal, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Order, OrderItem, OrderServiceItem, OrderStatus, OrderStatusHistory


class OrderRepository:
    """Inserts only flush: the order transaction decides when to commit."""

    @staticmethod
    async def add_order(db: AsyncSession, order: Order) -> Order:
        db.add(order)
        await db.flush()  # assigns order.id
        return order

    @staticmethod
    async def add_item(db: AsyncSession, item: OrderItem) -> OrderItem:
        db.add(item)
        await db.flush()
        return item

    @staticmethod
    async def add_service_item(db: AsyncSession, item: OrderServiceItem) -> OrderServiceItem:
        db.add(item)
        await db.flush()
        return item

    @staticmethod
    async def add_history(db: AsyncSession, entry: OrderStatusHistory) -> OrderStatusHistory:
        db.add(entry)
        await db.flush()
        return entry

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int) -> Optional[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    def _filters(
        *,
        user_id: Optional[int] = None,
        status_id: Optional[int] = None,
        search: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
    ) -> list:
        conditions = []
        if user_id is not None:
            conditions.append(Order.user_id == user_id)
        if status_id is not None:
            conditions.append(Order.status_id == status_id)
        if search:
            # % and _ in the search text are literals
            term = search.lower()
            conditions.append(
                or_(
                    func.lower(Order.order_number).contains(term, autoescape=True),
                    func.lower(Order.customer_email).contains(term, autoescape=True),
                )
            )
        if created_from is not None:
            conditions.append(Order.created_at >= created_from)
        if created_before is not None:
            conditions.append(Order.created_at < created_before)
        return conditions

    @staticmethod
    async def list_orders(
        db: AsyncSession,
        *,
        offset: int = 0,
        limit: int = 10,
        **filters,
    ) -> Tuple[List[Order], int]:
        conditions = OrderRepository._filters(**filters)

        total = await db.scalar(select(func.count(Order.id)).where(*conditions))
        result = await db.execute(
            select(Order)
            .where(*conditions)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().unique().all()), total or 0

    @staticmethod
    async def order_stats(
        db: AsyncSession,
        *,
        pending_status_id: Optional[int],
        delivered_status_id: Optional[int],
        recent_since: datetime,
        **filters,
    ) -> dict:
        """Counts and revenue over every order matching the listing filters."""
        conditions = OrderRepository._filters(**filters)

        def count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        def count_status(status_id):
            # A status missing from the table matches no orders
            return count_where(Order.status_id == status_id) if status_id else literal(0)

        row = (
            await db.execute(
                select(
                    func.count(Order.id),
                    count_status(pending_status_id),
                    count_status(delivered_status_id),
                    count_where(Order.created_at >= recent_since),
                    func.coalesce(func.sum(Order.total_amount), 0),
                ).where(*conditions)
            )
        ).one()
        return {
            "total_orders": row[0] or 0,
            "pending_orders": row[1] or 0,
            "delivered_orders": row[2] or 0,
            "recent_orders": row[3] or 0,
            "total_revenue": row[4] or 0,
        }

    # --- statuses ---

    @staticmethod
    async def get_status_by_name(db: AsyncSession, name: str) -> Optional[OrderStatus]:
        result = await db.execute(
            select(OrderStatus).where(OrderStatus.name == name.strip().lower())
        )
        return result.scalars().first()

    @staticmethod
    async def get_status_by_id(db: AsyncSession, status_id: int) -> Optional[OrderStatus]:
        result = await db.execute(select(OrderStatus).where(OrderStatus.id == status_id))
        return result.scalars().first()

    @staticmethod
    async def list_statuses(db: AsyncSession) -> List[OrderStatus]:
        result = await db.execute(
            select(OrderStatus).order_by(OrderStatus.sort_order, OrderStatus.name)
        )
        return list(result.scalars().all())

    @staticmethod
    async def add_status(db: AsyncSession, status: OrderStatus) -> OrderStatus:
        db.add(status)
        await db.flush()
        return status
