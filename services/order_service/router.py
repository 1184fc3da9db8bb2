from datetime import date
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.exceptions import NotFoundError, ValidationError
from shared.security import ORDER_RATE_LIMIT, get_current_user, limiter, verify_internal_api_key

from .checkout import CheckoutService
from .schemas import (
    AdminOrderListResponse,
    OrderCreate,
    OrderCreated,
    OrderDetailResponse,
    OrderListResponse,
    OrderOut,
    OrderStatusListResponse,
    OrderStatusUpdate,
)
from .service import OrderService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Orders"])
# Back-office endpoints require X-Internal-API-Key
admin_router = APIRouter(prefix="/api", tags=["Orders (admin)"], dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()


def get_checkout_service(request: Request) -> CheckoutService:
    return request.app.state.checkout_service


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "orders", "status": "running"}


@router.post("/orders", response_model=OrderCreated, status_code=status.HTTP_201_CREATED)
@limiter.limit(ORDER_RATE_LIMIT)
async def create_order(
    request: Request,  # required by slowapi
    payload: OrderCreate,
    checkout: CheckoutService = Depends(get_checkout_service),
):
    try:
        return await checkout.create_order(payload)
    except (ValidationError, NotFoundError):
        raise
    except Exception:
        logger.exception("order_create_failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to create order"},
        )


@router.get("/orders", response_model=OrderListResponse)
async def list_my_orders(
    status_name: Optional[str] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user_id: int = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    orders, pagination = await OrderService.list_user_orders(db, user_id, status_name, page, limit)
    return {"orders": orders, "pagination": pagination}


@router.get("/orders/{order_id}", response_model=OrderDetailResponse)
async def get_order(order_id: int, db: AsyncSession = Depends(get_db)):
    order = await OrderService.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return {
        "order": order,
        "items": order.items,
        "service_items": order.service_items,
        "history": order.history,
    }


@router.get("/order-statuses", response_model=OrderStatusListResponse)
async def list_order_statuses(db: AsyncSession = Depends(get_db)):
    return {"statuses": await OrderService.list_statuses(db)}


@admin_router.put("/orders/{order_id}", response_model=OrderOut)
async def update_order_status(order_id: int, payload: OrderStatusUpdate, db: AsyncSession = Depends(get_db)):
    return await OrderService.update_status(db, order_id, payload)


@admin_router.delete("/orders/{order_id}")
async def cancel_order(order_id: int, db: AsyncSession = Depends(get_db)):
    order = await OrderService.cancel_order(db, order_id)
    return {
        "message": "Order cancelled successfully",
        "order": OrderOut.model_validate(order),
    }


@admin_router.get("/admin/orders", response_model=AdminOrderListResponse)
async def list_orders_admin(
    search: Optional[str] = None,
    status_name: Optional[str] = Query(default=None, alias="status"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    # Storefront admin page sends camelCase
    date_from_camel: Optional[date] = Query(default=None, alias="dateFrom", include_in_schema=False),
    date_to_camel: Optional[date] = Query(default=None, alias="dateTo", include_in_schema=False),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    orders, pagination, stats = await OrderService.list_orders_admin(
        db,
        search=search,
        status_name=status_name,
        date_from=date_from or date_from_camel,
        date_to=date_to or date_to_camel,
        page=page,
        limit=limit,
    )
    return {"orders": orders, "pagination": pagination, "stats": stats}
