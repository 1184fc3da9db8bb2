from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, EmailStr, Field, field_validator

from services.user_service.schemas import AddressIn


class OrderItemIn(BaseModel):
    product_id: int
    quantity: int = Field(default=1, gt=0)
    variant_id: Optional[int] = None
    # Display hints for the notification e-mail only; prices are always read from the catalog
    name: Optional[str] = None
    price: Optional[Decimal] = None


class ServiceItemIn(BaseModel):
    service_id: int
    schedule_id: Optional[int] = None
    quantity: int = Field(default=1, gt=0)
    name: Optional[str] = None
    price: Optional[Decimal] = None


class OrderCreate(BaseModel):
    user_id: Optional[int] = None
    items: Optional[List[OrderItemIn]] = None
    service_items: Optional[List[ServiceItemIn]] = None
    shipping_address_id: Optional[int] = None
    billing_address_id: Optional[int] = None
    notes: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    payment_method: Optional[str] = None
    shipping_method: Optional[str] = None
    subtotal: Optional[Decimal] = Field(default=None, ge=0)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_amount: Decimal = Field(default=Decimal("0"), ge=0)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    total_amount: Optional[Decimal] = Field(default=None, ge=0)
    # Structured address, or the legacy single free-text line
    address: Union[AddressIn, str, None] = None
    skip_email: bool = False

    @field_validator("customer_email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            return value or None
        return value

    @field_validator("address", mode="before")
    @classmethod
    def blank_address_is_none(cls, value):
        if isinstance(value, str):
            return value.strip() or None
        return value


class OrderCreated(BaseModel):
    id: int
    order_number: str

    class Config:
        from_attributes = True


class OrderItemOut(BaseModel):
    id: int
    product_id: Optional[int]
    product_variant_id: Optional[int]
    product_name: str
    product_sku: Optional[str]
    quantity: int
    unit_price: float
    total_price: float

    class Config:
        from_attributes = True


class OrderServiceItemOut(BaseModel):
    id: int
    service_id: Optional[int]
    service_schedule_id: Optional[int]
    service_name: str
    quantity: int
    unit_price: float
    total_price: float

    class Config:
        from_attributes = True


class OrderHistoryOut(BaseModel):
    id: int
    status_id: int
    notes: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    order_number: str
    user_id: Optional[int]
    status_id: int
    status_name: Optional[str] = None
    status_color: Optional[str] = None
    subtotal: float
    tax_amount: float
    shipping_amount: float
    discount_amount: float
    total_amount: float
    shipping_address_id: Optional[int]
    billing_address_id: Optional[int]
    notes: Optional[str]
    customer_email: str
    customer_phone: Optional[str]
    customer_name: Optional[str]
    payment_method: Optional[str]
    shipping_method: Optional[str]
    tracking_id: Optional[str] = None
    carrier_company: Optional[str] = None
    tracking_url: Optional[str] = None
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class AdminOrderOut(OrderOut):
    """Order plus the owning user's profile fields."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None


class OrderDetailResponse(BaseModel):
    order: AdminOrderOut
    items: List[OrderItemOut]
    service_items: List[OrderServiceItemOut]
    history: List[OrderHistoryOut]


class Pagination(BaseModel):
    total: int
    total_pages: int
    current_page: int
    has_next_page: bool
    has_prev_page: bool


class OrderListResponse(BaseModel):
    orders: List[OrderOut]
    pagination: Pagination


class OrderStats(BaseModel):
    total_orders: int
    pending_orders: int
    delivered_orders: int
    recent_orders: int  # created in the last 30 days
    total_revenue: float


class AdminOrderListResponse(BaseModel):
    orders: List[AdminOrderOut]
    pagination: Pagination
    stats: OrderStats


class OrderStatusUpdate(BaseModel):
    status_id: Optional[int] = None
    notes: Optional[str] = None
    tracking_id: Optional[str] = None
    carrier_company: Optional[str] = None
    tracking_url: Optional[str] = None


class OrderStatusOut(BaseModel):
    id: Union[int, str]
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    sort_order: int = 0

    class Config:
        from_attributes = True


class OrderStatusListResponse(BaseModel):
    statuses: List[OrderStatusOut]
