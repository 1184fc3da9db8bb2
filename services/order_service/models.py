from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shared.config.database import Base
from services.catalog_service import models as catalog_models  # noqa: F401 (line item FKs)
from services.user_service.models import User  # noqa: F401 (target of Order.user)


class OrderStatus(Base):
    __tablename__ = "order_statuses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)  # pending, confirmed, ..., cancelled
    description = Column(String(255), nullable=True)
    color = Column(String(20), nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status_id = Column(Integer, ForeignKey("order_statuses.id"), nullable=False)

    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_amount = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)

    shipping_address_id = Column(Integer, ForeignKey("user_addresses.id"), nullable=True)
    billing_address_id = Column(Integer, ForeignKey("user_addresses.id"), nullable=True)
    notes = Column(Text, nullable=True)

    # Contact details are copied at checkout so the order survives profile edits
    customer_email = Column(String(255), nullable=False, index=True)
    customer_phone = Column(String(30), nullable=True)
    customer_name = Column(String(200), nullable=True)

    payment_method = Column(String(100), nullable=True)
    shipping_method = Column(String(100), nullable=True)
    tracking_id = Column(String(100), nullable=True)
    carrier_company = Column(String(100), nullable=True)
    tracking_url = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    status = relationship("OrderStatus", lazy="joined")
    user = relationship("User", lazy="joined")
    items = relationship("OrderItem", back_populates="order", lazy="selectin", order_by="OrderItem.id")
    service_items = relationship(
        "OrderServiceItem", back_populates="order", lazy="selectin", order_by="OrderServiceItem.id"
    )
    history = relationship(
        "OrderStatusHistory", back_populates="order", lazy="selectin", order_by="OrderStatusHistory.id"
    )

    @property
    def status_name(self):
        return self.status.name if self.status else None

    @property
    def status_color(self):
        return self.status.color if self.status else None

    @property
    def first_name(self):
        return self.user.first_name if self.user else None

    @property
    def last_name(self):
        return self.user.last_name if self.user else None

    @property
    def phone(self):
        return self.user.phone if self.user else None


class OrderItem(Base):
    """Snapshot of a product at order time; independent of later catalog edits."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    product_variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)
    product_name = Column(String(255), nullable=False)
    product_sku = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)  # unit_price * quantity

    order = relationship("Order", back_populates="items")


class OrderServiceItem(Base):
    __tablename__ = "order_service_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    service_schedule_id = Column(Integer, ForeignKey("service_schedules.id"), nullable=True)
    service_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="service_items")


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    status_id = Column(Integer, ForeignKey("order_statuses.id"), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="history")
