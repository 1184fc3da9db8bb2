from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Product, ProductVariant, Service, ServiceSchedule


class CatalogRepository:

    @staticmethod
    async def get_product(db: AsyncSession, product_id: int) -> Optional[Product]:
        result = await db.execute(select(Product).where(Product.id == product_id))
        return result.scalars().first()

    @staticmethod
    async def get_variant(db: AsyncSession, product_id: int, variant_id: int) -> Optional[ProductVariant]:
        result = await db.execute(
            select(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .where(ProductVariant.product_id == product_id)
        )
        return result.scalars().first()

    @staticmethod
    async def get_service(db: AsyncSession, service_id: int) -> Optional[Service]:
        result = await db.execute(select(Service).where(Service.id == service_id))
        return result.scalars().first()

    @staticmethod
    async def get_schedule(db: AsyncSession, service_id: int, schedule_id: int) -> Optional[ServiceSchedule]:
        result = await db.execute(
            select(ServiceSchedule)
            .where(ServiceSchedule.id == schedule_id)
            .where(ServiceSchedule.service_id == service_id)
        )
        return result.scalars().first()
