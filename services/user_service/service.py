"""
Guest account resolution for checkout.

An order placed without an authenticated user id is anchored to a user row
looked up (or created) by e-mail. Everything here runs inside the order
transaction, so a later failure rolls the new user and address back too.
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Union

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.observability import ecomm_guest_users_created_total

from .models import User, UserAddress
from .repository import UserRepository
from .schemas import AddressIn

logger = structlog.get_logger(__name__)

# Legacy free-text addresses carry no structure; these fill the required columns
PLACEHOLDER_CITY = "Ciudad"
PLACEHOLDER_STATE = "Estado"
PLACEHOLDER_POSTAL_CODE = "00000"
DEFAULT_COUNTRY = "Mexico"


@dataclass
class GuestResolution:
    user_id: int
    shipping_address_id: Optional[int]
    created: bool


def split_name(full_name: Optional[str]) -> Tuple[str, str]:
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class GuestAccountResolver:

    def __init__(self, home_delivery_methods: Iterable[str]):
        self.home_delivery_methods = frozenset(home_delivery_methods)

    def is_home_delivery(self, shipping_method: Optional[str]) -> bool:
        return bool(shipping_method) and shipping_method in self.home_delivery_methods

    async def resolve(
        self,
        db: AsyncSession,
        *,
        email: str,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        shipping_method: Optional[str] = None,
        address: Union[AddressIn, str, None] = None,
        shipping_address_id: Optional[int] = None,
    ) -> GuestResolution:
        existing = await UserRepository.get_by_email(db, email)
        if existing:
            return GuestResolution(existing.id, shipping_address_id, created=False)

        first_name, last_name = split_name(customer_name)
        user = User(
            email=email,
            password_hash=None,
            first_name=first_name,
            last_name=last_name,
            phone=customer_phone or None,
            is_guest=True,
            is_verified=False,
        )
        try:
            async with db.begin_nested():
                await UserRepository.create(db, user)
        except IntegrityError:
            # Another checkout created this e-mail between our lookup and insert
            existing = await UserRepository.get_by_email(db, email)
            if existing is None:
                raise
            logger.info("guest_user_race_resolved", user_id=existing.id)
            return GuestResolution(existing.id, shipping_address_id, created=False)

        ecomm_guest_users_created_total.inc()
        logger.info("guest_user_created", user_id=user.id)

        if address and not shipping_address_id and self.is_home_delivery(shipping_method):
            created_address = await self._create_shipping_address(
                db, user, address, customer_phone
            )
            shipping_address_id = created_address.id

        return GuestResolution(user.id, shipping_address_id, created=True)

    @staticmethod
    async def _create_shipping_address(
        db: AsyncSession,
        user: User,
        address: Union[AddressIn, str],
        phone: Optional[str],
    ) -> UserAddress:
        if isinstance(address, AddressIn):
            fields = dict(
                address_line_1=address.address_line_1,
                address_line_2=address.address_line_2,
                city=address.city,
                state=address.state,
                postal_code=address.postal_code,
                country=address.country or DEFAULT_COUNTRY,
            )
        else:
            fields = dict(
                address_line_1=address,
                city=PLACEHOLDER_CITY,
                state=PLACEHOLDER_STATE,
                postal_code=PLACEHOLDER_POSTAL_CODE,
                country=DEFAULT_COUNTRY,
            )

        record = UserAddress(
            user_id=user.id,
            address_type="shipping",
            is_default=True,
            first_name=user.first_name,
            last_name=user.last_name,
            phone=phone or None,
            **fields,
        )
        await UserRepository.create_address(db, record)
        logger.info("guest_address_created", user_id=user.id, address_id=record.id)
        return record
