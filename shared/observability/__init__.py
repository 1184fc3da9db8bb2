from .setup import setup_observability, configure_logging
from .metrics import (
    ecomm_orders_created_total,
    ecomm_order_creation_duration_seconds,
    ecomm_guest_users_created_total,
    ecomm_order_emails_total,
)
