from prometheus_client import Counter, Histogram

# Business Metrics
ecomm_orders_created_total = Counter(
    "ecomm_orders_created_total",
    "Order creation attempts",
    ["status"]  # Labels: 'success', 'invalid', 'not_found', 'failed'
)

ecomm_order_creation_duration_seconds = Histogram(
    "ecomm_order_creation_duration_seconds",
    "Time spent in the order creation transaction"
)

ecomm_guest_users_created_total = Counter(
    "ecomm_guest_users_created_total",
    "Guest accounts created during checkout"
)

ecomm_order_emails_total = Counter(
    "ecomm_order_emails_total",
    "Order notification emails dispatched",
    ["recipient", "status"]  # recipient: 'admin' | 'customer', status: 'sent' | 'failed'
)
