"""HTML bodies for the admin and customer order e-mails."""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from html import escape
from typing import List, Optional

CURRENCY = "MXN"

_CELL = "padding: 12px; border-bottom: 1px solid #e2e8f0;"
_HEAD = "padding: 12px; border-bottom: 1px solid #e2e8f0; background-color: #f7fafc;"


@dataclass
class EmailLine:
    name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    slug: str = ""
    image_url: str = ""


@dataclass
class OrderEmail:
    order_number: str
    created_at: datetime
    total_amount: Decimal
    customer_name: Optional[str]
    customer_email: Optional[str]
    customer_phone: Optional[str]
    payment_method: Optional[str]
    shipping_method: Optional[str]
    address: Optional[str]
    notes: Optional[str]
    products: List[EmailLine]
    services: List[EmailLine]


def format_currency(amount) -> str:
    return f"${Decimal(amount or 0):,.2f} {CURRENCY}"


def format_date(value: datetime) -> str:
    return value.strftime("%B %d, %Y %H:%M")


def _text(value: Optional[str], default: str = "Not specified") -> str:
    return escape(value) if value else default


def _product_cell(line: EmailLine, base_url: str, with_links: bool) -> str:
    name = escape(line.name)
    if not with_links:
        return name
    image = ""
    if line.image_url:
        image = (
            f'<img src="{escape(line.image_url, quote=True)}" alt="{name}" '
            'style="width: 60px; height: 60px; object-fit: cover; border-radius: 8px;"> '
        )
    if line.slug:
        url = f"{base_url}/catalog/{escape(line.slug, quote=True)}"
        return f'{image}<a href="{url}" style="color: #3182ce; font-weight: 600;">{name}</a>'
    return f'{image}<span style="font-weight: 600;">{name}</span>'


def _lines_table(title: str, label: str, lines: List[EmailLine], base_url: str, detailed: bool) -> str:
    if not lines:
        return ""
    head = f'<th style="{_HEAD} text-align: left;">{label}</th><th style="{_HEAD}">Qty</th>'
    if detailed:
        head += f'<th style="{_HEAD} text-align: right;">Unit price</th>'
    head += f'<th style="{_HEAD} text-align: right;">Total</th>'

    rows = []
    for line in lines:
        row = f'<td style="{_CELL}">{_product_cell(line, base_url, detailed)}</td>'
        row += f'<td style="{_CELL} text-align: center;">{line.quantity}</td>'
        if detailed:
            row += f'<td style="{_CELL} text-align: right;">{format_currency(line.unit_price)}</td>'
        row += f'<td style="{_CELL} text-align: right;">{format_currency(line.total_price)}</td>'
        rows.append(f"<tr>{row}</tr>")

    return (
        f'<h3 style="color: #2d3748;">{title}</h3>'
        '<table style="width: 100%; border-collapse: collapse; margin-bottom: 24px;">'
        f"<thead><tr>{head}</tr></thead><tbody>{''.join(rows)}</tbody></table>"
    )


def _delivery_block(order: OrderEmail) -> str:
    parts = [
        f"<p><strong>Delivery method:</strong> {_text(order.shipping_method)}</p>",
        f"<p><strong>Payment method:</strong> {_text(order.payment_method)}</p>",
    ]
    if order.address:
        parts.append(f"<p><strong>Delivery address:</strong> {escape(order.address)}</p>")
    if order.notes:
        parts.append(f"<p><strong>Notes:</strong> {escape(order.notes)}</p>")
    return "".join(parts)


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{escape(title)}</title></head>"
        '<body style="font-family: Arial, sans-serif; color: #333; background-color: #f4f4f4;">'
        '<div style="max-width: 600px; margin: 0 auto; background-color: #ffffff; padding: 32px;">'
        f"{body}</div></body></html>"
    )


def render_admin_email(order: OrderEmail, base_url: str) -> str:
    body = (
        '<h1 style="color: #2d3748;">New order received</h1>'
        f"<p><strong>Order number:</strong> {escape(order.order_number)}</p>"
        f"<p><strong>Date:</strong> {format_date(order.created_at)}</p>"
        f"<p><strong>Total:</strong> {format_currency(order.total_amount)}</p>"
        "<h2>Customer</h2>"
        f"<p><strong>Name:</strong> {_text(order.customer_name)}</p>"
        f"<p><strong>Email:</strong> {_text(order.customer_email)}</p>"
        f"<p><strong>Phone:</strong> {_text(order.customer_phone, 'Not provided')}</p>"
        "<h2>Order details</h2>"
        + _lines_table("Products", "Product", order.products, base_url, detailed=True)
        + _lines_table("Services", "Service", order.services, base_url, detailed=True)
        + "<h2>Delivery</h2>"
        + _delivery_block(order)
        + '<p style="color: #718096; font-size: 14px;">Automatic notification. Please process this order as soon as possible.</p>'
    )
    return _page(f"New order - {order.order_number}", body)


def render_customer_email(order: OrderEmail, base_url: str) -> str:
    greeting = f"Hi {escape(order.customer_name)}!" if order.customer_name else "Hi!"
    body = (
        '<h1 style="color: #2d3748;">Order confirmed</h1>'
        f"<h2>{greeting}</h2>"
        "<p>We have received your order and it is being processed. "
        "We will contact you soon to arrange delivery.</p>"
        f"<p><strong>Order number:</strong> {escape(order.order_number)}</p>"
        f"<p><strong>Date:</strong> {format_date(order.created_at)}</p>"
        f"<p><strong>Total:</strong> {format_currency(order.total_amount)}</p>"
        + _lines_table("Products", "Product", order.products, base_url, detailed=False)
        + _lines_table("Services", "Service", order.services, base_url, detailed=False)
        + "<h3>Delivery</h3>"
        + _delivery_block(order)
        + '<p style="color: #718096; font-weight: bold;">Thank you for your order!</p>'
    )
    return _page(f"Order confirmation - {order.order_number}", body)
