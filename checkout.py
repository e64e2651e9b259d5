"""
WhatsApp checkout handoff.

The store takes no payments: the cart is turned into a plain-text order
summary and opened as a prefilled wa.me chat with the shop.
"""
from typing import Iterable, Optional
from urllib.parse import quote

from schemas import CartLine, OrderLine

WHATSAPP_BASE_URL = "https://wa.me"


def format_rupees(amount: float) -> str:
    amount = round(float(amount), 2)
    if amount == int(amount):
        return str(int(amount))
    return f"{amount:.2f}"


def whatsapp_link(number: str, text: str) -> str:
    digits = "".join(ch for ch in number if ch.isdigit())
    return f"{WHATSAPP_BASE_URL}/{digits}?text={quote(text, safe='')}"


def cart_summary(lines: Iterable[CartLine], total: float) -> str:
    message = "Hi! I would like to order the following items:\n\n"
    for index, line in enumerate(lines, start=1):
        message += f"{index}. {line.product.name}"
        if line.selected_size:
            message += f" ({line.selected_size.name})"
        message += (
            f"\n   Qty: {line.quantity} × ₹{format_rupees(line.unit_price)}"
            f" = ₹{format_rupees(line.line_total)}\n\n"
        )
    message += f"Total Amount: ₹{format_rupees(total)}\n\n"
    message += "Please confirm my order. Thank you!"
    return message


def order_summary(lines: Iterable[OrderLine], total: float, order_id: Optional[str] = None) -> str:
    message = "Hi! I would like to order the following items:\n\n"
    for index, line in enumerate(lines, start=1):
        message += f"{index}. {line.product_name}"
        if line.selected_size_name:
            message += f" ({line.selected_size_name})"
        message += (
            f"\n   Qty: {line.quantity} × ₹{format_rupees(line.price)}"
            f" = ₹{format_rupees(line.line_total)}\n\n"
        )
    message += f"Total Amount: ₹{format_rupees(total)}\n\n"
    if order_id:
        message += f"Order reference: {order_id}\n\n"
    message += "Please confirm my order. Thank you!"
    return message
