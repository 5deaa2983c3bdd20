"""
Email body rendering.

``render`` is a pure function: the same template id and data always give the
same HTML. Every value taken from ``data`` is escaped before interpolation.
"""
from html import escape
from typing import Any, Callable, Dict, Iterable, Optional


class TemplateError(Exception):
    """No template is registered under the requested id."""


def _text(data: Dict[str, Any], key: str, fallback: str = "") -> str:
    value = data.get(key)
    if value is None:
        return escape(fallback)
    return escape(str(value))


def _price(cents: Any) -> str:
    try:
        return f"${int(cents) / 100:.2f}"
    except (TypeError, ValueError):
        return "$0.00"


def _list_items(items: Optional[Iterable[Any]], label_key: str = "name") -> str:
    rows = []
    for item in items or []:
        if isinstance(item, dict):
            rows.append(f"<li>{escape(str(item.get(label_key, '')))}</li>")
        else:
            rows.append(f"<li>{escape(str(item))}</li>")
    return f"<ul>{''.join(rows)}</ul>" if rows else ""


def base_template(body: str, footer: str = "") -> str:
    return (
        "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif; color: #1f2937;\">"
        f"<div style=\"max-width: 600px; margin: 0 auto; padding: 24px;\">{body}</div>"
        f"<div style=\"max-width: 600px; margin: 0 auto; padding: 0 24px; font-size: 12px; color: #6b7280;\">{footer}</div>"
        "</body></html>"
    )


def marketing_footer(data: Dict[str, Any]) -> str:
    links = []
    if data.get("preferences_url"):
        links.append(f"<a href=\"{_text(data, 'preferences_url')}\">Manage preferences</a>")
    if data.get("unsubscribe_url"):
        links.append(f"<a href=\"{_text(data, 'unsubscribe_url')}\">Unsubscribe</a>")
    return " | ".join(links)


# ============================================================
# TEMPLATES
# ============================================================

def newsletter_template(data: Dict[str, Any]) -> str:
    articles = _list_items(data.get("featured_articles"), label_key="title")
    body = (
        f"<h1>Hi {_text(data, 'customer_name', 'there')},</h1>"
        "<p>Here is what is new this month.</p>"
        f"{articles}"
    )
    return base_template(body, marketing_footer(data))


def sales_template(data: Dict[str, Any]) -> str:
    body = (
        f"<h1>{_text(data, 'discount_amount', 'Special')} off, just for you</h1>"
        f"<p>Hi {_text(data, 'customer_name', 'there')}, use code "
        f"<strong>{_text(data, 'discount_code')}</strong> before {_text(data, 'valid_until', 'the sale ends')}.</p>"
        f"{_list_items(data.get('sale_items'))}"
    )
    return base_template(body, marketing_footer(data))


def personalized_template(data: Dict[str, Any]) -> str:
    body = (
        f"<h1>Picked for you, {_text(data, 'customer_name', 'there')}</h1>"
        f"<p>{_text(data, 'reason_text', 'Based on your recent activity')}</p>"
        f"{_list_items(data.get('recommendations'))}"
    )
    return base_template(body, marketing_footer(data))


def order_confirmation_template(data: Dict[str, Any]) -> str:
    items = data.get("order_items") or []
    rows = "".join(
        f"<tr><td>{escape(str(item.get('name', '')))}</td>"
        f"<td>{escape(str(item.get('quantity', 1)))}</td>"
        f"<td>{_price(item.get('price'))}</td></tr>"
        for item in items
        if isinstance(item, dict)
    )
    body = (
        f"<h1>Thank you for your order, {_text(data, 'customer_name', 'there')}!</h1>"
        f"<p>Order <strong>{_text(data, 'order_number')}</strong></p>"
        f"<table>{rows}</table>"
        f"<p>Total: <strong>{_price(data.get('total'))}</strong></p>"
    )
    return base_template(body)


def shipment_template(data: Dict[str, Any]) -> str:
    body = (
        f"<h1>Your order {_text(data, 'order_number')} is on its way</h1>"
        f"<p>Carrier: {_text(data, 'carrier')} &middot; Tracking: {_text(data, 'tracking_number')}</p>"
        f"<p>Estimated delivery: {_text(data, 'estimated_delivery', 'soon')}</p>"
    )
    if data.get("tracking_url"):
        body += f"<p><a href=\"{_text(data, 'tracking_url')}\">Track your package</a></p>"
    return base_template(body)


def delivery_template(data: Dict[str, Any]) -> str:
    body = (
        f"<h1>Order {_text(data, 'order_number')} was delivered</h1>"
        f"<p>Hi {_text(data, 'customer_name', 'there')}, we hope you love it.</p>"
    )
    if data.get("review_url"):
        body += f"<p><a href=\"{_text(data, 'review_url')}\">Leave a review</a></p>"
    return base_template(body)


TEMPLATES: Dict[str, Callable[[Dict[str, Any]], str]] = {
    "newsletter": newsletter_template,
    "sales": sales_template,
    "personalized": personalized_template,
    "order_confirmation": order_confirmation_template,
    "shipment": shipment_template,
    "delivery": delivery_template,
}

MARKETING_TYPES = ("newsletter", "sales", "personalized")


def render(template_id: str, data: Optional[Dict[str, Any]] = None) -> str:
    """Render the registered template ``template_id`` with ``data``."""
    template = TEMPLATES.get(template_id)
    if template is None:
        raise TemplateError(f"Unknown email template: {template_id}")
    return template(data or {})
