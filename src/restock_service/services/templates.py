"""Notification templates.

Rendering is a pure function of template id and data. Plain text only.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable


class NotificationTemplate(str, Enum):
    RESTOCK_AVAILABLE = "RESTOCK_AVAILABLE"


@dataclass(frozen=True)
class RenderedNotification:
    body: str
    subject: str | None = None


def _render_restock_available(data: dict[str, Any]) -> RenderedNotification:
    product_name = data.get("product_name") or "Your product"
    recovery_url = data.get("recovery_url") or "#"
    customer_name = data.get("customer_name") or ""

    greeting = f"Hi {customer_name}," if customer_name else "Hi,"
    body = (
        f"{greeting}\n\n"
        f"Good news! {product_name} is back in stock.\n\n"
        f"Buy now: {recovery_url}\n\n"
        "Thank you for your patience!"
    )
    return RenderedNotification(
        subject=f"Good news! {product_name} is back in stock",
        body=body,
    )


_RENDERERS: dict[NotificationTemplate, Callable[[dict[str, Any]], RenderedNotification]] = {
    NotificationTemplate.RESTOCK_AVAILABLE: _render_restock_available,
}


def render(template: NotificationTemplate, data: dict[str, Any]) -> RenderedNotification:
    """Render ``template`` with ``data``. Raises ValueError for unknown templates."""
    try:
        renderer = _RENDERERS[NotificationTemplate(template)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown template: {template}") from None
    return renderer(data)
