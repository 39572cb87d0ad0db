"""Shopify webhook receiver."""

import orjson
import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request
from pydantic import BaseModel

from restock_service.api.deps import get_restock_handler
from restock_service.api.security import verify_webhook_hmac
from restock_service.config import get_settings
from restock_service.services.restock import RestockEventHandler
from shared.constants import TOPIC_APP_UNINSTALLED, TOPIC_INVENTORY_UPDATE

logger = structlog.get_logger()

router = APIRouter()


class WebhookAck(BaseModel):
    received: bool
    queued: bool


def _enqueue(topic: str, shop_domain: str, payload: dict) -> bool:
    """Hand the webhook to Celery. Returns False for topics with no task."""
    # Importing the app makes it current, so shared tasks publish to its broker
    import restock_worker.main  # noqa: F401
    from restock_worker.tasks.restock import handle_app_uninstalled, handle_inventory_update

    if topic == TOPIC_INVENTORY_UPDATE:
        handle_inventory_update.delay(shop_domain, payload)
        return True
    if topic == TOPIC_APP_UNINSTALLED:
        handle_app_uninstalled.delay(shop_domain)
        return True
    return False


@router.post("", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_shopify_topic: str = Header(..., alias="X-Shopify-Topic"),
    x_shopify_shop_domain: str = Header(..., alias="X-Shopify-Shop-Domain"),
    x_shopify_hmac_sha256: str | None = Header(None, alias="X-Shopify-Hmac-Sha256"),
    handler: RestockEventHandler = Depends(get_restock_handler),
) -> WebhookAck:
    """
    Acknowledge a webhook and process it after the response.

    The body is verified against ``X-Shopify-Hmac-Sha256`` when an API secret
    is configured. Work goes to the Celery worker when jobs are enabled and
    otherwise runs in-process as a background task.
    """
    settings = get_settings()
    body = await request.body()
    if settings.shopify_api_secret and not verify_webhook_hmac(
        settings.shopify_api_secret, body, x_shopify_hmac_sha256
    ):
        logger.warning("Webhook signature rejected", topic=x_shopify_topic, shop_domain=x_shopify_shop_domain)
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        payload = orjson.loads(body) if body else {}
    except orjson.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON") from None

    if settings.jobs_enabled:
        queued = _enqueue(x_shopify_topic, x_shopify_shop_domain, payload)
        if not queued:
            logger.debug("Ignoring webhook topic", topic=x_shopify_topic)
        return WebhookAck(received=True, queued=queued)

    background_tasks.add_task(handler.handle_webhook, x_shopify_topic, x_shopify_shop_domain, payload)
    return WebhookAck(received=True, queued=False)
