"""
Shopify billing webhooks
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
import json
import logging

from estate_kit.api.deps import get_subscription_service
from estate_kit.core.config import settings
from estate_kit.services.subscription_service import SubscriptionService, parse_webhook, verify_webhook

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/shopify")
async def handle_shopify_webhook(
    request: Request,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Handle Shopify order webhooks that drive subscription billing state
    """
    body = await request.body()
    hmac_header = request.headers.get("X-Shopify-Hmac-Sha256", "")

    if not verify_webhook(settings.SHOPIFY_API_SECRET, body, hmac_header):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Webhook body is not valid JSON")

    webhook_topic = request.headers.get("X-Shopify-Topic", "")
    event = parse_webhook(webhook_topic, payload)
    subscription = service.handle_webhook(event)

    return {"status": "webhook processed", "topic": webhook_topic, "subscription_status": subscription["status"]}

