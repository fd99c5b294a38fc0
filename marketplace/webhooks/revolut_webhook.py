import json
import logging

from fastapi import APIRouter, Request

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/revolut/webhook",
    summary="Revolut webhook",
)
async def revolut_webhook(request: Request):
    """
    Revolut order/payment events. Received and logged only: the signature is
    not verified and order state is never changed from here. Payment
    confirmation goes through `PUT /api/orders`.
    """
    raw_body = await request.body()
    try:
        event = json.loads(raw_body or b"{}")
    except ValueError:
        logger.warning("Revolut webhook with non-JSON body (%s bytes)", len(raw_body))
        return {"received": True}

    if isinstance(event, dict):
        logger.info(
            "Revolut webhook received: event=%s order_id=%s",
            event.get("event"),
            event.get("order_id"),
        )
    else:
        logger.info("Revolut webhook received: %s", event)
    return {"received": True}
