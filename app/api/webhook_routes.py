"""
Webhook Routes - Stripe event delivery endpoint.

Stripe signs the raw body, so it is read before any parsing. Any failure
answers 400 with a plain-text reason, which makes Stripe redeliver.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from structlog import get_logger

from app.api.dependencies import get_webhook_handler
from app.exceptions import InvalidSignatureError
from app.models.api import WebhookAck
from app.observability.metrics import metrics
from app.services.webhooks import StripeWebhookHandler, WebhookOutcome

logger = get_logger(__name__)
router = APIRouter(tags=["webhooks"])


@router.post("/api/webhook")
async def stripe_webhook(
    request: Request,
    handler: StripeWebhookHandler = Depends(get_webhook_handler),
) -> Response:
    """
    Receive a Stripe webhook event.

    Returns 200 {"received": true} once the event is handled, ignored or
    recognised as a duplicate. A delivery of an event that is still being
    processed answers 409 so Stripe retries it later.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")

    try:
        result = await handler.handle(payload, signature)
    except InvalidSignatureError as exc:
        return PlainTextResponse(f"Webhook Error: {exc.message}", status_code=400)
    except Exception as exc:
        logger.error(
            "stripe_webhook_failed",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        metrics.record_error(type(exc).__name__, "stripe_webhook")
        return PlainTextResponse(f"Webhook Error: {exc}", status_code=400)

    if result.outcome is WebhookOutcome.IN_PROGRESS:
        return PlainTextResponse(
            "Webhook Error: Event is already being processed", status_code=409
        )

    logger.info(
        "stripe_webhook_processed",
        event_id=result.event_id,
        event_type=result.event_type,
        outcome=result.outcome.value,
    )
    return JSONResponse(content=WebhookAck().model_dump())
