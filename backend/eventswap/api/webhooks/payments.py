"""
Payment provider webhook endpoint
"""

import logging
from typing import Optional

import pydantic
from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.orm import Session

from eventswap.infrastructure.database import get_db
from eventswap.infrastructure.logging_config import trace_id_context
from eventswap.schemas.webhooks import PaymentWebhookPayload, PaymentWebhookResponse
from eventswap.services.exceptions import AuthenticationError, ValidationError
from eventswap.services.payments.webhooks import PaymentEvent, ingest_payment_event
from eventswap.utils.metrics import record_webhook_received, record_webhook_rejected
from eventswap.utils.security_logging import log_security_event
from eventswap.utils.webhook_security import SIGNATURE_HEADER, TIMESTAMP_HEADER, verify_payment_webhook_security

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/payments",
    response_model=PaymentWebhookResponse,
    status_code=status.HTTP_200_OK,
    summary="Payment provider webhook",
    description="Receive payment status events. PROVIDER ONLY endpoint. Requires HMAC signature verification.",
)
async def payment_webhook(
    request: Request,
    db: Session = Depends(get_db),
    x_payment_signature: Optional[str] = Header(None, alias=SIGNATURE_HEADER),
    x_payment_timestamp: Optional[str] = Header(None, alias=TIMESTAMP_HEADER),
) -> PaymentWebhookResponse:
    """
    Process a payment provider event.

    1. Verify HMAC signature over the raw body (401 on failure)
    2. Verify timestamp when provided (401 on skew)
    3. Validate payload (400)
    4. Apply idempotently by event id; replays return status "duplicate"

    A 409 means the transaction is not in a state that accepts the event;
    the event is not recorded and may be redelivered.
    """
    trace_id = trace_id_context.get() or "unknown"
    body_bytes = await request.body()

    is_valid, error_code, error_details = verify_payment_webhook_security(
        payload_body=body_bytes,
        signature_header=x_payment_signature,
        timestamp_header=x_payment_timestamp,
    )
    if not is_valid:
        record_webhook_rejected(reason=error_code)
        log_security_event(
            action="WEBHOOK_SIGNATURE_FAILED",
            details={
                "webhook_provider": "PAYMENT",
                "reason": error_code,
                "path": request.url.path,
            },
            trace_id=trace_id,
            db=db,
        )
        raise AuthenticationError(
            "Webhook signature verification failed",
            code=error_code,
            details=error_details,
        )

    try:
        payload = PaymentWebhookPayload.model_validate_json(body_bytes)
    except pydantic.ValidationError as e:
        record_webhook_rejected(reason="VALIDATION_ERROR")
        raise ValidationError(
            "Invalid payload format",
            details={"errors": [err["msg"] for err in e.errors()]},
        )

    record_webhook_received(event_type=payload.event.upper())
    logger.info(
        "Payment webhook received",
        extra={
            "trace_id": trace_id,
            "provider_event_id": payload.event_id,
            "event_type": payload.event,
            "provider_payment_id": payload.payment_id,
        },
    )

    outcome = ingest_payment_event(
        db=db,
        event=PaymentEvent(
            event_id=payload.event_id,
            event_type=payload.event,
            transaction_id=payload.external_reference,
            provider_payment_id=payload.payment_id,
            amount=payload.value,
        ),
    )
    return PaymentWebhookResponse(
        status=outcome.status,
        transaction_id=str(outcome.transaction_id) if outcome.transaction_id else None,
        transaction_status=outcome.transaction_status,
    )
