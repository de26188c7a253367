"""
결제 공급자 웹훅 라우터

- POST /webhook              Stripe (stripe-signature 검증)
- POST /webhook/flutterwave  Flutterwave 이전 구독 (verif-hash 검증)

서명 검증은 원본 바이트로 먼저 수행하고, 통과한 이벤트만 정산 서비스로 넘긴다.
처리 중 예외는 500으로 응답해 공급자가 재전송하게 한다.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError

from core.factory import ServiceFactory
from schemas.webhook import FlutterwaveEvent, parse_stripe_event
from services.flutterwave_webhook_service import FlutterwaveWebhookService
from services.signature_verifier import StripeSignatureVerifier
from services.stripe_webhook_service import StripeWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])


def get_signature_verifier() -> StripeSignatureVerifier:
    return ServiceFactory.get_signature_verifier()


def get_stripe_webhook_service() -> StripeWebhookService:
    return ServiceFactory.get_stripe_webhook_service()


def get_flutterwave_webhook_service() -> FlutterwaveWebhookService:
    return ServiceFactory.get_flutterwave_webhook_service()


@router.post("")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="stripe-signature"),
    verifier: StripeSignatureVerifier = Depends(get_signature_verifier),
    service: StripeWebhookService = Depends(get_stripe_webhook_service),
):
    raw = await request.body()
    logger.info("[STRIPE] webhook received: len=%s, has_signature=%s", len(raw), bool(stripe_signature))

    # InvalidSignatureException -> 400 (예외 처리기)
    envelope = verifier.verify(raw, stripe_signature)

    try:
        event = parse_stripe_event(envelope)
    except ValidationError as e:
        logger.warning("[STRIPE] event payload rejected: type=%s error=%s", envelope.get("type"), e)
        raise HTTPException(status_code=400, detail="invalid event payload")

    try:
        await service.process_event(event)
    except Exception as e:
        logger.error("[STRIPE] webhook processing failed: type=%s id=%s error=%s", event.type, event.event_id, e)
        raise HTTPException(status_code=500, detail="webhook processing failed")

    return {"received": True}


@router.post("/flutterwave")
async def flutterwave_webhook(
    request: Request,
    verif_hash: Optional[str] = Header(default=None, alias="verif-hash"),
    service: FlutterwaveWebhookService = Depends(get_flutterwave_webhook_service),
):
    # AuthenticationException -> 401 (예외 처리기)
    service.verify_hash(verif_hash)

    raw = await request.body()
    try:
        payload = json.loads(raw.decode("utf-8"))
        event = FlutterwaveEvent.model_validate(payload)
    except (UnicodeDecodeError, json.JSONDecodeError, ValidationError):
        raise HTTPException(status_code=400, detail="invalid json")

    try:
        await service.process_event(event)
    except Exception as e:
        logger.error("[FLUTTERWAVE] webhook processing failed: event=%s error=%s", event.event, e)
        raise HTTPException(status_code=500, detail="webhook processing failed")

    return {"received": True}
