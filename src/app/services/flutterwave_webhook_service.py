"""
Flutterwave 웹훅 정산 서비스 (이전 결제 공급자)

Stripe로 이전하기 전에 만들어진 정기 결제가 남아 있어 아직 수신한다.
"""
import hmac
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from core.responses import AuthenticationException
from schemas.webhook import FlutterwaveEvent
from services.plan_service import PaymentRecord
from services.webhook_reconciler import HandlerFunc, HandlerResult, WebhookContext, WebhookReconciler

logger = logging.getLogger(__name__)


class FlutterwaveWebhookService(WebhookReconciler):
    """Flutterwave 이벤트 -> 플랜 상태 정산"""

    PROVIDER = "flutterwave"
    LOG_TAG = "[FLUTTERWAVE]"

    def __init__(self, db_helper, plan_service, resolver=None, secret_hash: Optional[str] = None):
        super().__init__(db_helper, plan_service, resolver)
        self.secret_hash = secret_hash

    def verify_hash(self, provided: Optional[str]) -> None:
        """verif-hash 헤더 확인. 설정이 없거나 일치하지 않으면 401"""
        if not self.secret_hash:
            logger.error("[FLUTTERWAVE] secret hash not configured; rejecting event")
            raise AuthenticationException("webhook secret not configured")
        if not provided or not hmac.compare_digest(self.secret_hash, provided):
            logger.warning("[FLUTTERWAVE] verif-hash mismatch")
            raise AuthenticationException("invalid verif-hash")

    def _handlers(self) -> Dict[str, HandlerFunc]:
        return {
            "charge.completed": self._handle_charge_completed,
            "subscription.cancelled": self._handle_subscription_cancelled,
        }

    async def process_event(self, event: FlutterwaveEvent, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        event_id = None
        if event.data.id is not None:
            event_id = f"{event.event}:{event.data.id}"
        return await self.dispatch(
            event,
            event_type=event.event,
            event_id=event_id,
            raw=event.model_dump(mode="json"),
            now=now,
        )

    async def _handle_charge_completed(self, event: FlutterwaveEvent, ctx: WebhookContext) -> HandlerResult:
        data = event.data
        if (data.status or "").lower() != "successful":
            logger.info("[FLUTTERWAVE] charge not successful, ignored: tx_ref=%s status=%s", data.tx_ref, data.status)
            return "charge_ignored", {"status": data.status}

        # Flutterwave 금액은 이미 표시 단위
        payment = PaymentRecord(
            reference_id=data.tx_ref or (str(data.id) if data.id is not None else None),
            customer_id=None,
            amount=float(data.amount or 0),
            currency=data.currency,
            date=ctx.now,
            provider=self.PROVIDER,
        )

        resolved = await self.resolver.resolve(user_id=data.user_reference, email=data.email)
        if resolved is None:
            details = await self.store_pending_payment(
                ctx,
                email=data.email,
                customer_id=None,
                user_id=data.user_reference,
                plan=self.plan_service.resolve_plan(data.plan_identifier)[0].value,
                payment=payment,
            )
            return "pending_payment", details

        ctx.user_id = resolved.user_id
        details = await self.plan_service.apply_plan_upgrade(
            resolved.user_id,
            data.plan_identifier,
            payment=payment,
            subscription_status="active",
            now=ctx.now,
        )
        await self.plan_service.record_ledger(resolved.user_id, payment, kind="plan", plan=details["plan"])
        return "plan_upgraded", details

    async def _handle_subscription_cancelled(self, event: FlutterwaveEvent, ctx: WebhookContext) -> HandlerResult:
        email = event.data.email
        resolved = await self.resolver.resolve(email=email)
        if resolved is None:
            logger.warning("[FLUTTERWAVE] no user to downgrade: has_email=%s", bool(email))
            return "user_not_found", {"reason": "subscription_cancelled"}

        ctx.user_id = resolved.user_id
        details = await self.plan_service.downgrade_to_free(resolved.user_id, "subscription_cancelled", now=ctx.now)
        return "plan_downgraded", details
