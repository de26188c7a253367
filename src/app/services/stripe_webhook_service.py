"""
Stripe 웹훅 정산 서비스

checkout.session.completed      -> 플랜 구매 / 코인 구매 (매칭 실패 시 보류 결제)
customer.subscription.updated   -> active면 플랜 설정, 그 외 상태는 기록만
customer.subscription.deleted   -> 무료 다운그레이드 (subscription_cancelled)
invoice.payment_failed          -> 무료 다운그레이드 (payment_failed)
invoice.payment_succeeded       -> 최근 결제만 갱신 (플랜 변경 없음)
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from schemas.webhook import (
    CheckoutSessionCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    StripeEvent,
    SubscriptionDeleted,
    SubscriptionUpdated,
)
from services.plan_service import PaymentRecord, minor_to_major
from services.user_resolver import parse_correlation_token
from services.webhook_reconciler import HandlerFunc, HandlerResult, WebhookContext, WebhookReconciler

logger = logging.getLogger(__name__)

REASON_SUBSCRIPTION_CANCELLED = "subscription_cancelled"
REASON_PAYMENT_FAILED = "payment_failed"


class StripeWebhookService(WebhookReconciler):
    """Stripe 이벤트 -> 플랜 상태 정산"""

    PROVIDER = "stripe"
    LOG_TAG = "[STRIPE]"

    def _handlers(self) -> Dict[str, HandlerFunc]:
        return {
            "checkout.session.completed": self._handle_checkout_completed,
            "customer.subscription.updated": self._handle_subscription_updated,
            "customer.subscription.deleted": self._handle_subscription_deleted,
            "invoice.payment_failed": self._handle_payment_failed,
            "invoice.payment_succeeded": self._handle_invoice_succeeded,
        }

    async def process_event(self, event: StripeEvent, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        return await self.dispatch(
            event,
            event_type=event.type,
            event_id=event.event_id,
            raw=event.raw,
            now=now,
        )

    async def _handle_checkout_completed(self, event: CheckoutSessionCompleted, ctx: WebhookContext) -> HandlerResult:
        session = event.payload
        customer_id = session.customer_id
        email = session.email

        logger.info(
            "[STRIPE] checkout completed: session=%s customer=%s has_email=%s reference=%s",
            session.id,
            customer_id,
            bool(email),
            session.client_reference_id,
        )

        token = parse_correlation_token(session.client_reference_id)
        if session.client_reference_id and token is None:
            logger.warning("[STRIPE] malformed client_reference_id ignored: %r", session.client_reference_id)

        metadata_user_id = None if token else session.metadata.get("userId")
        if token is None:
            plan_identifier = session.metadata.get("plan")
        else:
            plan_identifier = token.plan_id

        payment = PaymentRecord(
            reference_id=session.id,
            customer_id=customer_id,
            amount=minor_to_major(session.amount_total, session.currency),
            currency=session.currency,
            date=ctx.now,
            provider=self.PROVIDER,
        )

        resolved = await self.resolver.resolve(
            reference=token,
            user_id=metadata_user_id,
            customer_id=customer_id,
            email=email,
        )

        if resolved is None:
            pending_plan = None
            if not (token and token.is_coin_purchase):
                pending_plan = self.plan_service.resolve_plan(plan_identifier)[0].value
            details = await self.store_pending_payment(
                ctx,
                email=email,
                customer_id=customer_id,
                user_id=token.user_id if token else metadata_user_id,
                plan=pending_plan,
                payment=payment,
            )
            return "pending_payment", details

        ctx.user_id = resolved.user_id

        if token and token.is_coin_purchase:
            details = await self.plan_service.credit_coins(resolved.user_id, token.coin_package_id, payment)
            await self.plan_service.record_ledger(resolved.user_id, payment, kind="coins")
            return "coins_credited", details

        details = await self.plan_service.apply_plan_upgrade(
            resolved.user_id,
            plan_identifier,
            customer_id=customer_id,
            payment=payment,
            subscription_status="active" if session.subscription else None,
            now=ctx.now,
        )
        await self.plan_service.record_ledger(resolved.user_id, payment, kind="plan", plan=details["plan"])
        details["strategy"] = resolved.strategy
        return "plan_upgraded", details

    async def _handle_subscription_updated(self, event: SubscriptionUpdated, ctx: WebhookContext) -> HandlerResult:
        subscription = event.payload
        status = (subscription.status or "").lower()

        resolved = await self.resolver.resolve(
            user_id=subscription.metadata.get("userId"),
            customer_id=subscription.customer_id,
        )
        if resolved is None:
            logger.warning("[STRIPE] no user for subscription update: customer=%s", subscription.customer_id)
            return "user_not_found", {"customer_id": subscription.customer_id}

        ctx.user_id = resolved.user_id

        if status != "active":
            details = await self.plan_service.update_subscription_status(resolved.user_id, status or "unknown")
            return "status_recorded", details

        candidates = [
            subscription.price_id,
            subscription.metadata.get("plan"),
            resolved.user.get("plan"),
        ]
        plan_identifier = next(
            (c for c in candidates if c and self.plan_service.is_known_plan(c)),
            next((c for c in candidates if c), None),
        )

        details = await self.plan_service.apply_plan_upgrade(
            resolved.user_id,
            plan_identifier,
            customer_id=subscription.customer_id,
            subscription_status=status,
            now=ctx.now,
        )
        return "plan_updated", details

    async def _downgrade(self, payload: Any, ctx: WebhookContext, reason: str) -> HandlerResult:
        resolved = await self.resolver.resolve(
            user_id=payload.metadata.get("userId"),
            customer_id=payload.customer_id,
            email=getattr(payload, "email", None),
        )
        if resolved is None:
            logger.warning("[STRIPE] no user to downgrade: customer=%s reason=%s", payload.customer_id, reason)
            return "user_not_found", {"customer_id": payload.customer_id, "reason": reason}

        ctx.user_id = resolved.user_id
        details = await self.plan_service.downgrade_to_free(resolved.user_id, reason, now=ctx.now)
        return "plan_downgraded", details

    async def _handle_subscription_deleted(self, event: SubscriptionDeleted, ctx: WebhookContext) -> HandlerResult:
        return await self._downgrade(event.payload, ctx, REASON_SUBSCRIPTION_CANCELLED)

    async def _handle_payment_failed(self, event: InvoicePaymentFailed, ctx: WebhookContext) -> HandlerResult:
        return await self._downgrade(event.payload, ctx, REASON_PAYMENT_FAILED)

    async def _handle_invoice_succeeded(self, event: InvoicePaymentSucceeded, ctx: WebhookContext) -> HandlerResult:
        invoice = event.payload
        resolved = await self.resolver.resolve(
            user_id=invoice.metadata.get("userId"),
            customer_id=invoice.customer_id,
            email=invoice.email,
        )
        if resolved is None:
            logger.warning("[STRIPE] no user for invoice payment: invoice=%s customer=%s", invoice.id, invoice.customer_id)
            return "user_not_found", {"customer_id": invoice.customer_id}

        ctx.user_id = resolved.user_id
        payment = PaymentRecord(
            reference_id=invoice.id,
            customer_id=invoice.customer_id,
            amount=minor_to_major(invoice.amount_paid, invoice.currency),
            currency=invoice.currency,
            date=ctx.now,
            provider=self.PROVIDER,
        )
        details = await self.plan_service.record_payment(resolved.user_id, payment)
        await self.plan_service.record_ledger(
            resolved.user_id,
            payment,
            kind="renewal",
            plan=resolved.user.get("plan"),
        )
        return "payment_recorded", details
