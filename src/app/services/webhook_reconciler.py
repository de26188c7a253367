"""
결제 공급자 웹훅 정산 공통 흐름

- 이벤트 type별 핸들러 디스패치 (순차 await, 팬아웃 없음)
- 이벤트 ID 기반 중복 처리 방지 (처리 성공 후에만 기록)
- 사용자 매칭 실패 시 보류 결제(pending_payments) 기록
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from core.base_service import BaseService
from core.interfaces import IDatabaseHelper
from services.plan_service import PaymentRecord, PlanService
from services.user_resolver import UserResolver

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WebhookContext:
    provider: str
    event_type: str
    event_id: Optional[str]
    now: datetime
    raw: Dict[str, Any] = field(default_factory=dict)
    # 핸들러가 사용자를 찾으면 채운다 (실패 로그용)
    user_id: Optional[str] = None


HandlerResult = Tuple[str, Dict[str, Any]]
HandlerFunc = Callable[[Any, WebhookContext], Awaitable[HandlerResult]]


class WebhookReconciler(BaseService, ABC):
    """공급자별 정산 서비스의 기본 클래스"""

    PROVIDER = "unknown"
    LOG_TAG = "[WEBHOOK]"

    def __init__(
        self,
        db_helper: IDatabaseHelper,
        plan_service: PlanService,
        resolver: UserResolver | None = None,
    ):
        super().__init__(db_helper)
        self.plan_service = plan_service
        self.resolver = resolver or UserResolver(db_helper)

    @abstractmethod
    def _handlers(self) -> Dict[str, HandlerFunc]:
        """이벤트 type -> 핸들러"""
        pass

    async def dispatch(
        self,
        event: Any,
        *,
        event_type: str,
        event_id: Optional[str],
        raw: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """이벤트 1건 처리. 핸들러 예외는 로그를 남기고 그대로 전파한다"""
        outcome: Dict[str, Any] = {
            "provider": self.PROVIDER,
            "event_type": event_type,
            "event_id": event_id,
            "status": "ignored",
            "action": None,
            "user_id": None,
            "duplicate": False,
        }

        handler = self._handlers().get(event_type)
        if handler is None:
            logger.info("%s unhandled event type acknowledged: %s", self.LOG_TAG, event_type or "<empty>")
            return outcome

        if event_id and await self.db_helper.has_processed_webhook_event(self.PROVIDER, event_id):
            logger.info("%s duplicate event ignored: %s", self.LOG_TAG, event_id)
            outcome.update(status="duplicate", duplicate=True)
            return outcome

        ctx = WebhookContext(
            provider=self.PROVIDER,
            event_type=event_type,
            event_id=event_id,
            now=now or datetime.now(timezone.utc),
            raw=raw or {},
        )

        try:
            action, details = await handler(event, ctx)
        except Exception as e:
            logger.error(
                "%s handler failed: event=%s event_id=%s user_id=%s error=%s",
                self.LOG_TAG,
                event_type,
                event_id,
                ctx.user_id,
                e,
            )
            raise

        outcome.update(status="processed", action=action, user_id=ctx.user_id, details=details)
        logger.info(
            "%s event processed: event=%s event_id=%s user_id=%s action=%s",
            self.LOG_TAG,
            event_type,
            event_id,
            ctx.user_id,
            action,
        )

        if event_id:
            await self.db_helper.record_webhook_event(
                self.PROVIDER,
                event_id,
                "processed",
                {"event_type": event_type, "user_id": ctx.user_id, "action": action},
            )
        return outcome

    async def store_pending_payment(
        self,
        ctx: WebhookContext,
        *,
        email: Optional[str],
        customer_id: Optional[str],
        user_id: Optional[str],
        plan: Optional[str],
        payment: PaymentRecord,
    ) -> Dict[str, Any]:
        """매칭되지 않은 결제를 수동 정산용으로 보관 (예외를 던지지 않음)"""
        record = {
            "provider": self.PROVIDER,
            "event_id": ctx.event_id,
            "event_type": ctx.event_type,
            "email": email,
            "customer_id": customer_id,
            "user_id": user_id,
            "plan": plan,
            "reference_id": payment.reference_id,
            "amount": payment.amount,
            "currency": payment.currency,
            "raw_payload": ctx.raw,
        }

        logger.error(
            "%s user not found for payment; storing pending payment: reference=%s customer_id=%s has_email=%s",
            self.LOG_TAG,
            payment.reference_id,
            customer_id,
            bool(email),
        )

        try:
            created = await self.db_helper.create_pending_payment(record)
        except Exception as e:
            logger.error("%s pending payment write failed: reference=%s error=%s", self.LOG_TAG, payment.reference_id, e)
            return {"pending_payment": False, "reference_id": payment.reference_id}

        await self.log_user_action(
            None,
            "pending_payment",
            {"provider": self.PROVIDER, "reference_id": payment.reference_id, "event_id": ctx.event_id},
        )
        return {"pending_payment": True, "pending_id": created.get("id"), "reference_id": payment.reference_id}
