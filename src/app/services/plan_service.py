"""
플랜 관리 서비스
플랜 업그레이드/다운그레이드, 최근 결제 및 결제 원장 기록, 만료 플랜 지연 다운그레이드
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional

from core.base_service import BaseService
from core.config import WebhookConfig
from core.interfaces import IDatabaseHelper, IPlanService
from core.plan_config import PlanConfig, PlanTier
from core.responses import NotFoundException

logger = logging.getLogger(__name__)

# Stripe 금액이 최소 단위가 아닌 통화
ZERO_DECIMAL_CURRENCIES = {
    "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
    "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
}


def minor_to_major(amount: Any, currency: Optional[str]) -> float:
    """최소 단위 금액(센트 등)을 표시 단위로 변환"""
    try:
        value = Decimal(str(amount)) if amount is not None else Decimal("0")
    except (InvalidOperation, TypeError, ValueError):
        value = Decimal("0")

    if (currency or "").lower() in ZERO_DECIMAL_CURRENCIES:
        return float(value)
    return float((value / Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class PaymentRecord:
    """사용자 문서의 last_payment 필드 및 결제 원장 한 건"""
    reference_id: Optional[str]
    customer_id: Optional[str]
    amount: float
    currency: Optional[str]
    date: datetime
    provider: str

    def to_last_payment(self) -> Dict[str, Any]:
        return {
            "reference_id": self.reference_id,
            "customer_id": self.customer_id,
            "amount": self.amount,
            "currency": self.currency,
            "date": self.date,
            "provider": self.provider,
        }


class PlanService(BaseService, IPlanService):
    """플랜 관리 서비스"""

    def __init__(self, db_helper: IDatabaseHelper, config: WebhookConfig | None = None):
        super().__init__(db_helper)
        self.config = config or WebhookConfig(signing_secret=None)

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return now or datetime.now(timezone.utc)

    def resolve_plan(self, plan_identifier: Optional[str]) -> tuple[PlanTier, bool]:
        """공급자 플랜 식별자 -> 정규 플랜 (매핑 여부 포함)"""
        return PlanConfig.normalize_plan(
            plan_identifier,
            price_plan_map=self.config.price_plan_map,
            fallback=self.config.unmapped_plan_fallback,
        )

    def is_known_plan(self, plan_identifier: Optional[str]) -> bool:
        return PlanConfig.lookup_plan(plan_identifier, self.config.price_plan_map) is not None

    async def update_subscription_status(self, user_id: str, status: str) -> Dict[str, Any]:
        """플랜은 그대로 두고 구독 상태만 기록"""
        await self.db_helper.update_user(user_id, {"payment_provider_subscription_status": status})
        return {"user_id": user_id, "subscription_status": status}

    async def apply_plan_upgrade(
        self,
        user_id: str,
        plan_identifier: Optional[str],
        *,
        customer_id: Optional[str] = None,
        payment: Optional[PaymentRecord] = None,
        subscription_status: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """플랜 설정 - 같은 이벤트를 다시 적용해도 결과 상태가 같다 (누적 없음)"""
        now = self._now(now)
        tier, mapped = self.resolve_plan(plan_identifier)
        expiry = PlanConfig.compute_expiry(tier, now)

        fields: Dict[str, Any] = {
            "plan": tier.value,
            "plan_updated_at": now,
            "plan_expiry_date": expiry,
        }
        if customer_id:
            fields["payment_provider_customer_id"] = customer_id
        if subscription_status:
            fields["payment_provider_subscription_status"] = subscription_status
        if payment is not None:
            fields["last_payment"] = payment.to_last_payment()

        await self.db_helper.update_user(user_id, fields)
        self.logger.info(f"플랜 변경 완료: user_id={user_id} plan={tier.value} expiry={expiry}")

        if not mapped:
            await self.log_user_action(
                user_id,
                "plan_identifier_unmapped",
                {"identifier": plan_identifier, "applied_plan": tier.value},
            )
        await self.log_user_action(
            user_id,
            "plan_upgrade",
            {
                "plan": tier.value,
                "plan_expiry_date": expiry.isoformat() if expiry else None,
                "customer_id": customer_id,
            },
        )

        return {
            "user_id": user_id,
            "plan": tier.value,
            "mapped": mapped,
            "plan_expiry_date": expiry.isoformat() if expiry else None,
        }

    async def downgrade_to_free(
        self,
        user_id: str,
        reason: str,
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """무료 플랜으로 즉시 전환 (고객 ID는 재구독 매칭을 위해 유지)"""
        now = self._now(now)
        await self.db_helper.update_user(
            user_id,
            {
                "plan": PlanTier.FREE.value,
                "plan_updated_at": now,
                "plan_expiry_date": None,
                "payment_provider_subscription_status": reason,
            },
        )
        self.logger.info(f"무료 플랜 다운그레이드: user_id={user_id} reason={reason}")
        await self.log_user_action(user_id, "plan_downgrade", {"reason": reason, "plan": PlanTier.FREE.value})
        return {"user_id": user_id, "plan": PlanTier.FREE.value, "reason": reason}

    async def record_payment(
        self,
        user_id: str,
        payment: PaymentRecord,
        **_: Any,
    ) -> Dict[str, Any]:
        """플랜 변경 없이 last_payment만 갱신"""
        await self.db_helper.update_user(user_id, {"last_payment": payment.to_last_payment()})
        return {"user_id": user_id, "reference_id": payment.reference_id, "amount": payment.amount}

    async def credit_coins(
        self,
        user_id: str,
        package_id: Optional[str],
        payment: PaymentRecord,
    ) -> Dict[str, Any]:
        """코인 패키지 구매 반영 (플랜은 변경하지 않음)

        원장에 같은 거래가 이미 있으면 다시 적립하지 않는다.
        잔액은 RPC로 원자적으로 더한다.
        """
        package = PlanConfig.get_coin_package(package_id)
        if package is None:
            self.logger.warning(f"알 수 없는 코인 패키지: user_id={user_id} package={package_id}")
            await self.record_payment(user_id, payment)
            return {"user_id": user_id, "coins_added": 0, "package": package_id, "error": "unknown_package"}

        if payment.reference_id:
            existing = await self.db_helper.get_payment_ledger_entry(payment.provider, payment.reference_id)
            if existing:
                self.logger.info(f"이미 적립된 코인 결제: user_id={user_id} reference={payment.reference_id}")
                return {"user_id": user_id, "coins_added": 0, "package": package.id, "duplicate": True}

        balance = await self.db_helper.increment_user_coins(user_id, package.coins)
        await self.db_helper.update_user(user_id, {"last_payment": payment.to_last_payment()})
        await self.log_user_action(
            user_id,
            "coins_purchase",
            {"package": package.id, "coins": package.coins, "reference_id": payment.reference_id},
        )
        return {"user_id": user_id, "coins_added": package.coins, "package": package.id, "balance": balance}

    async def record_ledger(
        self,
        user_id: Optional[str],
        payment: PaymentRecord,
        *,
        kind: str,
        plan: Optional[str] = None,
    ) -> Dict[str, Any]:
        """결제 원장에 거래 1건 기록 (거래 ID 기준 upsert)"""
        if not payment.reference_id:
            self.logger.warning(f"거래 ID 없는 결제는 원장에 기록하지 않음: user_id={user_id}")
            return {}

        return await self.db_helper.upsert_payment_ledger(
            {
                "provider": payment.provider,
                "reference_id": payment.reference_id,
                "user_id": user_id,
                "customer_id": payment.customer_id,
                "amount": payment.amount,
                "currency": payment.currency,
                "kind": kind,
                "plan": plan,
                "paid_at": payment.date,
            }
        )

    async def get_effective_plan(self, user_id: str, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        """만료가 지난 유료 플랜은 조회 시점에 무료로 내린 뒤 반환"""
        now = self._now(now)
        user = await self.db_helper.get_user(user_id)
        if not user:
            raise NotFoundException("사용자를 찾을 수 없습니다")

        tier = PlanConfig.coerce_tier(user.get("plan"))
        expiry = _parse_datetime(user.get("plan_expiry_date"))
        status = user.get("payment_provider_subscription_status")
        expired_now = False

        if PlanConfig.is_paid(tier) and expiry is not None and expiry < now:
            await self.downgrade_to_free(user_id, "plan_expired", now=now)
            await self.log_user_action(user_id, "plan_expired", {"previous_plan": tier.value})
            tier = PlanTier.FREE
            expiry = None
            status = "plan_expired"
            expired_now = True

        days_remaining = None
        if expiry is not None and PlanConfig.is_paid(tier):
            days_remaining = max(0, (expiry - now).days)

        return {
            "user_id": user_id,
            "plan": tier.value,
            "plan_expiry_date": expiry.isoformat() if expiry else None,
            "days_remaining": days_remaining,
            "expired_now": expired_now,
            "subscription_status": status,
            "features": PlanConfig.get_features(tier).to_public_dict(),
        }
