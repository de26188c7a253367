"""
플랜별 기능 제한 및 결제 공급자 식별자 매핑 관리

웹훅 정산(공급자 플랜 식별자 정규화)과 UI 기능 노출 제어가 모두 이 테이블 하나만 참조한다.
"""
import calendar
import logging
from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class PlanTier(str, Enum):
    """플랜 등급"""
    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    PREMIUM = "premium"


@dataclass(frozen=True)
class PlanFeatures:
    """플랜별 기능 설정"""
    max_links: Optional[int]  # None은 무제한
    analytics_max_days: int
    link_performance: bool
    countries_devices: bool
    avg_time: bool
    bounce_rate: bool
    traffic_sources: bool
    period_comparison: bool
    peak_hours: bool
    qr_code_custom: bool
    custom_themes: bool
    remove_branding: bool
    priority_support: bool
    username_changes_limit: Optional[int]  # None은 무제한

    def to_public_dict(self) -> Dict[str, Any]:
        """UI에서 사용하는 camelCase 키로 변환"""
        return {_to_camel(f.name): getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class PlanDefinition:
    """플랜 가격 및 결제 주기"""
    tier: PlanTier
    name: str
    price: Decimal
    currency: str
    interval: Optional[str]  # week / month / year
    features: PlanFeatures


@dataclass(frozen=True)
class CoinPackage:
    """코인 패키지 (일회성 구매)"""
    id: str
    name: str
    coins: int
    price: Decimal
    currency: str = "EUR"


EXPIRY_OFFSET_LABELS = {
    "week": "+7 days",
    "month": "+1 month",
    "year": "+1 year",
}


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _add_months(value: datetime, months: int) -> datetime:
    """달력 기준 월 더하기 (말일은 대상 월의 마지막 날로 보정)"""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


class PlanConfig:
    """플랜 설정 관리자"""

    PLAN_CONFIGS: Dict[PlanTier, PlanDefinition] = {
        PlanTier.FREE: PlanDefinition(
            tier=PlanTier.FREE,
            name="Free",
            price=Decimal("0"),
            currency="EUR",
            interval=None,
            features=PlanFeatures(
                max_links=None,
                analytics_max_days=7,
                link_performance=False,
                countries_devices=False,
                avg_time=False,
                bounce_rate=False,
                traffic_sources=False,
                period_comparison=False,
                peak_hours=False,
                qr_code_custom=False,
                custom_themes=False,
                remove_branding=False,
                priority_support=False,
                username_changes_limit=1,
            ),
        ),
        PlanTier.BASIC: PlanDefinition(
            tier=PlanTier.BASIC,
            name="Basic",
            price=Decimal("1.99"),
            currency="EUR",
            interval="week",
            features=PlanFeatures(
                max_links=None,
                analytics_max_days=14,
                link_performance=True,
                countries_devices=False,
                avg_time=False,
                bounce_rate=False,
                traffic_sources=False,
                period_comparison=False,
                peak_hours=False,
                qr_code_custom=False,
                custom_themes=False,
                remove_branding=False,
                priority_support=False,
                username_changes_limit=2,
            ),
        ),
        PlanTier.PRO: PlanDefinition(
            tier=PlanTier.PRO,
            name="Pro",
            price=Decimal("3.99"),
            currency="EUR",
            interval="month",
            features=PlanFeatures(
                max_links=None,
                analytics_max_days=30,
                link_performance=True,
                countries_devices=True,
                avg_time=True,
                bounce_rate=True,
                traffic_sources=True,
                period_comparison=True,
                peak_hours=False,
                qr_code_custom=True,
                custom_themes=True,
                remove_branding=True,
                priority_support=True,
                username_changes_limit=5,
            ),
        ),
        PlanTier.PREMIUM: PlanDefinition(
            tier=PlanTier.PREMIUM,
            name="Premium",
            price=Decimal("39.99"),
            currency="EUR",
            interval="year",
            features=PlanFeatures(
                max_links=None,
                analytics_max_days=365,
                link_performance=True,
                countries_devices=True,
                avg_time=True,
                bounce_rate=True,
                traffic_sources=True,
                period_comparison=True,
                peak_hours=True,
                qr_code_custom=True,
                custom_themes=True,
                remove_branding=True,
                priority_support=True,
                username_changes_limit=None,
            ),
        ),
    }

    # 공급자 측에서 들어올 수 있는 플랜 표기 (소문자로 비교)
    PLAN_ALIASES: Dict[str, PlanTier] = {
        "free": PlanTier.FREE,
        "basic": PlanTier.BASIC,
        "pro": PlanTier.PRO,
        "premium": PlanTier.PREMIUM,
        "basic_weekly": PlanTier.BASIC,
        "pro_monthly": PlanTier.PRO,
        "premium_yearly": PlanTier.PREMIUM,
        "price_basic_weekly": PlanTier.BASIC,
        "price_pro_monthly": PlanTier.PRO,
        "price_premium_yearly": PlanTier.PREMIUM,
    }

    COIN_PACKAGES: Dict[str, CoinPackage] = {
        "starter": CoinPackage(id="starter", name="Starter", coins=100, price=Decimal("0.99")),
        "popular": CoinPackage(id="popular", name="Popular", coins=500, price=Decimal("3.99")),
        "bestValue": CoinPackage(id="bestValue", name="Best Value", coins=1200, price=Decimal("6.99")),
        "mega": CoinPackage(id="mega", name="Mega", coins=2500, price=Decimal("12.99")),
    }

    @classmethod
    def coerce_tier(cls, plan: Any) -> PlanTier:
        """저장된 플랜 값을 등급으로 변환 (알 수 없으면 FREE)"""
        if isinstance(plan, PlanTier):
            return plan
        try:
            return PlanTier(str(plan).strip().lower())
        except ValueError:
            return PlanTier.FREE

    @classmethod
    def get_definition(cls, plan: Any) -> PlanDefinition:
        return cls.PLAN_CONFIGS[cls.coerce_tier(plan)]

    @classmethod
    def get_features(cls, plan: Any) -> PlanFeatures:
        """플랜에 따른 기능 설정 반환"""
        return cls.get_definition(plan).features

    @classmethod
    def can_use_feature(cls, plan: Any, feature: str) -> bool:
        """특정 기능 사용 가능 여부 확인"""
        return bool(getattr(cls.get_features(plan), feature, False))

    @classmethod
    def get_limit(cls, plan: Any, limit_type: str) -> Optional[int]:
        """플랜에 따른 제한값 반환 (None은 무제한)"""
        return getattr(cls.get_features(plan), limit_type, 0)

    @classmethod
    def lookup_plan(
        cls,
        identifier: Optional[str],
        price_plan_map: Optional[Mapping[str, str]] = None,
    ) -> Optional[PlanTier]:
        """매핑 테이블에서만 찾는다 (없으면 None)"""
        raw = (identifier or "").strip()
        if not raw:
            return None
        if price_plan_map and raw in price_plan_map:
            mapped = cls.PLAN_ALIASES.get(str(price_plan_map[raw]).lower())
            if mapped is not None:
                return mapped
        return cls.PLAN_ALIASES.get(raw.lower())

    @classmethod
    def normalize_plan(
        cls,
        identifier: Optional[str],
        price_plan_map: Optional[Mapping[str, str]] = None,
        fallback: Any = PlanTier.PRO,
    ) -> Tuple[PlanTier, bool]:
        """공급자 플랜 식별자를 정규 플랜으로 변환

        반환값의 두 번째 요소는 매핑 테이블에서 찾았는지 여부다.
        찾지 못하면 fallback 플랜을 돌려준다.
        """
        mapped = cls.lookup_plan(identifier, price_plan_map)
        if mapped is not None:
            return mapped, True

        fallback_tier = cls.coerce_tier(fallback)
        logger.warning(
            "unmapped plan identifier %r, falling back to %s",
            identifier,
            fallback_tier.value,
        )
        return fallback_tier, False

    @classmethod
    def compute_expiry(cls, plan: Any, now: datetime) -> Optional[datetime]:
        """플랜 결제 주기에 따른 만료 시각 (무료는 None)"""
        interval = cls.get_definition(plan).interval
        if interval == "week":
            return now + timedelta(days=7)
        if interval == "month":
            return _add_months(now, 1)
        if interval == "year":
            return _add_months(now, 12)
        return None

    @classmethod
    def get_coin_package(cls, package_id: Optional[str]) -> Optional[CoinPackage]:
        if not package_id:
            return None
        return cls.COIN_PACKAGES.get(package_id)

    @classmethod
    def get_plan_info(cls, plan: Any) -> Dict[str, Any]:
        """플랜 정보 전체 반환"""
        definition = cls.get_definition(plan)
        return {
            "id": definition.tier.value,
            "name": definition.name,
            "price": float(definition.price),
            "currency": definition.currency,
            "interval": definition.interval,
            "expiry_offset": EXPIRY_OFFSET_LABELS.get(definition.interval),
            "features": definition.features.to_public_dict(),
        }

    @classmethod
    def list_plans(cls) -> list:
        return [cls.get_plan_info(tier) for tier in PlanTier]

    @classmethod
    def is_paid(cls, plan: Any) -> bool:
        return cls.coerce_tier(plan) is not PlanTier.FREE
