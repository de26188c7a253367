"""
결제 이벤트 -> 사용자 문서 매칭

우선순위 (첫 번째로 찾은 사용자를 사용, 이후 전략은 시도하지 않음):
1. 상관 토큰 client_reference_id ("{userId}_{planId}" 또는 "{userId}_coins_{packageId}")
2. 결제 공급자 고객 ID (payment_provider_customer_id)
3. 고객 이메일 (정확히 일치, 1건)
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.interfaces import IDatabaseHelper

logger = logging.getLogger(__name__)

CUSTOMER_ID_FIELD = "payment_provider_customer_id"
EMAIL_FIELD = "email"


@dataclass(frozen=True)
class CorrelationToken:
    user_id: str
    plan_id: Optional[str] = None
    coin_package_id: Optional[str] = None

    @property
    def is_coin_purchase(self) -> bool:
        return self.coin_package_id is not None


@dataclass(frozen=True)
class ResolvedUser:
    user: Dict[str, Any]
    strategy: str  # reference / customer_id / email

    @property
    def user_id(self) -> str:
        return str(self.user.get("id"))


def parse_correlation_token(token: Optional[str]) -> Optional[CorrelationToken]:
    """상관 토큰 파싱. 형식이 맞지 않으면 None (예외를 던지지 않음)"""
    if not isinstance(token, str):
        return None
    token = token.strip()
    if not token:
        return None

    parts = token.split("_")
    if any(not part for part in parts):
        return None
    if len(parts) == 2:
        return CorrelationToken(user_id=parts[0], plan_id=parts[1])
    if len(parts) == 3 and parts[1] == "coins":
        return CorrelationToken(user_id=parts[0], coin_package_id=parts[2])
    return None


class UserResolver:
    """이벤트 식별 정보로 사용자 문서 1건을 찾는다"""

    def __init__(self, db_helper: IDatabaseHelper):
        self.db_helper = db_helper

    async def resolve(
        self,
        *,
        reference: Optional[CorrelationToken] = None,
        user_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[ResolvedUser]:
        direct_id = reference.user_id if reference else user_id
        if direct_id:
            user = await self.db_helper.get_user(direct_id)
            if user:
                return ResolvedUser(user=user, strategy="reference")
            logger.info("user %s from correlation token not found; trying next strategy", direct_id)

        if customer_id:
            user = await self.db_helper.find_user_by_field(CUSTOMER_ID_FIELD, customer_id)
            if user:
                return ResolvedUser(user=user, strategy="customer_id")

        if email:
            user = await self.db_helper.find_user_by_field(EMAIL_FIELD, email)
            if user:
                return ResolvedUser(user=user, strategy="email")

        logger.warning(
            "no user matched: user_id=%s customer_id=%s has_email=%s",
            direct_id,
            customer_id,
            bool(email),
        )
        return None
