from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class PlanInfoResponse(BaseModel):
    id: str = Field(..., description="플랜 ID (free/basic/pro/premium)")
    name: str = Field(..., description="표시 이름")
    price: float = Field(..., ge=0, description="결제 주기당 가격")
    currency: str = Field(..., description="통화 코드")
    interval: Optional[str] = Field(None, description="결제 주기 (week/month/year, 무료는 없음)")
    expiry_offset: Optional[str] = Field(None, description="결제 시점 기준 만료 오프셋")
    features: Dict[str, Any] = Field(..., description="기능 제한 (camelCase 키)")


class EffectivePlanResponse(BaseModel):
    user_id: str = Field(..., description="사용자 ID")
    plan: str = Field(..., description="만료 여부가 반영된 현재 플랜")
    plan_expiry_date: Optional[str] = Field(None, description="플랜 만료 시각 (ISO 8601)")
    days_remaining: Optional[int] = Field(None, description="남은 일수 (무료 플랜은 없음)")
    expired_now: bool = Field(False, description="이번 조회에서 만료 다운그레이드가 적용되었는지 여부")
    subscription_status: Optional[str] = Field(None, description="최근 구독 상태 또는 다운그레이드 사유")
    features: Dict[str, Any] = Field(..., description="기능 제한 (camelCase 키)")
