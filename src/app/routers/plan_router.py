"""
플랜 관련 API 라우터
플랜 카탈로그(공개)와 로그인 사용자의 현재 플랜 조회
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.factory import ServiceFactory
from core.interfaces import IAuthService
from core.plan_config import PlanConfig, PlanTier
from core.responses import NotFoundException, success_response
from schemas.plans import EffectivePlanResponse, PlanInfoResponse
from services.plan_service import PlanService

logger = logging.getLogger(__name__)

# 라우터 생성
router = APIRouter(prefix="/api/v1/plans", tags=["plans"])
security = HTTPBearer()


def get_auth_service() -> IAuthService:
    return ServiceFactory.get_auth_service()


def get_plan_service() -> PlanService:
    return ServiceFactory.get_plan_service()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    auth_service: IAuthService = Depends(get_auth_service),
):
    """현재 사용자 정보를 가져오는 의존성"""
    return await auth_service.verify_auth(credentials)


@router.get("")
async def list_plans():
    """전체 플랜 및 기능 제한 조회"""
    plans = [PlanInfoResponse(**info).model_dump() for info in PlanConfig.list_plans()]
    return success_response(data={"plans": plans}, message="플랜 목록 조회 성공")


@router.get("/me")
async def get_my_plan(
    current_user=Depends(get_current_user),
    plan_service: PlanService = Depends(get_plan_service),
):
    """현재 플랜 조회 (만료된 유료 플랜은 이 시점에 무료로 전환)"""
    effective = await plan_service.get_effective_plan(current_user.id)
    return success_response(
        data=EffectivePlanResponse(**effective).model_dump(),
        message="플랜 조회 성공",
    )


@router.get("/{plan_id}")
async def get_plan(plan_id: str):
    """단일 플랜 조회"""
    try:
        tier = PlanTier(plan_id.strip().lower())
    except ValueError:
        raise NotFoundException(f"존재하지 않는 플랜입니다: {plan_id}")
    return success_response(data=PlanInfoResponse(**PlanConfig.get_plan_info(tier)).model_dump(), message="플랜 조회 성공")
