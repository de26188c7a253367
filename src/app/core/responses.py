"""
공통 응답 모델 및 예외 클래스
"""
from typing import Generic, TypeVar, Optional, Any
from pydantic import BaseModel, ConfigDict
import logging

logger = logging.getLogger(__name__)

T = TypeVar('T')

class APIResponse(BaseModel, Generic[T]):
    """표준 API 응답 모델"""
    status: str  # "success" or "error"
    data: Optional[T] = None
    message: Optional[str] = None
    error_code: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "success",
                "data": {"plan": "pro"},
                "message": "작업이 성공적으로 완료되었습니다."
            }
        }
    )

# 커스텀 예외 클래스들
class BusinessException(Exception):
    """비즈니스 로직 예외"""
    def __init__(self, message: str, error_code: str = None, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)

class AuthenticationException(BusinessException):
    """인증 관련 예외"""
    def __init__(self, message: str = "인증에 실패했습니다"):
        super().__init__(message, "AUTH_FAILED", 401)

class NotFoundException(BusinessException):
    """리소스 찾을 수 없음 예외"""
    def __init__(self, message: str = "요청한 리소스를 찾을 수 없습니다"):
        super().__init__(message, "NOT_FOUND", 404)

class InvalidSignatureException(BusinessException):
    """웹훅 서명 검증 실패 (헤더 누락/형식 오류/시간 허용치 초과/HMAC 불일치)"""
    def __init__(self, message: str = "invalid signature"):
        super().__init__(message, "INVALID_SIGNATURE", 400)

class StoreWriteFailure(BusinessException):
    """저장소 쓰기 실패 - 공급자 재전송으로 복구"""
    def __init__(self, operation: str, target: Optional[str] = None, cause: Exception = None):
        message = f"저장소 쓰기 실패: {operation}"
        if target:
            message = f"{message} ({target})"
        super().__init__(message, "STORE_WRITE_FAILED", 500)
        self.operation = operation
        self.target = target
        self.cause = cause

# 응답 헬퍼 함수들
def success_response(data: Any = None, message: str = "성공") -> APIResponse:
    """성공 응답 생성"""
    return APIResponse(status="success", data=data, message=message)

def error_response(
    message: str = "오류가 발생했습니다",
    error_code: str = None,
    data: Any = None
) -> APIResponse:
    """오류 응답 생성"""
    return APIResponse(
        status="error",
        message=message,
        error_code=error_code,
        data=data
    )
