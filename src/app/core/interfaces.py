"""
서비스 인터페이스 정의
"""
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional

class IAuthService(ABC):
    """인증 서비스 인터페이스"""

    @abstractmethod
    async def verify_auth(self, credentials) -> Any:
        """토큰 검증"""
        pass

class IDatabaseHelper(ABC):
    """데이터베이스 헬퍼 인터페이스

    사용자 문서 저장소를 get / update / insert / 필드 조회 연산만으로 다룬다.
    """

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """사용자 ID로 조회"""
        pass

    @abstractmethod
    async def find_user_by_field(self, field: str, value: Any) -> Optional[Dict[str, Any]]:
        """필드 값이 정확히 일치하는 첫 번째 사용자 조회"""
        pass

    @abstractmethod
    async def update_user(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """사용자 문서 부분 업데이트 (필드 단위 병합)"""
        pass

    @abstractmethod
    async def increment_user_coins(self, user_id: str, delta: int) -> int:
        """코인 잔액 원자적 증감 후 새 잔액 반환"""
        pass

    @abstractmethod
    async def get_payment_ledger_entry(self, provider: str, reference_id: str) -> Optional[Dict[str, Any]]:
        """공급자 거래 ID로 원장 기록 조회"""
        pass

    @abstractmethod
    async def create_pending_payment(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """매칭 실패 결제 보류 기록 생성"""
        pass

    @abstractmethod
    async def upsert_payment_ledger(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """결제 원장 기록 (공급자 + 거래 ID 기준 upsert)"""
        pass

    @abstractmethod
    async def has_processed_webhook_event(self, provider: str, event_id: str) -> bool:
        """웹훅 이벤트 처리 여부 확인"""
        pass

    @abstractmethod
    async def record_webhook_event(self, provider: str, event_id: str, status: str, payload: Dict[str, Any] = None) -> bool:
        """웹훅 이벤트 처리 기록"""
        pass

    @abstractmethod
    async def log_system_event(self, user_id: str = None, event_type: str = 'info', event_data: Dict = None) -> bool:
        """시스템 이벤트 로깅"""
        pass

class IPlanService(ABC):
    """플랜 서비스 인터페이스"""

    @abstractmethod
    async def apply_plan_upgrade(self, user_id: str, plan_identifier: Optional[str], **kwargs) -> Dict[str, Any]:
        """플랜 업그레이드/설정"""
        pass

    @abstractmethod
    async def downgrade_to_free(self, user_id: str, reason: str, **kwargs) -> Dict[str, Any]:
        """무료 플랜으로 다운그레이드"""
        pass

    @abstractmethod
    async def record_payment(self, user_id: str, payment: Any, **kwargs) -> Dict[str, Any]:
        """플랜 변경 없이 최근 결제만 갱신"""
        pass

    @abstractmethod
    async def get_effective_plan(self, user_id: str, **kwargs) -> Dict[str, Any]:
        """만료 여부를 반영한 현재 플랜 조회"""
        pass
