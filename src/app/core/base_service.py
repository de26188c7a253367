"""
서비스 기본 클래스
"""
import logging
from typing import Dict, Any
from core.interfaces import IDatabaseHelper

logger = logging.getLogger(__name__)

class BaseService:
    """모든 서비스의 기본 클래스"""

    def __init__(self, db_helper: IDatabaseHelper):
        self.db_helper = db_helper
        self.logger = logging.getLogger(self.__class__.__name__)

    async def log_user_action(self, user_id: str, action: str, data: Dict[str, Any] = None):
        """사용자 액션 로깅 (실패해도 요청은 계속 진행)"""
        try:
            await self.db_helper.log_system_event(
                user_id=user_id,
                event_type=action,
                event_data=data or {},
            )
        except Exception as e:
            self.logger.warning(f"액션 로깅 실패: action={action} user_id={user_id} error={e}")
