"""
데이터베이스 연결 및 CRUD 작업을 위한 헬퍼 모듈

사용자 문서는 필드 단위 부분 업데이트만 수행한다 (대시보드의 프로필 수정과 동시에 일어나도 서로 덮어쓰지 않도록).
"""

from typing import Dict, Optional, Any
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from supabase import Client
import logging

from core.interfaces import IDatabaseHelper
from core.responses import StoreWriteFailure

logger = logging.getLogger(__name__)


def _serialize(value: Any) -> Any:
    """supabase로 전송 가능한 JSON 값으로 변환"""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


class DatabaseHelper(IDatabaseHelper):
    def __init__(
        self,
        supabase_client: Client,
        admin_client: Client = None,
        *,
        users_table: str = 'users',
        pending_payments_table: str = 'pending_payments',
        payment_ledger_table: str = 'payment_ledger',
        system_logs_table: str = 'system_logs',
    ):
        self.supabase = supabase_client
        self.admin_client = admin_client or supabase_client
        self.users_table = users_table
        self.pending_payments_table = pending_payments_table
        self.payment_ledger_table = payment_ledger_table
        self.system_logs_table = system_logs_table

    def _get_client(self, use_admin: bool = False):
        """적절한 클라이언트 반환 - 웹훅 경로는 RLS를 우회해야 하므로 admin client 사용"""
        return self.admin_client if use_admin or self.admin_client else self.supabase

    # 사용자 문서
    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """사용자 ID로 조회"""
        if not user_id:
            return None
        client = self._get_client(use_admin=True)
        result = client.table(self.users_table).select('*').eq('id', user_id).limit(1).execute()
        return result.data[0] if result.data else None

    async def find_user_by_field(self, field: str, value: Any) -> Optional[Dict[str, Any]]:
        """필드 값이 정확히 일치하는 첫 번째 사용자 조회 (대소문자 구분)"""
        if value is None or value == '':
            return None
        client = self._get_client(use_admin=True)
        result = client.table(self.users_table).select('*').eq(field, value).limit(1).execute()
        return result.data[0] if result.data else None

    async def update_user(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """사용자 문서 부분 업데이트"""
        try:
            client = self._get_client(use_admin=True)
            result = (
                client.table(self.users_table)
                .update(_serialize(fields))
                .eq('id', user_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"사용자 업데이트 실패: user_id={user_id} fields={sorted(fields)} error={e}")
            raise StoreWriteFailure("update_user", user_id, e) from e

        if not result.data:
            logger.error(f"사용자 업데이트 결과 없음: user_id={user_id}")
            raise StoreWriteFailure("update_user", user_id)
        return result.data[0]

    async def increment_user_coins(self, user_id: str, delta: int) -> int:
        """코인 잔액 원자적 증감 (RPC, 대시보드의 코인 사용과 동시에 일어나도 덮어쓰지 않음)"""
        try:
            client = self._get_client(use_admin=True)
            rpc_res = client.rpc('increment_user_coins', {'p_user_id': user_id, 'p_delta': int(delta)}).execute()
        except Exception as e:
            logger.error(f"코인 잔액 변경 실패: user_id={user_id} delta={delta} error={e}")
            raise StoreWriteFailure("increment_user_coins", user_id, e) from e

        new_balance = rpc_res.data if hasattr(rpc_res, 'data') else None
        if new_balance is None:
            raise StoreWriteFailure("increment_user_coins", user_id)
        return int(new_balance)

    # 결제 보류 / 원장
    async def create_pending_payment(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """매칭 실패 결제 보류 기록 생성"""
        payload = {'created_at': datetime.now(timezone.utc), **record}
        try:
            client = self._get_client(use_admin=True)
            result = client.table(self.pending_payments_table).insert(_serialize(payload)).execute()
        except Exception as e:
            logger.error(f"보류 결제 기록 실패: {e}")
            raise StoreWriteFailure("create_pending_payment", record.get('reference_id'), e) from e

        if not result.data:
            raise StoreWriteFailure("create_pending_payment", record.get('reference_id'))
        return result.data[0]

    async def get_payment_ledger_entry(self, provider: str, reference_id: str) -> Optional[Dict[str, Any]]:
        """공급자 거래 ID로 원장 기록 조회"""
        if not reference_id:
            return None
        client = self._get_client(use_admin=True)
        result = (
            client.table(self.payment_ledger_table)
            .select('*')
            .eq('provider', provider)
            .eq('reference_id', reference_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    async def upsert_payment_ledger(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """결제 원장 기록 (provider, reference_id 기준으로 중복 없이 저장)"""
        try:
            client = self._get_client(use_admin=True)
            result = (
                client.table(self.payment_ledger_table)
                .upsert(_serialize(entry), on_conflict='provider,reference_id')
                .execute()
            )
        except Exception as e:
            logger.error(f"결제 원장 기록 실패: {e}")
            raise StoreWriteFailure("upsert_payment_ledger", entry.get('reference_id'), e) from e

        return result.data[0] if result.data else {}

    # 시스템 로그 / 웹훅 처리 기록
    async def log_system_event(self, user_id: str = None, event_type: str = 'info',
                               event_data: Dict = None) -> bool:
        """시스템 이벤트 로그 기록"""
        try:
            log_data = {
                'user_id': user_id,
                'event_type': event_type,
                'event_data': _serialize(event_data or {}),
            }

            result = self._get_client(use_admin=True).table(self.system_logs_table).insert(log_data).execute()
            return len(result.data) > 0
        except Exception as e:
            logger.error(f"시스템 로그 기록 실패: {e}")
            return False

    async def has_processed_webhook_event(self, provider: str, event_id: str) -> bool:
        """지정한 공급자 웹훅 이벤트가 이미 처리되었는지 확인"""
        try:
            if not event_id:
                return False

            event_type = f"{provider}_webhook"
            client = self._get_client(use_admin=True)
            result = (
                client.table(self.system_logs_table)
                .select('id')
                .eq('event_type', event_type)
                .contains('event_data', {'event_id': event_id})
                .limit(1)
                .execute()
            )
            return bool(result.data)
        except Exception as e:
            logger.error(f"웹훅 이벤트 중복 확인 실패: {e}")
            return False

    async def record_webhook_event(self, provider: str, event_id: str, status: str, payload: Dict[str, Any] = None) -> bool:
        """웹훅 이벤트 처리 기록"""
        if not event_id:
            return False

        event_payload = {
            'event_id': event_id,
            'status': status,
        }
        if payload:
            event_payload['payload'] = payload

        return await self.log_system_event(event_type=f"{provider}_webhook", event_data=event_payload)
