"""공용 테스트 픽스처 - 네트워크 없이 메모리 저장소로 동작"""
import copy
import json
from datetime import datetime, timezone

import pytest

from core.config import WebhookConfig
from core.interfaces import IDatabaseHelper
from core.responses import StoreWriteFailure
from services.flutterwave_webhook_service import FlutterwaveWebhookService
from services.plan_service import PlanService
from services.signature_verifier import build_signature_header
from services.stripe_webhook_service import StripeWebhookService

TEST_SECRET = "whsec_test_secret"
TEST_FLW_HASH = "flw_test_hash"
FIXED_NOW = datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc)


class InMemoryDbHelper(IDatabaseHelper):
    """DatabaseHelper 대역 (사용자 문서는 dict, 쓰기는 필드 단위 병합)"""

    def __init__(self, users=None):
        self.users = {u["id"]: dict(u) for u in (users or [])}
        self.pending_payments = []
        self.ledger = {}
        self.system_logs = []
        self.fail_updates = False
        self.fail_pending = False
        self.update_calls = []

    async def get_user(self, user_id):
        user = self.users.get(user_id)
        return copy.deepcopy(user) if user else None

    async def find_user_by_field(self, field, value):
        if value is None or value == "":
            return None
        for user in self.users.values():
            if user.get(field) == value:
                return copy.deepcopy(user)
        return None

    async def update_user(self, user_id, fields):
        self.update_calls.append((user_id, dict(fields)))
        if self.fail_updates:
            raise StoreWriteFailure("update_user", user_id)
        if user_id not in self.users:
            raise StoreWriteFailure("update_user", user_id)
        self.users[user_id].update(copy.deepcopy(fields))
        return copy.deepcopy(self.users[user_id])

    async def increment_user_coins(self, user_id, delta):
        if user_id not in self.users:
            raise StoreWriteFailure("increment_user_coins", user_id)
        user = self.users[user_id]
        user["coins"] = int(user.get("coins") or 0) + delta
        return user["coins"]

    async def get_payment_ledger_entry(self, provider, reference_id):
        entry = self.ledger.get((provider, reference_id))
        return dict(entry) if entry else None

    async def create_pending_payment(self, record):
        if self.fail_pending:
            raise StoreWriteFailure("create_pending_payment", record.get("reference_id"))
        row = {"id": f"pending-{len(self.pending_payments) + 1}", **record}
        self.pending_payments.append(row)
        return row

    async def upsert_payment_ledger(self, entry):
        self.ledger[(entry["provider"], entry["reference_id"])] = dict(entry)
        return dict(entry)

    async def log_system_event(self, user_id=None, event_type="info", event_data=None):
        self.system_logs.append({"user_id": user_id, "event_type": event_type, "event_data": event_data or {}})
        return True

    async def has_processed_webhook_event(self, provider, event_id):
        return any(
            log["event_type"] == f"{provider}_webhook" and log["event_data"].get("event_id") == event_id
            for log in self.system_logs
        )

    async def record_webhook_event(self, provider, event_id, status, payload=None):
        data = {"event_id": event_id, "status": status}
        if payload:
            data["payload"] = payload
        return await self.log_system_event(event_type=f"{provider}_webhook", event_data=data)

    def events(self, event_type):
        return [log for log in self.system_logs if log["event_type"] == event_type]


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def webhook_config():
    return WebhookConfig(
        signing_secret=TEST_SECRET,
        tolerance_seconds=300,
        price_plan_map={"price_1Basic": "basic", "price_1Pro": "pro", "price_1Premium": "premium"},
        unmapped_plan_fallback="pro",
        flutterwave_secret_hash=TEST_FLW_HASH,
    )


@pytest.fixture
def db():
    return InMemoryDbHelper(
        users=[
            {"id": "u123", "email": "ada@example.com", "plan": "free"},
            {"id": "u456", "email": "grace@example.com", "plan": "pro", "payment_provider_customer_id": "cus_9"},
        ]
    )


@pytest.fixture
def plan_service(db, webhook_config):
    return PlanService(db, webhook_config)


@pytest.fixture
def stripe_service(db, plan_service):
    return StripeWebhookService(db, plan_service)


@pytest.fixture
def flutterwave_service(db, plan_service):
    return FlutterwaveWebhookService(db, plan_service, secret_hash=TEST_FLW_HASH)


@pytest.fixture
def stripe_envelope():
    """Stripe 이벤트 봉투 생성기"""

    def _build(event_type, obj, event_id="evt_1"):
        envelope = {"type": event_type, "data": {"object": obj}}
        if event_id:
            envelope["id"] = event_id
        return envelope

    return _build


@pytest.fixture
def sign():
    """(raw bytes, stripe-signature 헤더) 생성기"""

    def _sign(envelope, timestamp=None, secret=TEST_SECRET):
        raw = json.dumps(envelope).encode("utf-8")
        return raw, build_signature_header(secret, raw, timestamp)

    return _sign
