"""FlutterwaveWebhookService 테스트"""
import pytest

from core.responses import AuthenticationException
from schemas.webhook import FlutterwaveEvent


def _charge(status="successful", meta=None, email="ada@example.com", tx_ref="premium_abc123"):
    return FlutterwaveEvent.model_validate(
        {
            "event": "charge.completed",
            "data": {
                "id": 285959875,
                "tx_ref": tx_ref,
                "amount": 39.99,
                "currency": "EUR",
                "status": status,
                "customer": {"id": 215604089, "email": email},
                "meta": meta,
            },
        }
    )


def test_verify_hash(flutterwave_service):
    flutterwave_service.verify_hash("flw_test_hash")

    with pytest.raises(AuthenticationException):
        flutterwave_service.verify_hash("wrong")
    with pytest.raises(AuthenticationException):
        flutterwave_service.verify_hash(None)


def test_unconfigured_hash_rejects(db, plan_service):
    from services.flutterwave_webhook_service import FlutterwaveWebhookService

    service = FlutterwaveWebhookService(db, plan_service, secret_hash=None)

    with pytest.raises(AuthenticationException):
        service.verify_hash("anything")


@pytest.mark.asyncio
async def test_successful_charge_uses_tx_ref_prefix_and_email(db, flutterwave_service, now):
    outcome = await flutterwave_service.process_event(_charge(), now=now)

    user = db.users["u123"]
    assert outcome["action"] == "plan_upgraded"
    assert user["plan"] == "premium"
    assert user["last_payment"]["amount"] == 39.99
    assert user["last_payment"]["provider"] == "flutterwave"
    assert ("flutterwave", "premium_abc123") in db.ledger


@pytest.mark.asyncio
async def test_meta_plan_and_user_id_take_precedence(db, flutterwave_service, now):
    event = _charge(meta={"plan": "basic", "customer_id": "u456"}, email="someone@else.com")

    await flutterwave_service.process_event(event, now=now)

    assert db.users["u456"]["plan"] == "basic"
    assert db.users["u123"]["plan"] == "free"


@pytest.mark.asyncio
async def test_unmatched_charge_becomes_pending_payment(db, flutterwave_service, now):
    outcome = await flutterwave_service.process_event(_charge(email="stranger@example.com"), now=now)

    assert outcome["action"] == "pending_payment"
    assert len(db.pending_payments) == 1
    assert db.pending_payments[0]["provider"] == "flutterwave"
    assert db.pending_payments[0]["plan"] == "premium"


@pytest.mark.asyncio
async def test_failed_charge_is_ignored(db, flutterwave_service, now):
    outcome = await flutterwave_service.process_event(_charge(status="failed"), now=now)

    assert outcome["action"] == "charge_ignored"
    assert db.update_calls == []


@pytest.mark.asyncio
async def test_subscription_cancelled_downgrades_by_email(db, flutterwave_service, now):
    event = FlutterwaveEvent.model_validate(
        {
            "event": "subscription.cancelled",
            "data": {"id": 1, "status": "cancelled", "customer": {"email": "grace@example.com"}},
        }
    )

    await flutterwave_service.process_event(event, now=now)

    assert db.users["u456"]["plan"] == "free"
    assert db.users["u456"]["payment_provider_subscription_status"] == "subscription_cancelled"


@pytest.mark.asyncio
async def test_other_events_are_acknowledged(db, flutterwave_service, now):
    event = FlutterwaveEvent.model_validate({"event": "transfer.completed", "data": {"id": 9}})

    outcome = await flutterwave_service.process_event(event, now=now)

    assert outcome["status"] == "ignored"
