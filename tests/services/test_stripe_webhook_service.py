"""StripeWebhookService 시나리오 테스트"""
from datetime import timedelta

import pytest

from core.responses import StoreWriteFailure
from schemas.webhook import parse_stripe_event
from services.webhook_reconciler import WebhookReconciler


def _checkout(reference=None, customer="cus_1", email=None, amount=199, currency="eur", **extra):
    obj = {
        "id": "cs_test_1",
        "customer": customer,
        "amount_total": amount,
        "currency": currency,
        "payment_status": "paid",
    }
    if reference is not None:
        obj["client_reference_id"] = reference
    if email is not None:
        obj["customer_details"] = {"email": email}
    obj.update(extra)
    return obj


@pytest.mark.asyncio
async def test_basic_checkout_upgrades_user(db, stripe_service, stripe_envelope, now):
    event = parse_stripe_event(stripe_envelope("checkout.session.completed", _checkout("u123_basic")))

    outcome = await stripe_service.process_event(event, now=now)

    user = db.users["u123"]
    assert outcome["status"] == "processed"
    assert outcome["action"] == "plan_upgraded"
    assert outcome["user_id"] == "u123"
    assert user["plan"] == "basic"
    assert user["plan_expiry_date"] == now + timedelta(days=7)
    assert user["payment_provider_customer_id"] == "cus_1"
    assert user["last_payment"]["amount"] == 1.99
    assert user["last_payment"]["currency"] == "eur"
    assert ("stripe", "cs_test_1") in db.ledger


@pytest.mark.asyncio
async def test_unmapped_plan_in_token_falls_back_to_pro(db, stripe_service, stripe_envelope, now):
    event = parse_stripe_event(stripe_envelope("checkout.session.completed", _checkout("u123_mystery")))

    await stripe_service.process_event(event, now=now)

    assert db.users["u123"]["plan"] == "pro"
    assert len(db.events("plan_identifier_unmapped")) == 1


@pytest.mark.asyncio
async def test_same_checkout_twice_without_event_id_gives_same_state(db, stripe_service, stripe_envelope, now):
    envelope = stripe_envelope("checkout.session.completed", _checkout("u123_pro"), event_id=None)

    await stripe_service.process_event(parse_stripe_event(envelope), now=now)
    first = dict(db.users["u123"])
    await stripe_service.process_event(parse_stripe_event(envelope), now=now)

    assert db.users["u123"] == first
    assert len(db.ledger) == 1


@pytest.mark.asyncio
async def test_checkout_with_subscription_marks_active(db, stripe_service, stripe_envelope, now):
    obj = _checkout("u123_premium", subscription="sub_1")

    await stripe_service.process_event(parse_stripe_event(stripe_envelope("checkout.session.completed", obj)), now=now)

    assert db.users["u123"]["plan"] == "premium"
    assert db.users["u123"]["payment_provider_subscription_status"] == "active"


@pytest.mark.asyncio
async def test_checkout_matches_by_email_when_no_token(db, stripe_service, stripe_envelope, now):
    obj = _checkout(customer="cus_new", email="ada@example.com", metadata={"plan": "pro"})

    outcome = await stripe_service.process_event(
        parse_stripe_event(stripe_envelope("checkout.session.completed", obj)), now=now
    )

    assert outcome["details"]["strategy"] == "email"
    assert db.users["u123"]["plan"] == "pro"
    assert db.users["u123"]["payment_provider_customer_id"] == "cus_new"


@pytest.mark.asyncio
async def test_malformed_token_falls_through_to_customer_id(db, stripe_service, stripe_envelope, now):
    obj = _checkout("not-a-token", customer="cus_9", metadata={"plan": "basic"})

    await stripe_service.process_event(parse_stripe_event(stripe_envelope("checkout.session.completed", obj)), now=now)

    assert db.users["u456"]["plan"] == "basic"


@pytest.mark.asyncio
async def test_unknown_customer_creates_one_pending_payment(db, stripe_service, stripe_envelope, now):
    obj = _checkout(customer="cus_unknown", email="nobody@example.com", metadata={"plan": "basic"})
    before = {uid: dict(user) for uid, user in db.users.items()}

    outcome = await stripe_service.process_event(
        parse_stripe_event(stripe_envelope("checkout.session.completed", obj)), now=now
    )

    assert outcome["status"] == "processed"
    assert outcome["action"] == "pending_payment"
    assert len(db.pending_payments) == 1
    pending = db.pending_payments[0]
    assert pending["email"] == "nobody@example.com"
    assert pending["customer_id"] == "cus_unknown"
    assert pending["plan"] == "basic"
    assert pending["amount"] == 1.99
    assert db.users == before


@pytest.mark.asyncio
async def test_pending_payment_write_failure_is_reported_not_raised(db, stripe_service, stripe_envelope, now):
    db.fail_pending = True
    obj = _checkout(customer="cus_unknown", email="nobody@example.com", metadata={"plan": "basic"})

    outcome = await stripe_service.process_event(
        parse_stripe_event(stripe_envelope("checkout.session.completed", obj)), now=now
    )

    assert outcome["status"] == "processed"
    assert outcome["action"] == "pending_payment"
    assert outcome["details"]["pending_payment"] is False
    assert db.pending_payments == []
    assert db.update_calls == []


@pytest.mark.asyncio
async def test_coin_checkout_credits_balance(db, stripe_service, stripe_envelope, now):
    obj = _checkout("u123_coins_bestValue", amount=699)

    outcome = await stripe_service.process_event(
        parse_stripe_event(stripe_envelope("checkout.session.completed", obj)), now=now
    )

    assert outcome["action"] == "coins_credited"
    assert db.users["u123"]["coins"] == 1200
    assert db.users["u123"]["plan"] == "free"
    assert db.ledger[("stripe", "cs_test_1")]["kind"] == "coins"


@pytest.mark.asyncio
async def test_subscription_deleted_downgrades_premium(db, stripe_service, stripe_envelope, plan_service, now):
    await plan_service.apply_plan_upgrade("u456", "premium", customer_id="cus_9", now=now)
    event = parse_stripe_event(
        stripe_envelope("customer.subscription.deleted", {"id": "sub_1", "customer": "cus_9", "status": "canceled"})
    )

    await stripe_service.process_event(event, now=now)

    user = db.users["u456"]
    assert user["plan"] == "free"
    assert user["plan_expiry_date"] is None
    assert user["payment_provider_subscription_status"] == "subscription_cancelled"
    assert user["payment_provider_customer_id"] == "cus_9"


@pytest.mark.asyncio
async def test_invoice_payment_failed_downgrades(db, stripe_service, stripe_envelope, now):
    event = parse_stripe_event(stripe_envelope("invoice.payment_failed", {"id": "in_1", "customer": "cus_9"}))

    await stripe_service.process_event(event, now=now)

    assert db.users["u456"]["plan"] == "free"
    assert db.users["u456"]["payment_provider_subscription_status"] == "payment_failed"


@pytest.mark.asyncio
async def test_invoice_succeeded_updates_last_payment_only(db, stripe_service, stripe_envelope, now):
    db.users["u456"]["plan_expiry_date"] = now + timedelta(days=2)
    obj = {"id": "in_2", "customer": "cus_9", "amount_paid": 399, "currency": "eur"}

    outcome = await stripe_service.process_event(
        parse_stripe_event(stripe_envelope("invoice.payment_succeeded", obj)), now=now
    )

    user = db.users["u456"]
    assert outcome["action"] == "payment_recorded"
    assert user["plan"] == "pro"
    assert user["plan_expiry_date"] == now + timedelta(days=2)
    assert user["last_payment"]["reference_id"] == "in_2"
    assert user["last_payment"]["amount"] == 3.99
    assert db.ledger[("stripe", "in_2")]["kind"] == "renewal"


@pytest.mark.asyncio
async def test_subscription_updated_active_sets_plan_from_price(db, stripe_service, stripe_envelope, now):
    obj = {
        "id": "sub_1",
        "customer": "cus_9",
        "status": "active",
        "items": {"data": [{"price": {"id": "price_1Premium"}}]},
    }

    outcome = await stripe_service.process_event(
        parse_stripe_event(stripe_envelope("customer.subscription.updated", obj)), now=now
    )

    assert outcome["action"] == "plan_updated"
    assert db.users["u456"]["plan"] == "premium"
    assert db.users["u456"]["payment_provider_subscription_status"] == "active"
    assert "last_payment" not in db.users["u456"]


@pytest.mark.asyncio
async def test_subscription_updated_unknown_price_keeps_current_plan(db, stripe_service, stripe_envelope, now):
    obj = {
        "id": "sub_1",
        "customer": "cus_9",
        "status": "active",
        "items": {"data": [{"price": {"id": "price_unknown"}}]},
    }

    await stripe_service.process_event(parse_stripe_event(stripe_envelope("customer.subscription.updated", obj)), now=now)

    assert db.users["u456"]["plan"] == "pro"
    assert db.events("plan_identifier_unmapped") == []


@pytest.mark.asyncio
async def test_subscription_updated_past_due_records_status_only(db, stripe_service, stripe_envelope, now):
    obj = {"id": "sub_1", "customer": "cus_9", "status": "past_due"}

    outcome = await stripe_service.process_event(
        parse_stripe_event(stripe_envelope("customer.subscription.updated", obj)), now=now
    )

    assert outcome["action"] == "status_recorded"
    assert db.users["u456"]["plan"] == "pro"
    assert db.users["u456"]["payment_provider_subscription_status"] == "past_due"


@pytest.mark.asyncio
async def test_unknown_event_type_is_acknowledged(db, stripe_service, stripe_envelope, now):
    event = parse_stripe_event(stripe_envelope("customer.created", {"id": "cus_1"}))

    outcome = await stripe_service.process_event(event, now=now)

    assert outcome["status"] == "ignored"
    assert db.update_calls == []
    assert db.events("stripe_webhook") == []


@pytest.mark.asyncio
async def test_downgrade_for_unknown_customer_is_acknowledged(db, stripe_service, stripe_envelope, now):
    event = parse_stripe_event(stripe_envelope("invoice.payment_failed", {"id": "in_1", "customer": "cus_ghost"}))

    outcome = await stripe_service.process_event(event, now=now)

    assert outcome["action"] == "user_not_found"
    assert db.update_calls == []
    assert db.pending_payments == []


@pytest.mark.asyncio
async def test_duplicate_event_is_not_reapplied(db, stripe_service, stripe_envelope, now):
    db.users["u123"]["coins"] = 0
    envelope = stripe_envelope("checkout.session.completed", _checkout("u123_coins_starter"), event_id="evt_dup")

    first = await stripe_service.process_event(parse_stripe_event(envelope), now=now)
    second = await stripe_service.process_event(parse_stripe_event(envelope), now=now)

    assert first["status"] == "processed"
    assert second["status"] == "duplicate"
    assert db.users["u123"]["coins"] == 100


@pytest.mark.asyncio
async def test_store_failure_propagates_and_event_is_not_recorded(db, stripe_service, stripe_envelope, now):
    db.fail_updates = True
    event = parse_stripe_event(stripe_envelope("checkout.session.completed", _checkout("u123_pro"), event_id="evt_fail"))

    with pytest.raises(StoreWriteFailure):
        await stripe_service.process_event(event, now=now)

    assert db.events("stripe_webhook") == []


@pytest.mark.asyncio
async def test_coin_checkout_redelivered_with_new_event_id_credits_once(db, stripe_service, stripe_envelope, now):
    obj = _checkout("u123_coins_starter")

    await stripe_service.process_event(parse_stripe_event(stripe_envelope("checkout.session.completed", obj)), now=now)
    outcome = await stripe_service.process_event(
        parse_stripe_event(stripe_envelope("checkout.session.completed", obj, event_id="evt_2")), now=now
    )

    assert outcome["details"]["duplicate"] is True
    assert db.users["u123"]["coins"] == 100


def test_reconciler_base_cannot_be_instantiated(db, plan_service):
    with pytest.raises(TypeError):
        WebhookReconciler(db, plan_service)
