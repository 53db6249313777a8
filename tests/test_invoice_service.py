import asyncio
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId

from app.core.exceptions import BusinessRuleError, ConflictError
from app.services import coupon_service, invoice_service, payment_service, plan_service, subscription_service

NOW = datetime.utcnow()
USER_ID = "64b7f0c2a1b2c3d4e5f60718"

ORO = {
    "id": str(ObjectId()),
    "code": "ORO",
    "name": "Plan Oro",
    "level": 2,
    "active": True,
    "variants": [{"days": 30, "price": 120000}],
}
IMPULSO = {
    "id": str(ObjectId()),
    "code": "IMPULSO",
    "name": "Upgrade Impulso",
    "duration_hours": 48,
    "price": 20000,
    "active": True,
}


def run(coro):
    return asyncio.run(coro)


def coupon_doc(**overrides):
    doc = {
        "_id": ObjectId(),
        "code": "GOLD50",
        "name": "Gold 50",
        "type": "percentage",
        "value": 50,
        "valid_plan_ids": [],
        "valid_upgrade_ids": [],
        "max_uses": -1,
        "current_uses": 0,
        "valid_from": NOW - timedelta(days=1),
        "valid_until": NOW + timedelta(days=30),
        "is_active": True,
    }
    doc.update(overrides)
    return doc


def invoice_doc(**overrides):
    doc = {
        "_id": ObjectId(),
        "profile_id": ObjectId(),
        "user_id": ObjectId(USER_ID),
        "status": "pending",
        "items": [{"type": "plan", "code": "ORO", "name": "Plan Oro", "days": 30, "price": 120000, "quantity": 1}],
        "total_amount": 120000,
        "coupon": None,
        "notes": None,
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def db(monkeypatch):
    profile = {"_id": ObjectId(), "user_id": ObjectId(USER_ID), "is_deleted": False}
    collections = SimpleNamespace(
        profile=profile,
        profiles=SimpleNamespace(find_one=AsyncMock(return_value=profile)),
        invoices=SimpleNamespace(
            find_one=AsyncMock(return_value=None),
            insert_one=AsyncMock(return_value=SimpleNamespace(inserted_id=ObjectId())),
            find_one_and_update=AsyncMock(return_value=None),
        ),
        coupons=SimpleNamespace(find_one=AsyncMock(return_value=None)),
    )
    monkeypatch.setattr(invoice_service, "get_profiles_collection", lambda: collections.profiles)
    monkeypatch.setattr(invoice_service, "get_invoices_collection", lambda: collections.invoices)
    monkeypatch.setattr(coupon_service, "get_coupons_collection", lambda: collections.coupons)
    monkeypatch.setattr(plan_service, "get_plan_by_code", AsyncMock(return_value=ORO))
    monkeypatch.setattr(plan_service, "get_upgrade_by_code", AsyncMock(return_value=IMPULSO))
    return collections


# generate_invoice

def test_plan_invoice_with_coupon_records_amounts(db):
    db.coupons.find_one.return_value = coupon_doc()

    invoice = run(invoice_service.generate_invoice(str(db.profile["_id"]), USER_ID, "oro", 30, coupon_code="gold50"))

    assert invoice["status"] == "pending"
    assert invoice["total_amount"] == 60000
    assert invoice["coupon"]["original_amount"] == 120000
    assert invoice["coupon"]["discount_amount"] == 60000
    assert invoice["coupon"]["final_amount"] == 60000
    assert invoice["profile_id"] == str(db.profile["_id"])
    assert invoice["expires_at"] > NOW


def test_upgrade_only_invoice_discounts_the_upgrade(db):
    db.coupons.find_one.return_value = coupon_doc(type="fixed_amount", value=5000, valid_upgrade_ids=["IMPULSO"])

    invoice = run(invoice_service.generate_invoice(
        str(db.profile["_id"]), USER_ID, upgrade_codes=["impulso"], coupon_code="gold50"
    ))

    assert invoice["items"][0]["type"] == "upgrade"
    assert invoice["items"][0]["days"] == 2
    assert invoice["total_amount"] == 15000
    assert invoice["coupon"]["discount_amount"] == 5000


def test_plan_only_coupon_rejected_on_upgrade_invoice(db):
    db.coupons.find_one.return_value = coupon_doc(valid_plan_ids=["ORO"])

    with pytest.raises(BusinessRuleError) as exc:
        run(invoice_service.generate_invoice(
            str(db.profile["_id"]), USER_ID, upgrade_codes=["impulso"], coupon_code="gold50"
        ))
    assert exc.value.code == "COUPON_NOT_APPLICABLE"
    db.invoices.insert_one.assert_not_called()


# Status transitions

def test_paid_transition_runs_payment_processing_once(db, monkeypatch):
    stored = invoice_doc()
    db.invoices.find_one.return_value = stored
    db.invoices.find_one_and_update.return_value = dict(stored, status="paid", paid_at=NOW)
    processing = AsyncMock(return_value={"plan_assigned": "ORO", "errors": []})
    monkeypatch.setattr(payment_service, "process_invoice_payment", processing)

    updated = run(invoice_service.mark_invoice_paid(str(stored["_id"]), payment_method="transfer"))

    query, update = db.invoices.find_one_and_update.call_args.args
    assert query == {"_id": stored["_id"], "status": "pending"}
    assert update["$set"]["payment_method"] == "transfer"
    processing.assert_awaited_once()
    assert processing.call_args.args[0]["id"] == str(stored["_id"])
    assert updated["processing"] == {"plan_assigned": "ORO", "errors": []}


def test_concurrent_status_change_is_rejected(db, monkeypatch):
    stored = invoice_doc()
    db.invoices.find_one.return_value = stored
    # Another caller moved the invoice after it was read
    db.invoices.find_one_and_update.return_value = None
    processing = AsyncMock()
    monkeypatch.setattr(payment_service, "process_invoice_payment", processing)

    with pytest.raises(ConflictError) as exc:
        run(invoice_service.update_invoice_status(str(stored["_id"]), "paid"))

    assert exc.value.details["expected_status"] == "pending"
    processing.assert_not_called()


def test_paid_invoice_cannot_be_paid_again(db, monkeypatch):
    db.invoices.find_one.return_value = invoice_doc(status="paid")
    processing = AsyncMock()
    monkeypatch.setattr(payment_service, "process_invoice_payment", processing)

    with pytest.raises(BusinessRuleError) as exc:
        run(invoice_service.mark_invoice_paid(str(ObjectId())))
    assert exc.value.code == "INVALID_INVOICE_STATUS"
    db.invoices.find_one_and_update.assert_not_called()
    processing.assert_not_called()


def test_processing_failure_keeps_paid_status(db, monkeypatch):
    stored = invoice_doc()
    db.invoices.find_one.return_value = stored
    db.invoices.find_one_and_update.return_value = dict(stored, status="paid")
    monkeypatch.setattr(payment_service, "process_invoice_payment", AsyncMock(side_effect=RuntimeError("db down")))

    updated = run(invoice_service.mark_invoice_paid(str(stored["_id"])))
    assert updated["status"] == "paid"
    assert updated["processing"] is None


# Payment processing

@pytest.fixture
def effects(monkeypatch):
    mocks = SimpleNamespace(
        assign_plan=AsyncMock(return_value={}),
        apply_upgrade=AsyncMock(return_value={}),
        redeem_coupon=AsyncMock(return_value={}),
    )
    monkeypatch.setattr(subscription_service, "assign_plan", mocks.assign_plan)
    monkeypatch.setattr(subscription_service, "apply_upgrade", mocks.apply_upgrade)
    monkeypatch.setattr(coupon_service, "redeem_coupon", mocks.redeem_coupon)
    return mocks


def paid_invoice():
    return {
        "id": str(ObjectId()),
        "profile_id": str(ObjectId()),
        "items": [
            {"type": "plan", "code": "ORO", "days": 30},
            {"type": "upgrade", "code": "IMPULSO", "days": 2},
        ],
        "coupon": {"code": "GOLD50"},
    }


def test_payment_applies_every_item_and_redeems_coupon(effects):
    invoice = paid_invoice()
    result = run(payment_service.process_invoice_payment(invoice))

    effects.assign_plan.assert_awaited_once_with(invoice["profile_id"], "ORO", 30)
    effects.apply_upgrade.assert_awaited_once_with(invoice["profile_id"], "IMPULSO")
    effects.redeem_coupon.assert_awaited_once_with("GOLD50")
    assert result == {
        "plan_assigned": "ORO",
        "upgrades_applied": ["IMPULSO"],
        "coupon_redeemed": "GOLD50",
        "errors": [],
    }


def test_payment_reports_failing_item_and_continues(effects):
    effects.apply_upgrade.side_effect = BusinessRuleError("requires DESTACADO", code="UPGRADE_REQUIREMENTS_NOT_MET")

    result = run(payment_service.process_invoice_payment(paid_invoice()))

    assert result["plan_assigned"] == "ORO"
    assert result["upgrades_applied"] == []
    assert result["coupon_redeemed"] == "GOLD50"
    assert result["errors"] == [{"item": "IMPULSO", "error": "requires DESTACADO"}]


class ListCursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def sort(self, *args):
        return self

    def skip(self, n):
        return self

    def limit(self, n):
        return self

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


def test_list_invoices_date_filters_are_naive_utc(db):
    queries = []

    def find(query):
        queries.append(query)
        return ListCursor([invoice_doc()])

    db.invoices.find = find
    db.invoices.count_documents = AsyncMock(return_value=1)
    from_date = datetime.fromisoformat("2024-01-01T00:00:00+00:00")
    to_date = datetime.fromisoformat("2024-02-01T03:00:00+03:00")

    result = run(invoice_service.list_invoices(from_date=from_date, to_date=to_date))

    assert queries[0]["created_at"] == {"$gte": datetime(2024, 1, 1), "$lte": datetime(2024, 2, 1)}
    assert result["total"] == 1
