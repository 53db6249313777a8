import asyncio
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId

from app.core.exceptions import BusinessRuleError, ResourceNotFoundError
from app.schemas.coupon import CouponCreate, CouponUpdate
from app.services import coupon_service, plan_service

NOW = datetime.utcnow()

ORO = {
    "id": str(ObjectId()),
    "code": "ORO",
    "name": "Plan Oro",
    "level": 2,
    "active": True,
    "variants": [{"days": 30, "price": 120000}],
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
        "plan_code": None,
        "variant_days": None,
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


def fake_coupons(stored=None):
    return SimpleNamespace(
        find_one=AsyncMock(return_value=stored),
        insert_one=AsyncMock(return_value=SimpleNamespace(inserted_id=ObjectId())),
        find_one_and_update=AsyncMock(return_value=None),
    )


@pytest.fixture
def coupons(monkeypatch):
    collection = fake_coupons()
    monkeypatch.setattr(coupon_service, "get_coupons_collection", lambda: collection)
    return collection


# Dates sent with a UTC designator

def test_coupon_create_schema_stores_naive_utc():
    data = CouponCreate(
        code="summer", name="Summer", type="percentage", value=20,
        valid_from="2024-01-01T00:00:00Z", valid_until="2099-01-01T00:00:00+02:00",
    )
    assert data.valid_from == datetime(2024, 1, 1)
    assert data.valid_from.tzinfo is None
    assert data.valid_until == datetime(2098, 12, 31, 22)


def test_create_coupon_with_utc_dates(coupons):
    data = CouponCreate(
        code="summer", name="Summer", type="percentage", value=20,
        valid_from="2024-01-01T00:00:00Z", valid_until="2099-01-01T00:00:00Z",
    )
    coupon = run(coupon_service.create_coupon(data, created_by="admin"))

    stored = coupons.insert_one.call_args.args[0]
    assert stored["valid_from"].tzinfo is None
    assert stored["current_uses"] == 0
    assert coupon["code"] == "SUMMER"
    assert coupon["is_valid"] is True


def test_update_coupon_with_utc_date_against_stored_naive(coupons):
    current = coupon_doc()
    coupons.find_one.return_value = current
    coupons.find_one_and_update.side_effect = lambda query, update, return_document: {**current, **update["$set"]}

    updated = run(coupon_service.update_coupon(str(current["_id"]), CouponUpdate(valid_until="2099-06-01T12:00:00Z")))

    changes = coupons.find_one_and_update.call_args.args[1]["$set"]
    assert changes["valid_until"] == datetime(2099, 6, 1, 12)
    assert changes["valid_until"].tzinfo is None
    assert updated["is_valid"] is True


def test_create_coupon_route_accepts_utc_dates(client, admin_headers, coupons):
    response = client.post(
        "/api/coupons",
        headers=admin_headers,
        json={
            "code": "WINTER", "name": "Winter", "type": "fixed_amount", "value": 5000,
            "valid_from": "2024-01-01T00:00:00Z", "valid_until": "2099-01-01T00:00:00Z",
        },
    )
    assert response.status_code == 201
    assert response.json()["data"]["code"] == "WINTER"


# validate_coupon

def test_validate_unknown_coupon(coupons):
    result = run(coupon_service.validate_coupon("nope"))
    assert result["is_valid"] is False
    assert result["error_code"] == "COUPON_NOT_FOUND"


def test_validate_inactive_coupon(coupons):
    coupons.find_one.return_value = coupon_doc(is_active=False)
    assert run(coupon_service.validate_coupon("gold50"))["error_code"] == "COUPON_INACTIVE"


def test_validate_coupon_outside_allow_list(coupons):
    coupons.find_one.return_value = coupon_doc(valid_plan_ids=["ORO"])
    result = run(coupon_service.validate_coupon("gold50", plan_code="diamante"))
    assert result["error_code"] == "COUPON_NOT_APPLICABLE"


def test_validate_coupon_for_listed_plan(coupons):
    coupons.find_one.return_value = coupon_doc(valid_plan_ids=["ORO"])
    result = run(coupon_service.validate_coupon("gold50", plan_code="oro"))
    assert result["is_valid"] is True
    assert result["coupon"]["code"] == "GOLD50"
    assert result["coupon"]["remaining_uses"] == -1


# apply_coupon

def test_apply_coupon_prices_variant(monkeypatch, coupons):
    monkeypatch.setattr(plan_service, "get_plan_by_code", AsyncMock(return_value=ORO))
    coupons.find_one.return_value = coupon_doc()

    result = run(coupon_service.apply_coupon("gold50", "oro", 30))
    assert result["success"] is True
    assert result["original_price"] == 120000
    assert result["final_price"] == 60000
    assert result["coupon_code"] == "GOLD50"
    assert result["variant_days"] == 30
    coupons.find_one_and_update.assert_not_called()


def test_apply_expired_coupon_keeps_price(monkeypatch, coupons):
    monkeypatch.setattr(plan_service, "get_plan_by_code", AsyncMock(return_value=ORO))
    coupons.find_one.return_value = coupon_doc(valid_until=NOW - timedelta(hours=1))

    result = run(coupon_service.apply_coupon("gold50", "oro", 30))
    assert result["success"] is False
    assert result["final_price"] == result["original_price"] == 120000


# redeem_coupon

def test_redeem_increments_with_conditional_update(coupons):
    coupons.find_one_and_update.return_value = coupon_doc(max_uses=5, current_uses=3)

    redeemed = run(coupon_service.redeem_coupon("gold50"))

    query, update = coupons.find_one_and_update.call_args.args
    assert query["code"] == "GOLD50"
    assert query["is_active"] is True
    assert {"max_uses": -1} in query["$or"]
    assert update["$inc"] == {"current_uses": 1}
    assert redeemed["remaining_uses"] == 2


def test_redeem_unlimited_coupon(coupons):
    coupons.find_one_and_update.return_value = coupon_doc(max_uses=-1, current_uses=1000)
    redeemed = run(coupon_service.redeem_coupon("gold50"))
    assert redeemed["is_exhausted"] is False
    assert redeemed["remaining_uses"] == -1


def test_redeem_exhausted_coupon(coupons):
    coupons.find_one.return_value = coupon_doc(max_uses=2, current_uses=2)
    with pytest.raises(BusinessRuleError) as exc:
        run(coupon_service.redeem_coupon("gold50"))
    assert exc.value.code == "COUPON_EXHAUSTED"


def test_redeem_inactive_coupon(coupons):
    coupons.find_one.return_value = coupon_doc(is_active=False)
    with pytest.raises(BusinessRuleError) as exc:
        run(coupon_service.redeem_coupon("gold50"))
    assert exc.value.code == "COUPON_INACTIVE"


def test_redeem_unknown_coupon(coupons):
    with pytest.raises(ResourceNotFoundError):
        run(coupon_service.redeem_coupon("gold50"))
