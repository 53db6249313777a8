from datetime import datetime

import pytest
from pydantic import ValidationError

from app.schemas.coupon import CouponCreate, CouponUpdate

VALID_FROM = datetime(2024, 1, 1)
VALID_UNTIL = datetime(2024, 12, 31)


def make(**overrides):
    data = {
        "code": " gold50 ",
        "name": "Gold 50",
        "type": "percentage",
        "value": 50,
        "valid_from": VALID_FROM,
        "valid_until": VALID_UNTIL,
    }
    data.update(overrides)
    return CouponCreate(**data)


def test_code_is_normalized_to_upper_case():
    assert make().code == "GOLD50"


def test_type_is_stored_as_plain_string():
    assert make().model_dump()["type"] == "percentage"


@pytest.mark.parametrize("code", ["", "GOLD 50", "GOLD!", "X" * 51])
def test_invalid_codes_are_rejected(code):
    with pytest.raises(ValidationError):
        make(code=code)


def test_percentage_above_100_is_rejected():
    with pytest.raises(ValidationError):
        make(value=101)


def test_fixed_amount_can_exceed_100():
    assert make(type="fixed_amount", value=30000).value == 30000


def test_plan_assignment_requires_plan_and_days():
    with pytest.raises(ValidationError):
        make(type="plan_assignment", value=0)
    coupon = make(type="plan_assignment", value=0, plan_code="diamante", variant_days=7)
    assert coupon.plan_code == "DIAMANTE"


def test_dates_must_be_ordered():
    with pytest.raises(ValidationError):
        make(valid_from=VALID_UNTIL, valid_until=VALID_FROM)


@pytest.mark.parametrize("max_uses,ok", [(-1, True), (1, True), (100, True), (0, False), (-5, False)])
def test_max_uses(max_uses, ok):
    if ok:
        assert make(max_uses=max_uses).max_uses == max_uses
    else:
        with pytest.raises(ValidationError):
            make(max_uses=max_uses)


def test_update_only_dumps_provided_fields():
    update = CouponUpdate(name="Renamed")
    assert update.model_dump(exclude_unset=True) == {"name": "Renamed"}
