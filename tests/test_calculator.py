import itertools
from decimal import Decimal

import pytest

from handymate.core.calculator import calculate_totals, check_stored_total, price_line
from handymate.core.errors import DataIntegrityError, InvalidConfiguration, InvalidLineItem
from handymate.rot_rut import DeductionRules


def _line(kind, qty, price):
    return {"kind": kind, "quantity": qty, "unit_price": price}


def test_example_rot_quote():
    totals = calculate_totals(
        [_line("labor", 10, 650), _line("material", 1, 4000)],
        discount_percent=0,
        vat_rate=25,
        deduction_type="rot",
    )
    assert totals.labor_total == Decimal("6500")
    assert totals.material_total == Decimal("4000")
    assert totals.subtotal == Decimal("10500")
    assert totals.vat_amount == Decimal("2625")
    assert totals.total == Decimal("13125")
    assert totals.deduction_amount == Decimal("1950")
    assert totals.customer_pays == Decimal("11175")


def test_discount_applies_before_vat():
    totals = calculate_totals([_line("service", 1, 1000)], discount_percent=10, vat_rate=25)
    assert totals.discount_amount == Decimal("100")
    assert totals.after_discount == Decimal("900")
    assert totals.vat_amount == Decimal("225")
    assert totals.total == Decimal("1125")


def test_no_float_drift():
    totals = calculate_totals([_line("material", 3, 0.1)], vat_rate=0)
    assert totals.subtotal == Decimal("0.3")


def test_rounding_only_at_presentation():
    totals = calculate_totals([_line("labor", "1.5", "99.99")], vat_rate=25, deduction_type="rut")
    # 149.985 * 1.25 = 187.48125
    assert totals.total == Decimal("187.48125")
    assert totals.rounded()["total"] == Decimal("187")
    assert totals.rounded()["deduction_amount"] == Decimal("75")


def test_deterministic():
    items = [_line("labor", "7.25", "612.40"), _line("material", 3, "19.90"), _line("service", 1, 350)]
    kwargs = dict(discount_percent="12.5", vat_rate=25, deduction_type="rot")
    a = calculate_totals(items, **kwargs).as_dict()
    b = calculate_totals(items, **kwargs).as_dict()
    assert a == b
    assert {k: str(v) for k, v in a.items()} == {k: str(v) for k, v in b.items()}


@pytest.mark.parametrize(
    "labor,material,dtype",
    list(itertools.product(["0", "1", "999.99", "250000"], ["0", "5000", "1000000"], ["rot", "rut"])),
)
def test_deduction_never_exceeds_labor_share(labor, material, dtype):
    totals = calculate_totals(
        [_line("labor", 1, labor), _line("material", 1, material)], deduction_type=dtype
    )
    share = Decimal("0.3") if dtype == "rot" else Decimal("0.5")
    assert totals.deduction_amount <= totals.labor_total * share
    assert totals.deduction_eligible == totals.labor_total


def test_materials_never_qualify():
    only_material = calculate_totals([_line("material", 1, 10000)], deduction_type="rot")
    assert only_material.deduction_amount == 0


def test_rot_cap_is_recorded():
    totals = calculate_totals([_line("labor", 1, 500000)], deduction_type="rot")
    assert totals.deduction_amount == Decimal("50000")
    assert totals.deduction_limited_by_max is True


def test_rules_come_from_configuration():
    rules = DeductionRules(rot_percent=Decimal("50"))
    totals = calculate_totals([_line("labor", 1, 1000)], deduction_type="rot", rules=rules)
    assert totals.deduction_amount == Decimal("500")


@pytest.mark.parametrize("field,value", [("quantity", -1), ("unit_price", "-0.01"), ("quantity", "tio")])
def test_invalid_line_item(field, value):
    line = _line("labor", 1, 100)
    line[field] = value
    with pytest.raises(InvalidLineItem) as exc:
        calculate_totals([line])
    assert exc.value.field == field


def test_unknown_kind():
    with pytest.raises(InvalidLineItem):
        price_line(_line("travel", 1, 100))


@pytest.mark.parametrize("discount,vat", [(-1, 25), (101, 25), (0, -1)])
def test_invalid_configuration(discount, vat):
    with pytest.raises(InvalidConfiguration):
        calculate_totals([_line("labor", 1, 100)], discount_percent=discount, vat_rate=vat)


def test_stored_total_must_match():
    check_stored_total({"kind": "labor", "quantity": "2.00", "unit_price": "100.00", "total": "200.0000"})
    with pytest.raises(DataIntegrityError):
        check_stored_total({"kind": "labor", "quantity": 2, "unit_price": 100, "total": 150})
