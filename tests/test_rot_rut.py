from decimal import Decimal

import pytest

from handymate.core.errors import InvalidConfiguration
from handymate.rot_rut import (
    DeductionRules,
    DeductionType,
    calculate_deduction,
    deduction_label,
    parse_deduction_type,
)


def test_parse_deduction_type():
    assert parse_deduction_type("ROT") is DeductionType.ROT
    assert parse_deduction_type(" rut ") is DeductionType.RUT
    assert parse_deduction_type(None) is None
    assert parse_deduction_type("none") is None
    with pytest.raises(InvalidConfiguration):
        parse_deduction_type("grönt")


def test_rot_30_percent_of_labor():
    res = calculate_deduction(Decimal("6500"), DeductionType.ROT, DeductionRules())
    assert res.amount == Decimal("1950")
    assert res.limited_by_max is False


def test_cap_per_person():
    res = calculate_deduction(Decimal("400000"), DeductionType.ROT, DeductionRules())
    assert res.amount == Decimal("50000")
    assert res.limited_by_max is True

    two = calculate_deduction(Decimal("400000"), DeductionType.ROT, DeductionRules(), persons=2)
    assert two.amount == Decimal("100000")


def test_rut_cap_is_higher():
    res = calculate_deduction(Decimal("200000"), DeductionType.RUT, DeductionRules())
    assert res.amount == Decimal("75000")


def test_disabled_type_is_rejected():
    rules = DeductionRules(rut_enabled=False)
    with pytest.raises(InvalidConfiguration):
        calculate_deduction(Decimal("1000"), DeductionType.RUT, rules)


def test_persons_must_be_positive():
    with pytest.raises(InvalidConfiguration):
        calculate_deduction(Decimal("1000"), DeductionType.ROT, DeductionRules(), persons=0)


def test_no_deduction():
    res = calculate_deduction(Decimal("1000"), None, DeductionRules())
    assert res.amount == 0
    assert res.eligible == Decimal("1000")


def test_label():
    assert deduction_label(DeductionType.ROT) == "ROT-avdrag 30%"
    assert deduction_label(DeductionType.RUT, DeductionRules(rut_percent=Decimal("50.00"))) == "RUT-avdrag 50%"
    assert deduction_label(None) == ""
