from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from talentgrid.core.exceptions import DataIncompleteError, DomainValidationError
from talentgrid.scoring.potential_engine import PotentialEngine


@pytest.mark.parametrize("level,expected", [(1, "1.0"), (2, "3.0"), (3, "5.0")])
def test_fixed_points(level, expected):
    """Uniform factors map exactly onto 1, 3 and 5."""
    assert PotentialEngine.calculate(level, level, level).score == Decimal(expected)


def test_mixed_factors_round_to_one_decimal():
    """aspiration 3, ability 2, engagement 2 averages 2.333 and scores 3.7."""
    result = PotentialEngine.calculate(3, 2, 2)
    assert result.score == Decimal("3.7")
    assert result.to_dict()["average"] == pytest.approx(2.333)


@pytest.mark.parametrize("factors,field", [
    ((0, 2, 2), "aspiration"),
    ((2, 4, 2), "ability"),
    ((2, 2, 2.5), "engagement"),
    ((True, 2, 2), "aspiration"),
    (("3", 2, 2), "aspiration"),
])
def test_invalid_factor_is_rejected(factors, field):
    with pytest.raises(DomainValidationError) as exc:
        PotentialEngine.calculate(*factors)
    assert exc.value.field == field


def test_missing_factor_gives_no_partial_score():
    with pytest.raises(DataIncompleteError) as exc:
        PotentialEngine.calculate(3, None, 2)
    assert exc.value.missing == ["ability"]


_factor = st.sampled_from([1, 2, 3])


@given(_factor, _factor, _factor)
def test_engine_is_deterministic_and_bounded(aspiration, ability, engagement):
    first = PotentialEngine.calculate(aspiration, ability, engagement)
    second = PotentialEngine.calculate(aspiration, ability, engagement)
    assert first == second
    assert Decimal("1.0") <= first.score <= Decimal("5.0")
