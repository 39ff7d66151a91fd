from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from talentgrid.scoring.bonus import aggregate_bonus_factor, bonus_multiplier
from talentgrid.scoring.calibration_rules import MoveContext, Severity, evaluate_move
from talentgrid.scoring.config import DEFAULT_RATING_CONFIG, load_rating_config
from talentgrid.scoring.nine_box import (
    DEFAULT_GRID,
    AxisBand,
    NineBoxClassifier,
    NineBoxPosition as P,
    default_classifier,
)

config = DEFAULT_RATING_CONFIG


@pytest.mark.parametrize("performance,potential,expected", [
    (4.5, 4.5, P.STAR),
    (3.5, 4.2, P.GROWTH_POTENTIAL),
    (2.0, 4.0, P.POTENTIAL_GEM),
    (4.0, 3.0, P.HIGH_PERFORMER),
    (3.8, 3.7, P.CORE_PLAYER),
    (2.9, 3.5, P.INCONSISTENT),
    (4.1, 1.0, P.TRUSTED_PROFESSIONAL),
    (3.0, 2.9, P.AVERAGE_PERFORMER),
    (1.5, 1.0, P.UNDERPERFORMER),
])
def test_classification_table(performance, potential, expected):
    assert default_classifier.classify(performance, potential, config) == expected


def test_boundary_values_belong_to_higher_bin():
    assert default_classifier.classify(3.0, 3.0, config) == P.CORE_PLAYER
    assert default_classifier.classify(4.0, 4.0, config) == P.STAR
    assert default_classifier.classify(2.9, 2.9, config) == P.UNDERPERFORMER


def test_missing_axis_is_unclassified():
    assert default_classifier.classify(None, 4.0, config) == P.UNCLASSIFIED
    assert default_classifier.classify(4.0, None, config) == P.UNCLASSIFIED
    assert default_classifier.quadrant_number(P.UNCLASSIFIED) is None


def test_thresholds_come_from_config():
    strict = load_rating_config({"performance_axis": {"medium": 3.5, "high": 4.5}})
    assert default_classifier.classify(4.2, 4.2, config) == P.STAR
    assert default_classifier.classify(4.2, 4.2, strict) == P.GROWTH_POTENTIAL


def test_custom_grid_relabels_without_rebinning():
    grid = dict(DEFAULT_GRID)
    grid[(AxisBand.HIGH, AxisBand.HIGH)] = P.HIGH_PERFORMER
    grid[(AxisBand.HIGH, AxisBand.MEDIUM)] = P.STAR
    classifier = NineBoxClassifier(grid)
    assert classifier.classify(4.5, 4.5, config) == P.HIGH_PERFORMER
    assert classifier.classify(4.5, 3.5, config) == P.STAR


def test_incomplete_grid_is_rejected():
    grid = dict(DEFAULT_GRID)
    grid.pop((AxisBand.LOW, AxisBand.LOW))
    with pytest.raises(ValueError):
        NineBoxClassifier(grid)


def test_quadrant_numbers_run_from_risk_to_star():
    assert default_classifier.quadrant_number(P.UNDERPERFORMER) == 1
    assert default_classifier.quadrant_number(P.TRUSTED_PROFESSIONAL) == 3
    assert default_classifier.quadrant_number(P.CORE_PLAYER) == 5
    assert default_classifier.quadrant_number(P.POTENTIAL_GEM) == 7
    assert default_classifier.quadrant_number(P.STAR) == 9


_axis = st.one_of(st.none(), st.decimals(min_value=0, max_value=5, places=1))


@given(_axis, _axis)
def test_classifier_is_total(performance, potential):
    """Every input pair lands on exactly one of the ten positions."""
    position = default_classifier.classify(performance, potential, config)
    assert position in set(P)
    if performance is None or potential is None:
        assert position == P.UNCLASSIFIED
    else:
        assert position != P.UNCLASSIFIED


# Bonus factor

def test_bonus_multiplier_per_position():
    assert bonus_multiplier(P.STAR, config) == Decimal("1.25")
    assert bonus_multiplier("underperformer", config) == Decimal("0.0")
    assert bonus_multiplier(P.UNCLASSIFIED, config) is None


def test_aggregate_bonus_factor_skips_unclassified():
    positions = [P.STAR, P.CORE_PLAYER, P.AVERAGE_PERFORMER, P.UNCLASSIFIED]
    # (1.25 + 1.00 + 0.75) / 3
    assert aggregate_bonus_factor(positions, config) == Decimal("1.0000")


def test_aggregate_bonus_factor_none_without_classified_members():
    assert aggregate_bonus_factor([P.UNCLASSIFIED], config) is None
    assert aggregate_bonus_factor([], config) is None


def test_aggregate_bonus_factor_rounds_to_four_places():
    assert aggregate_bonus_factor([P.STAR, P.HIGH_PERFORMER, P.CORE_PLAYER], config) == Decimal("1.1167")


# Consistency rules

def _codes(warnings):
    return [w.code for w in warnings]


def test_move_to_risk_quadrant_is_critical():
    warnings = evaluate_move(MoveContext(P.AVERAGE_PERFORMER, P.UNDERPERFORMER, is_downgrade=True,
                                         aspiration=2, ability=2, engagement=2))
    assert _codes(warnings) == ["MOVE_TO_RISK_QUADRANT"]
    assert warnings[0].severity == Severity.CRITICAL


def test_star_with_weak_factors_collects_every_warning_most_severe_first():
    warnings = evaluate_move(MoveContext(P.CORE_PLAYER, P.STAR, is_downgrade=False,
                                         aspiration=1, ability=1, engagement=1))
    assert set(_codes(warnings)) == {
        "HIGH_POTENTIAL_LOW_ASPIRATION",
        "TOP_TALENT_LOW_ENGAGEMENT",
        "HIGH_POTENTIAL_LOW_ABILITY",
        "HIGH_PERFORMANCE_LOW_ABILITY",
    }
    severities = [w.severity for w in warnings]
    assert severities == sorted(severities, key=[Severity.CRITICAL, Severity.WARNING, Severity.INFO].index)


def test_downgrade_of_engaged_employee_warns():
    warnings = evaluate_move(MoveContext(P.HIGH_PERFORMER, P.CORE_PLAYER, is_downgrade=True,
                                         aspiration=2, ability=2, engagement=3))
    assert _codes(warnings) == ["DOWNGRADE_HIGH_ENGAGEMENT"]


def test_massive_jump_is_flagged():
    warnings = evaluate_move(MoveContext(P.UNDERPERFORMER, P.HIGH_PERFORMER, is_downgrade=False,
                                         aspiration=2, ability=2, engagement=2))
    assert _codes(warnings) == ["MASSIVE_JUMP"]


def test_unclassified_target_with_missing_factors_is_informational():
    warnings = evaluate_move(MoveContext(P.UNCLASSIFIED, P.UNCLASSIFIED, is_downgrade=False))
    assert _codes(warnings) == ["MISSING_AAE_DATA"]
    assert warnings[0].to_dict()["severity"] == "info"


def test_unchanged_position_raises_nothing():
    assert evaluate_move(MoveContext(P.CORE_PLAYER, P.CORE_PLAYER, is_downgrade=False,
                                     aspiration=1, ability=1, engagement=1)) == []
