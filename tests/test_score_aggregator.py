from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings as h_settings
from hypothesis import strategies as st

from talentgrid.core.exceptions import DataIncompleteError, DomainValidationError
from talentgrid.scoring.config import DEFAULT_RATING_CONFIG, RATER_ROLES, load_rating_config
from talentgrid.scoring.score_aggregator import AssignmentInput, ScoreAggregator, parse_response

h_settings.register_profile(
    "ci",
    max_examples=200,
    suppress_health_check=[HealthCheck.too_slow],
)
h_settings.load_profile("ci")

SCENARIO_CONFIG = load_rating_config({"weights": {"self": 0.2, "manager": 0.6, "upward": 0.2, "peer": 0.0}})


def _completed(role, *responses):
    return AssignmentInput(rater_role=role, responses=list(responses), status="completed")


def test_weighted_scenario_scores_three_point_eight():
    """self 4.0, manager 3.5, upward 4.5 with 0.2/0.6/0.2 weights gives 3.8."""
    result = ScoreAggregator(SCENARIO_CONFIG).aggregate([
        _completed("self", 4, 4),
        _completed("manager", 3, 4),
        _completed("upward", 4, 5),
    ])
    assert result.score == Decimal("3.8")
    assert result.level == "meets_expectations"
    assert result.role_scores == {"self": Decimal("4.0"), "manager": Decimal("3.5"), "upward": Decimal("4.5")}


def test_missing_role_is_excluded_and_weights_renormalized():
    """A missing role does not drag the score down."""
    result = ScoreAggregator(DEFAULT_RATING_CONFIG).aggregate([
        _completed("self", 4),
        _completed("manager", 3),
    ])
    # (0.2 * 4 + 0.5 * 3) / 0.7 = 3.2857...
    assert result.score == Decimal("3.3")
    assert set(result.effective_weights) == {"self", "manager"}
    assert float(sum(result.effective_weights.values())) == pytest.approx(1.0)


def test_incomplete_and_empty_assignments_carry_no_weight():
    result = ScoreAggregator(SCENARIO_CONFIG).aggregate([
        _completed("manager", 4),
        AssignmentInput(rater_role="self", responses=[1, 1], status="pending"),
        _completed("upward"),
        _completed("upward", "n/a", None),
    ])
    assert result.score == Decimal("4.0")
    assert list(result.role_scores) == ["manager"]
    assert result.total_evaluations == 4
    assert result.completed_evaluations == 3


def test_non_numeric_responses_are_skipped():
    aggregator = ScoreAggregator(DEFAULT_RATING_CONFIG)
    assert aggregator.assignment_mean(["4", "n/a", None, 5, True, {"value": 3}, float("nan")]) == Decimal(4)


def test_parse_response_handles_strings_and_wrappers():
    assert parse_response(" 3.5 ") == Decimal("3.5")
    assert parse_response({"score": 2}) == Decimal(2)
    assert parse_response("") is None
    assert parse_response(False) is None


def test_out_of_scale_responses_are_ignored():
    aggregator = ScoreAggregator(DEFAULT_RATING_CONFIG)
    assert aggregator.assignment_mean([4, 9, -1]) == Decimal(4)


def test_role_score_is_mean_of_assignment_means():
    """Two peers: one answered four items at 5, one answered a single 3."""
    result = ScoreAggregator(DEFAULT_RATING_CONFIG).aggregate([
        _completed("peer", 5, 5, 5, 5),
        _completed("peer", 3),
    ])
    assert result.role_scores["peer"] == Decimal("4.0")


def test_no_scorable_data_raises_data_incomplete():
    with pytest.raises(DataIncompleteError) as exc:
        ScoreAggregator(DEFAULT_RATING_CONFIG).aggregate([
            AssignmentInput(rater_role="manager", responses=[4], status="in_progress"),
        ])
    assert "manager" in exc.value.missing


def test_zero_weight_roles_alone_are_incomplete():
    config = load_rating_config({"weights": {"self": 0.0, "manager": 1.0}})
    with pytest.raises(DataIncompleteError):
        ScoreAggregator(config).aggregate([_completed("self", 5)])


def test_upward_below_min_subordinates_is_excluded():
    aggregator = ScoreAggregator(SCENARIO_CONFIG)
    assignments = [_completed("manager", 3), _completed("upward", 5), _completed("upward", 5)]

    excluded = aggregator.aggregate(assignments, min_subordinates=3)
    assert "upward" not in excluded.role_scores
    assert excluded.score == Decimal("3.0")

    included = aggregator.aggregate(assignments, min_subordinates=2)
    assert included.role_scores["upward"] == Decimal("5.0")


def test_non_participating_roles_are_ignored():
    result = ScoreAggregator(SCENARIO_CONFIG).aggregate(
        [_completed("manager", 3), _completed("self", 5)],
        participating_roles=["manager"],
    )
    assert result.score == Decimal("3.0")


def test_rounding_is_half_up():
    result = ScoreAggregator(DEFAULT_RATING_CONFIG).aggregate([_completed("manager", 3.5, 4.0)])
    assert result.score == Decimal("3.8")


def test_completeness_percentage():
    result = ScoreAggregator(DEFAULT_RATING_CONFIG).aggregate([
        _completed("manager", 4),
        _completed("self", 4),
        _completed("peer", 4),
        AssignmentInput(rater_role="peer", responses=[], status="pending"),
    ])
    assert result.completeness == Decimal("75.0")
    assert result.to_dict()["evaluation_completeness"] == 75.0


@pytest.mark.parametrize("score,level", [
    (0.0, "needs_improvement"),
    (2.49, "needs_improvement"),
    (2.5, "developing"),
    (3.49, "developing"),
    (3.5, "meets_expectations"),
    (3.8, "meets_expectations"),
    (4.0, "exceeds_expectations"),
    (4.5, "exceptional"),
    (5.0, "exceptional"),
])
def test_band_boundaries_are_inclusive_lower(score, level):
    assert DEFAULT_RATING_CONFIG.level_for_score(score) == level


@pytest.mark.parametrize("score", [-0.1, 5.01])
def test_scores_outside_scale_are_rejected(score):
    with pytest.raises(DomainValidationError) as exc:
        DEFAULT_RATING_CONFIG.level_for_score(score)
    assert exc.value.field == "score"


_weight = st.floats(min_value=0.0, max_value=10.0, allow_nan=False, allow_infinity=False)


@given(
    weights=st.fixed_dictionaries({role: _weight for role in RATER_ROLES}),
    present=st.sets(st.sampled_from(RATER_ROLES), min_size=1),
)
def test_effective_weights_always_sum_to_one(weights, present):
    """For any valid weights, renormalized weights over present roles sum to 1."""
    if sum(weights.values()) <= 0:
        return
    aggregator = ScoreAggregator(load_rating_config({"weights": weights}))
    effective = aggregator.effective_weights(present)
    if not effective:
        assert all(weights[r] == 0 for r in present)
        return
    assert float(sum(effective.values())) == pytest.approx(1.0, abs=1e-9)
    assert set(effective) <= present


@given(st.lists(st.integers(min_value=1, max_value=5), min_size=1, max_size=12))
def test_aggregate_stays_within_response_range(responses):
    result = ScoreAggregator(DEFAULT_RATING_CONFIG).aggregate([_completed("manager", *responses)])
    assert Decimal(min(responses)) <= result.score <= Decimal(max(responses))
