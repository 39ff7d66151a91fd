import pytest

from talentgrid.core.exceptions import DomainValidationError
from talentgrid.scoring.config import DEFAULT_RATING_CONFIG, DEFAULT_WEIGHTS, load_rating_config
from talentgrid.services.cycle_service import CycleService
from talentgrid.services.rating_config_service import RatingConfigService
from talentgrid.services.rating_service import RatingService

DEFAULT_BANDS = [b.model_dump() for b in DEFAULT_RATING_CONFIG.bands]


@pytest.mark.parametrize("data,field", [
    ({"weights": {"self": -0.1, "manager": 1.0}}, "weights"),
    ({"weights": {"self": 0.0, "manager": 0.0}}, "weights"),
    ({"weights": {"ceo": 1.0}}, "weights"),
    ({"bonus_factors": {"star": 1.25}}, "bonus_factors"),
    ({"performance_axis": {"medium": 4.0, "high": 3.0}}, "performance_axis"),
    ({"potential_axis": {"medium": 3.0, "high": 6.0}}, "potential_axis"),
])
def test_invalid_config_names_the_field(data, field):
    with pytest.raises(DomainValidationError) as exc:
        load_rating_config(data)
    assert exc.value.field == field
    assert exc.value.status_code == 422


@pytest.mark.parametrize("data,field", [
    ({"weights": {"self": float("inf"), "manager": 1.0}}, "weights"),
    ({"weights": {"self": float("nan"), "manager": 1.0}}, "weights"),
    ({"bonus_factors": {**DEFAULT_RATING_CONFIG.bonus_factors, "star": float("nan")}}, "bonus_factors"),
    ({"bonus_factors": {**DEFAULT_RATING_CONFIG.bonus_factors, "core_player": float("inf")}}, "bonus_factors"),
    ({"scale_max": float("inf")}, "scale_max"),
    ({"potential_axis": {"medium": float("nan"), "high": 4.0}}, "potential_axis"),
])
def test_non_finite_config_values_are_rejected(data, field):
    with pytest.raises(DomainValidationError) as exc:
        load_rating_config(data)
    # element errors carry the key as well, e.g. weights.self
    assert exc.value.field.split(".")[0] == field


def test_cycle_weights_override_must_be_finite(db_session, account_id, facilitator):
    with pytest.raises(DomainValidationError) as exc:
        CycleService(db_session, account_id).create_cycle(
            name="FY26", actor=facilitator, weights_override={"self": float("inf"), "manager": 1.0}
        )
    assert exc.value.field.startswith("weights")


def test_band_boundaries_must_increase():
    bands = [dict(b) for b in DEFAULT_BANDS]
    bands[2]["min_score"] = 2.0
    with pytest.raises(DomainValidationError) as exc:
        load_rating_config({"bands": bands})
    assert exc.value.field == "bands"


def test_band_count_is_bounded():
    with pytest.raises(DomainValidationError) as exc:
        load_rating_config({"bands": DEFAULT_BANDS[:2]})
    assert exc.value.field == "bands"


def test_lowest_band_must_start_at_scale_min():
    bands = [dict(b) for b in DEFAULT_BANDS]
    bands[0]["min_score"] = 1.0
    with pytest.raises(DomainValidationError):
        load_rating_config({"bands": bands})


def test_custom_bands_change_levels():
    config = load_rating_config({"bands": [
        {"level": "low", "label": "Low", "min_score": 0.0},
        {"level": "solid", "label": "Solid", "min_score": 3.0},
        {"level": "high", "label": "High", "min_score": 4.2},
    ]})
    assert config.levels == ["low", "solid", "high"]
    assert config.level_for_score(4.1) == "solid"
    assert config.label_for_level("high") == "High"


def test_account_without_record_uses_defaults(db_session, account_id):
    config = RatingConfigService(db_session, account_id).get_config()
    assert config.weights == DEFAULT_WEIGHTS


def test_save_config_persists_only_changed_keys(db_session, account_id, facilitator):
    service = RatingConfigService(db_session, account_id)
    service.save_config({"min_justification_length": 25, "ignored": True}, facilitator)

    config = service.get_config()
    assert config.min_justification_length == 25
    assert config.weights == DEFAULT_WEIGHTS


def test_invalid_save_writes_nothing(db_session, account_id, facilitator):
    service = RatingConfigService(db_session, account_id)
    with pytest.raises(DomainValidationError):
        service.save_config({"weights": {"manager": -1.0}}, facilitator)
    assert service.get_config() == DEFAULT_RATING_CONFIG


def test_weight_resolution_prefers_cycle_then_account(db_session, account_id, facilitator, make_cycle):
    service = RatingConfigService(db_session, account_id)
    service.save_config({"weights": {"self": 0.0, "manager": 1.0, "upward": 0.0, "peer": 0.0}}, facilitator)

    plain = make_cycle("Plain", weights_override=None)
    overridden = make_cycle("Overridden", weights_override={"self": 0.5, "manager": 0.5})

    assert service.for_cycle(plain).weights["manager"] == 1.0
    assert service.for_cycle(overridden).weights == {"self": 0.5, "manager": 0.5}


def test_tenants_do_not_share_config(db_session, account_id, facilitator):
    RatingConfigService(db_session, account_id).save_config({"distribution_tolerance": 10.0}, facilitator)
    other = RatingConfigService(db_session, f"{account_id}-other").get_config()
    assert other.distribution_tolerance == DEFAULT_RATING_CONFIG.distribution_tolerance


def test_threshold_change_reclassifies_cached_positions(db_session, account_id, facilitator, make_cycle, make_rating):
    cycle = make_cycle()
    rating = make_rating(cycle, "emp-1", scores={"self": [[4, 4]], "manager": [[3, 4]], "upward": [[4, 5]]})
    RatingService(db_session, account_id).rate_potential(rating.id, 3, 2, 2, facilitator)
    assert rating.nine_box_position == "core_player"

    RatingConfigService(db_session, account_id).save_config(
        {"potential_axis": {"medium": 3.8, "high": 4.5}}, facilitator
    )
    db_session.refresh(rating)
    assert rating.nine_box_position == "average_performer"
