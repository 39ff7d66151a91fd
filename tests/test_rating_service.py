import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from talentgrid.core.exceptions import DataIncompleteError, DomainValidationError, StateConflictError
from talentgrid.database import Base
from talentgrid.models.rating import PerformanceRating
from talentgrid.services.cycle_service import CycleService
from talentgrid.services.rating_service import RATING_CALCULATED, RATING_PENDING, RatingService

SCENARIO = {"self": [[4, 4]], "manager": [[3, 4]], "upward": [[4, 5]]}


def test_generate_rating_from_completed_evaluations(make_cycle, make_rating):
    rating = make_rating(make_cycle(), "emp-1", scores=SCENARIO)
    assert rating.calculated_score == 3.8
    assert rating.calculated_level == "meets_expectations"
    assert rating.manager_score == 3.5
    assert rating.peer_score is None
    assert rating.evaluation_completeness == 100.0
    assert rating.final_score is None
    assert rating.nine_box_position == "unclassified"


def test_rating_without_evaluations_stays_pending(db_session, account_id, make_cycle, make_rating):
    rating = make_rating(make_cycle(), "emp-1", generate=False)
    outcome = RatingService(db_session, account_id).generate_rating(rating.id)
    db_session.refresh(rating)

    assert outcome == RATING_PENDING
    assert rating.is_pending
    assert rating.calculated_score is None
    assert rating.calculated_level is None


def test_pending_completeness_rounds_half_up(db_session, account_id, facilitator, make_cycle, make_rating):
    """1 of 16 evaluations done is 6.25%, stored as 6.3 like a calculated rating would be."""
    cycle = make_cycle(weights_override={"self": 0.0, "manager": 1.0})
    rating = make_rating(cycle, "emp-1", scores={"self": [[5]]}, generate=False)
    cycles = CycleService(db_session, account_id)
    for index in range(15):
        cycles.add_assignment(cycle.id, f"mgr-{index}", "emp-1", "manager", facilitator)

    assert RatingService(db_session, account_id).generate_rating(rating.id) == RATING_PENDING
    db_session.refresh(rating)
    assert (rating.completed_evaluations, rating.total_evaluations) == (1, 16)
    assert rating.evaluation_completeness == 6.3


def test_regeneration_clears_stale_score_when_data_disappears(db_session, account_id, facilitator, make_cycle, make_rating):
    """Zero-weight roles alone leave the rating pending even if a score existed before."""
    cycle = make_cycle(weights_override={"self": 0.0, "manager": 1.0})
    rating = make_rating(cycle, "emp-1", scores={"self": [[5]]}, generate=False)
    rating.calculated_score = 4.0
    db_session.flush()

    assert RatingService(db_session, account_id).generate_rating(rating.id) == RATING_PENDING
    db_session.refresh(rating)
    assert rating.calculated_score is None


def test_bulk_generation_reports_each_outcome(db_session, account_id, make_cycle, make_rating):
    cycle = make_cycle()
    make_rating(cycle, "emp-1", scores=SCENARIO, generate=False)
    make_rating(cycle, "emp-2", scores={"manager": [[4]]}, generate=False)
    make_rating(cycle, "emp-3", generate=False)

    result = RatingService(db_session, account_id).generate_ratings_for_cycle(cycle.id, max_workers=1)
    assert result.to_dict() == {"total": 3, "success": 2, "pending": 1, "failed": 0, "errors": []}


def test_bulk_generation_in_parallel_workers(tmp_path, facilitator):
    """Each worker thread uses its own session against a shared file database."""
    engine = create_engine(f"sqlite:///{tmp_path / 'bulk.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    Factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    account = facilitator.account_id

    db = Factory()
    try:
        cycles = CycleService(db, account)
        cycle = cycles.transition(cycles.create_cycle("Parallel", facilitator).id, "active", facilitator)
        employees = [{"employee_id": f"emp-{i}"} for i in range(6)]
        cycles.enroll_employees(cycle.id, employees, facilitator)
        for i in range(5):
            assignment = cycles.add_assignment(cycle.id, f"mgr-{i}", f"emp-{i}", "manager", facilitator)
            cycles.submit_responses(assignment.id, [3, 4, 5], facilitator)

        result = RatingService(db, account).generate_ratings_for_cycle(
            cycle.id, max_workers=3, session_factory=Factory
        )
        assert (result.total, result.success, result.pending, result.failed) == (6, 5, 1, 0)

        db.expire_all()
        scores = {r.employee_id: r.calculated_score for r in db.query(PerformanceRating).all()}
        assert scores["emp-0"] == 4.0
        assert scores["emp-5"] is None
    finally:
        db.close()
        engine.dispose()


def test_rate_potential_places_rating_on_grid(db_session, account_id, facilitator, make_cycle, make_rating):
    rating = make_rating(make_cycle(), "emp-1", scores=SCENARIO)
    rating = RatingService(db_session, account_id).rate_potential(rating.id, 3, 2, 2, facilitator, notes="Ready for scope")

    assert rating.potential_score == 3.7
    assert rating.potential_level == "medium"
    assert rating.potential_rated_by == facilitator.user_id
    assert rating.nine_box_position == "core_player"


def test_invalid_potential_factor_is_rejected(db_session, account_id, facilitator, make_cycle, make_rating):
    rating = make_rating(make_cycle(), "emp-1", scores=SCENARIO)
    with pytest.raises(DomainValidationError) as exc:
        RatingService(db_session, account_id).rate_potential(rating.id, 3, 4, 2, facilitator)
    assert exc.value.field == "ability"
    assert rating.potential_score is None


def test_partial_potential_is_incomplete(db_session, account_id, facilitator, make_cycle, make_rating):
    rating = make_rating(make_cycle(), "emp-1", scores=SCENARIO)
    with pytest.raises(DataIncompleteError):
        RatingService(db_session, account_id).rate_potential(rating.id, 3, None, 2, facilitator)


def test_clear_potential_unclassifies(db_session, account_id, facilitator, make_cycle, make_rating):
    service = RatingService(db_session, account_id)
    rating = make_rating(make_cycle(), "emp-1", scores=SCENARIO)
    service.rate_potential(rating.id, 3, 3, 3, facilitator)
    rating = service.clear_potential(rating.id, facilitator)

    assert rating.potential_score is None
    assert rating.nine_box_position == "unclassified"


def test_archived_cycle_is_read_only(db_session, account_id, facilitator, make_cycle, make_rating):
    cycle = make_cycle()
    rating = make_rating(cycle, "emp-1", scores=SCENARIO)
    cycles = CycleService(db_session, account_id)
    for target in ("in_review", "completed", "archived"):
        cycles.transition(cycle.id, target, facilitator)

    service = RatingService(db_session, account_id)
    with pytest.raises(StateConflictError) as exc:
        service.generate_rating(rating.id)
    assert exc.value.current_state == "archived"
    with pytest.raises(StateConflictError):
        service.rate_potential(rating.id, 2, 2, 2, facilitator)
    with pytest.raises(StateConflictError):
        cycles.enroll_employees(cycle.id, [{"employee_id": "late-joiner"}], facilitator)


def test_list_ratings_filters_and_stats(db_session, account_id, facilitator, make_cycle, make_rating):
    cycle = make_cycle()
    make_rating(cycle, "emp-1", scores=SCENARIO, employee_name="Ada", department_id="eng")
    make_rating(cycle, "emp-2", scores={"manager": [[5]]}, employee_name="Bo", department_id="ops")
    make_rating(cycle, "emp-3", employee_name="Cy", department_id="eng")
    service = RatingService(db_session, account_id)

    assert [r.employee_id for r in service.list_ratings(cycle.id, department_id="eng")] == ["emp-1", "emp-3"]
    assert [r.employee_id for r in service.list_ratings(cycle.id, level="exceptional")] == ["emp-2"]
    assert len(service.list_ratings(cycle.id, include_pending=False)) == 2

    stats = service.rating_stats(cycle.id)
    assert stats["total"] == 3
    assert stats["evaluated"] == 2
    assert stats["pending"] == 1
    assert stats["potential_pending"] == 3


def test_nine_box_grid_excludes_pending_and_unclassified(db_session, account_id, facilitator, make_cycle, make_rating):
    cycle = make_cycle()
    service = RatingService(db_session, account_id)
    star = make_rating(cycle, "emp-1", scores={"manager": [[5]]})
    core = make_rating(cycle, "emp-2", scores=SCENARIO)
    make_rating(cycle, "emp-3", scores={"manager": [[4]]})
    make_rating(cycle, "emp-4")
    service.rate_potential(star.id, 3, 3, 3, facilitator)
    service.rate_potential(core.id, 2, 2, 2, facilitator)

    grid = service.get_nine_box_grid(cycle.id)
    cells = {c["position"]: c for c in grid["cells"]}
    assert grid["classified"] == 2
    assert grid["unclassified"] == 1
    assert len(cells) == 9
    assert cells["star"]["count"] == 1
    assert cells["star"]["quadrant"] == 9
    assert cells["core_player"]["percentage"] == 50.0


def test_distribution_compares_calculated_and_final(db_session, account_id, make_cycle, make_rating):
    cycle = make_cycle()
    first = make_rating(cycle, "emp-1", scores=SCENARIO)
    make_rating(cycle, "emp-2", scores=SCENARIO)
    first.final_score = 4.6
    first.final_level = "exceptional"
    db_session.flush()

    distribution = RatingService(db_session, account_id).get_distribution(cycle.id)
    calculated = {d["level"]: d["count"] for d in distribution["calculated"]}
    final = {d["level"]: d["count"] for d in distribution["final"]}
    assert calculated["meets_expectations"] == 2
    assert final["meets_expectations"] == 1
    assert final["exceptional"] == 1
    assert distribution["calibration_progress"] == 50.0
