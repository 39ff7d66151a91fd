import pytest
import os
import uuid
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BULK_MAX_WORKERS"] = "1"

from talentgrid.database import Base, get_db
from talentgrid.main import app
from talentgrid.core.identity import Actor
from talentgrid.models.rating import PerformanceRating
from talentgrid.services.cycle_service import CycleService
from talentgrid.services.rating_service import RatingService
from fastapi.testclient import TestClient

# SQLite in-memory database configuration
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create tables once for the whole test session."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture(scope="function")
def db_session():
    """Get a clean database session for each test function with rollback safety."""
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)

    yield session

    session.close()
    transaction.rollback()
    connection.close()

@pytest.fixture(scope="function")
def account_id():
    """A fresh tenant per test keeps queries isolated."""
    return f"acct-{uuid.uuid4()}"

@pytest.fixture(scope="function")
def facilitator(account_id):
    return Actor(user_id="hr-lead", account_id=account_id, name="Dana HR Lead")

@pytest.fixture(scope="function")
def reviewer(account_id):
    return Actor(user_id="reviewer-1", account_id=account_id, name="Sam Reviewer")

@pytest.fixture(scope="function")
def observer(account_id):
    return Actor(user_id="observer-1", account_id=account_id, name="Alex Observer")

@pytest.fixture(scope="function")
def headers():
    """Helper fixture building identity headers for an actor."""
    def _headers(actor):
        return {"X-User-Id": actor.user_id, "X-Account-Id": actor.account_id, "X-User-Name": actor.name or ""}
    return _headers

@pytest.fixture(scope="function")
def make_cycle(db_session, account_id, facilitator):
    """Create an active cycle weighted self 0.2, manager 0.6, upward 0.2 unless overridden."""
    def _make_cycle(name="FY26 Annual Review", **kwargs):
        kwargs.setdefault("weights_override", {"self": 0.2, "manager": 0.6, "upward": 0.2, "peer": 0.0})
        service = CycleService(db_session, account_id)
        cycle = service.create_cycle(name=name, actor=facilitator, **kwargs)
        return service.transition(cycle.id, "active", facilitator)
    return _make_cycle

@pytest.fixture(scope="function")
def make_rating(db_session, account_id, facilitator):
    """
    Enroll one employee, record completed evaluations per role and aggregate.

    `scores` maps rater role to a list of response lists, one per assignment.
    """
    def _make_rating(cycle, employee_id, scores=None, generate=True, **employee):
        cycles = CycleService(db_session, account_id)
        cycles.enroll_employees(cycle.id, [{"employee_id": employee_id, **employee}], facilitator)
        for role, per_assignment in (scores or {}).items():
            for index, responses in enumerate(per_assignment):
                assignment = cycles.add_assignment(
                    cycle.id, f"{role}-{index}-{employee_id}", employee_id, role, facilitator
                )
                cycles.submit_responses(assignment.id, responses, facilitator)
        rating = db_session.query(PerformanceRating).filter_by(cycle_id=cycle.id, employee_id=employee_id).one()
        if generate:
            RatingService(db_session, account_id).generate_rating(rating.id)
            db_session.refresh(rating)
        return rating
    return _make_rating

@pytest.fixture(scope="function")
def client(db_session):
    """Get a TestClient that uses the test database session via dependency override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
