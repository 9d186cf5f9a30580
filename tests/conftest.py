"""
Test configuration and fixtures
"""
import os

# Point the application at SQLite before settings are read
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.database import Base, get_db
from app.models.models import Department, DepartmentSettings, TimeSlot
from datetime import time


# Create an in-memory SQLite database for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """Create a test client with overridden database dependency"""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app=app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def test_department(db):
    """Create a department that takes same-day bookings and walk-ins"""
    department = Department(
        name="Health Office",
        description="Medical certificates and health cards",
        display_order=1,
        is_active=True
    )
    department.settings = DepartmentSettings(
        operating_start=time(8, 0),
        operating_end=time(17, 0),
        lunch_break_start=time(12, 0),
        lunch_break_end=time(13, 0),
        can_receive_appointments=True,
        allow_walk_ins=True,
        daily_appointment_limit=50,
        allow_same_day=True,
        min_days_advance=0,
        max_days_advance=30,
        require_qr_checkin=False
    )
    db.add(department)
    db.commit()
    db.refresh(department)
    return department


@pytest.fixture
def other_department(db):
    """Create a second department for transfers"""
    department = Department(name="Permits Office", display_order=2, is_active=True)
    department.settings = DepartmentSettings(
        can_receive_appointments=True,
        allow_walk_ins=True,
        allow_same_day=True,
        min_days_advance=0
    )
    db.add(department)
    db.commit()
    db.refresh(department)
    return department


@pytest.fixture
def test_slot(db, test_department):
    """A 09:00-09:30 slot offered every day"""
    slot = TimeSlot(
        department_id=test_department.id,
        slot_start=time(9, 0),
        slot_end=time(9, 30),
        max_appointments=2,
        day_of_week=list(ALL_DAYS),
        is_active=True
    )
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return slot


@pytest.fixture
def other_slot(db, other_department):
    slot = TimeSlot(
        department_id=other_department.id,
        slot_start=time(10, 0),
        slot_end=time(10, 30),
        max_appointments=5,
        day_of_week=list(ALL_DAYS),
        is_active=True
    )
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return slot


@pytest.fixture
def staff_headers():
    """Headers a staff terminal sends"""
    return {"X-Staff-Id": "clerk-07"}


@pytest.fixture
def second_db(db):
    """Another terminal's session against the same database"""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_factory(db):
    """Session factory bound to the test database, for code that opens its own sessions"""
    return TestingSessionLocal
