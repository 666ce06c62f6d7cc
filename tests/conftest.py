import os
import tempfile

# Settings are read at import time; keep the app's own engine and log file out of the way
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "rfid_attendance_test.log"))

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import main
from config import ScanPolicy
from database import make_engine, get_db
from models import Base, Student, PendingRegistration, ClassSection, AttendanceSession

API_KEY = "K1"


class FakeClock:
    def __init__(self, now=None):
        self.now = now or datetime(2026, 3, 2, 9, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'attendance.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def policy():
    return ScanPolicy(
        api_key=API_KEY,
        session_strategy="explicit_or_active",
        device_session_code=None,
        require_session=True,
        debounce_minutes=5,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(session_factory, policy):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[get_db] = override_get_db
    main.app.dependency_overrides[main.get_policy] = lambda: policy
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def make_class(db):
    def _make(code="CS201", name="Data Structures"):
        section = ClassSection(name=name, code=code, room="A101", time="10:00 AM - 11:30 AM", capacity=45)
        db.add(section)
        db.commit()
        return section
    return _make


@pytest.fixture
def make_session(db, make_class):
    def _make(code="S1", section=None, is_active=True, created_at=None, start_time=None):
        section = section or db.query(ClassSection).first() or make_class()
        created_at = created_at or datetime(2026, 3, 2, 8, 0, 0)
        session = AttendanceSession(
            class_id=section.id,
            session_code=code,
            is_active=is_active,
            start_time=start_time or created_at,
            created_at=created_at,
            end_time=None if is_active else created_at + timedelta(hours=1),
        )
        db.add(session)
        db.commit()
        return session
    return _make


@pytest.fixture
def make_student(db):
    def _make(card="04A1B2C3", name="Alice Johnson", matric="CSC/2021/001", department="Computer Science"):
        student = Student(name=name, matric_number=matric, card_identifier=card, department=department)
        db.add(student)
        db.commit()
        return student
    return _make


@pytest.fixture
def make_registration(db):
    def _make(card="04BEEF01", full_name="David Wilson", matric="CSC/2021/004", created_at=None):
        registration = PendingRegistration(
            full_name=full_name,
            matric_number=matric,
            card_identifier=card,
            department="Computer Science",
            level="200",
            created_at=created_at or datetime(2026, 3, 1, 12, 0, 0),
        )
        db.add(registration)
        db.commit()
        return registration
    return _make
