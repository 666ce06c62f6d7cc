"""
Database configuration and session management.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config import DATABASE_URL, DB_TIMEOUT_SECONDS
from models import (
    Base, Student, PendingRegistration, ClassSection, Enrollment,
    AttendanceSession, AttendanceRecord, Notification,
)


def make_engine(url: str = DATABASE_URL):
    """Create an engine; SQLite needs thread sharing and a busy timeout."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": DB_TIMEOUT_SECONDS}
    return create_engine(url, connect_args=connect_args)


engine = make_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Initialize database tables."""
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """FastAPI dependency yielding a request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
