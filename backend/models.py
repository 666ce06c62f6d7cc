"""
SQLAlchemy models for the RFID attendance system.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

UNKNOWN_NAME = "Unknown Student"
UNKNOWN_FIELD = "N/A"


def utc_isoformat(value):
    """Timestamps are stored as naive UTC; responses carry the offset explicitly."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class Student(Base):
    """Authoritative person directory keyed by normalized card identifier."""
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    matric_number = Column(String, nullable=False)
    card_identifier = Column(String, unique=True, nullable=False, index=True)
    department = Column(String, nullable=True)
    email = Column(String, nullable=True)
    is_placeholder = Column(Boolean, default=False, nullable=False)  # materialized for an unknown card
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def summary(self):
        return {
            "name": self.name,
            "matric_number": self.matric_number,
            "department": self.department or UNKNOWN_FIELD,
        }


class PendingRegistration(Base):
    """Self-registration profile not yet promoted into the student directory."""
    __tablename__ = "pending_registrations"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    matric_number = Column(String, nullable=False)
    card_identifier = Column(String, nullable=False, index=True)
    department = Column(String, nullable=False)
    level = Column(String, nullable=True)
    promoted_student_id = Column(Integer, ForeignKey("students.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ClassSection(Base):
    __tablename__ = "classes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    code = Column(String, unique=True, nullable=False, index=True)
    room = Column(String, nullable=False)
    time = Column(String, nullable=False)  # e.g. "10:00 AM - 11:30 AM"
    capacity = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Enrollment(Base):
    __tablename__ = "course_enrollments"
    __table_args__ = (UniqueConstraint("class_id", "student_id", name="uq_enrollment_class_student"),)

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    enrolled_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AttendanceSession(Base):
    """A lecturer-run attendance window for one class meeting."""
    __tablename__ = "attendance_sessions"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False, index=True)
    session_code = Column(String, unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    start_time = Column(DateTime, default=datetime.utcnow, nullable=False)
    end_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    section = relationship("ClassSection")

    def summary(self):
        return {
            "id": self.id,
            "session_code": self.session_code,
            "class_code": self.section.code if self.section else None,
            "is_active": self.is_active,
            "start_time": utc_isoformat(self.start_time),
            "end_time": utc_isoformat(self.end_time),
        }


class AttendanceRecord(Base):
    """Append-only ledger of accepted scans."""
    __tablename__ = "attendance_records"
    # NULL session or student never collides, so unresolved rows are always accepted
    __table_args__ = (UniqueConstraint("session_id", "student_id", name="uq_attendance_session_student"),)

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("attendance_sessions.id"), nullable=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=True, index=True)
    rfid_scan = Column(String, nullable=False)  # raw value as sent by the reader
    card_identifier = Column(String, nullable=False, index=True)  # normalized
    check_in_time = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    student = relationship("Student")
    session = relationship("AttendanceSession")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    class_id = Column(Integer, ForeignKey("classes.id"), nullable=False)
    message = Column(String, nullable=False)
    notification_type = Column(String, nullable=False)
    scheduled_time = Column(DateTime, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
