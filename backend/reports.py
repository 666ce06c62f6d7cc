"""
Read side of the ledger used by the dashboards.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import AttendanceRecord, AttendanceSession, utc_isoformat


def serialize_record(record: AttendanceRecord) -> dict:
    return {
        "id": record.id,
        "session_id": record.session_id,
        "session_code": record.session.session_code if record.session else None,
        "student_id": record.student_id,
        "name": record.student.name if record.student else None,
        "matric_number": record.student.matric_number if record.student else None,
        "rfid_scan": record.rfid_scan,
        "check_in_time": utc_isoformat(record.check_in_time),
    }


def list_attendance(db: Session, session_id: Optional[int] = None, student_id: Optional[int] = None,
                    since: Optional[datetime] = None, limit: int = 50):
    """Newest records first; `since` lets pollers fetch only new inserts."""
    query = db.query(AttendanceRecord)
    if session_id is not None:
        query = query.filter(AttendanceRecord.session_id == session_id)
    if student_id is not None:
        query = query.filter(AttendanceRecord.student_id == student_id)
    if since is not None:
        query = query.filter(AttendanceRecord.check_in_time > since)
    records = query.order_by(AttendanceRecord.check_in_time.desc(), AttendanceRecord.id.desc()).limit(limit).all()
    return [serialize_record(r) for r in records]


def attendance_percentage(db: Session, class_id: int, student_id: int) -> float:
    total = db.query(func.count(AttendanceSession.id)).filter(AttendanceSession.class_id == class_id).scalar()
    if not total:
        return 0.0
    attended = (
        db.query(func.count(AttendanceRecord.id))
        .join(AttendanceSession, AttendanceRecord.session_id == AttendanceSession.id)
        .filter(AttendanceSession.class_id == class_id, AttendanceRecord.student_id == student_id)
        .scalar()
    )
    return round(attended * 100.0 / total, 2)
