"""
Class reminder fan-out, meant to be triggered by a scheduler.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from config import REMINDER_LEAD_MINUTES
from models import AttendanceSession, Enrollment, Notification, utc_isoformat

logger = logging.getLogger(__name__)


def dispatch_reminders(db: Session, now: Optional[datetime] = None,
                       lead_minutes: int = REMINDER_LEAD_MINUTES) -> dict:
    """Create one reminder notification per enrolled student for sessions starting soon."""
    now = now or datetime.utcnow()
    horizon = now + timedelta(minutes=lead_minutes)
    logger.info("Checking for sessions starting by %s", horizon.isoformat())

    upcoming = (
        db.query(AttendanceSession)
        .filter(
            AttendanceSession.is_active.is_(True),
            AttendanceSession.start_time >= now,
            AttendanceSession.start_time <= horizon,
        )
        .all()
    )

    if not upcoming:
        return {
            "message": f"No sessions starting in the next {lead_minutes} minutes",
            "checked_at": utc_isoformat(now),
        }

    sent = 0
    for session in upcoming:
        section = session.section
        enrollments = db.query(Enrollment).filter(Enrollment.class_id == session.class_id).all()
        if not enrollments:
            logger.info("No students enrolled in %s", section.code)
            continue

        message = (
            f"Reminder: {section.name} ({section.code}) starts in {lead_minutes} minutes "
            f"at {section.time} in room {section.room}"
        )
        for enrollment in enrollments:
            db.add(Notification(
                student_id=enrollment.student_id,
                class_id=session.class_id,
                message=message,
                notification_type="reminder",
                scheduled_time=session.start_time,
            ))
        sent += len(enrollments)
        logger.info("Created %d reminder notifications for session %s", len(enrollments), session.session_code)

    db.commit()
    return {
        "success": True,
        "sessions_processed": len(upcoming),
        "notifications_sent": sent,
        "checked_at": utc_isoformat(now),
    }
