"""
Duplicate scan suppression.

Two filters run in order: a debounce window on the normalized card identifier
(catches double taps before any lookup), then one record per
(session, student). The unique constraint on the ledger stays the final word.
"""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from models import AttendanceRecord


class DuplicateGuard:
    def __init__(self, db: Session, debounce_minutes: int = 5):
        self.db = db
        self.debounce_minutes = debounce_minutes

    def recent_scan(self, card: str, now: datetime) -> Optional[AttendanceRecord]:
        if self.debounce_minutes <= 0:
            return None
        window_start = now - timedelta(minutes=self.debounce_minutes)
        return (
            self.db.query(AttendanceRecord)
            .filter(
                AttendanceRecord.card_identifier == card,
                AttendanceRecord.check_in_time >= window_start,
            )
            .order_by(AttendanceRecord.check_in_time.desc())
            .first()
        )

    def existing_check_in(self, session_id: Optional[int], student_id: Optional[int]) -> Optional[AttendanceRecord]:
        if session_id is None or student_id is None:
            return None
        return (
            self.db.query(AttendanceRecord)
            .filter(
                AttendanceRecord.session_id == session_id,
                AttendanceRecord.student_id == student_id,
            )
            .first()
        )

    def is_duplicate(self, card: str, session_id: Optional[int], student_id: Optional[int],
                     now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return (
            self.recent_scan(card, now) is not None
            or self.existing_check_in(session_id, student_id) is not None
        )
