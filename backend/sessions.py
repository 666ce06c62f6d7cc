"""
Attendance session resolution and lifecycle.
"""
import logging
import secrets
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from models import AttendanceSession, AttendanceRecord, ClassSection

logger = logging.getLogger(__name__)


class SessionStrategy(str, Enum):
    EXPLICIT = "explicit"
    EXPLICIT_OR_ACTIVE = "explicit_or_active"
    MOST_RECENT = "most_recent"


class SessionResolver:
    """
    Maps a scan to the session it belongs to.

    Each strategy is a fixed prefix of one order:
      1. active session whose code (or owning class code) equals the hint
      2. most recently created active session
      3. most recently created session of any state
    EXPLICIT stops after 1, EXPLICIT_OR_ACTIVE after 2, MOST_RECENT after 3.
    """

    def __init__(self, db: Session, strategy=SessionStrategy.EXPLICIT_OR_ACTIVE,
                 device_session_code: Optional[str] = None):
        self.db = db
        self.strategy = SessionStrategy(strategy)
        self.device_session_code = device_session_code

    def resolve(self, hint: Optional[str] = None) -> Optional[AttendanceSession]:
        code = (hint or "").strip() or self.device_session_code
        if code:
            session = self.by_code(code)
            if session is not None:
                return session
            logger.info("No active session for code %s", code)

        if self.strategy == SessionStrategy.EXPLICIT:
            return None

        session = self._latest(active_only=True)
        if session is not None or self.strategy == SessionStrategy.EXPLICIT_OR_ACTIVE:
            return session

        return self._latest(active_only=False)

    def by_code(self, code: str) -> Optional[AttendanceSession]:
        session = (
            self.db.query(AttendanceSession)
            .filter(AttendanceSession.session_code == code, AttendanceSession.is_active.is_(True))
            .first()
        )
        if session is None:
            session = (
                self.db.query(AttendanceSession)
                .join(ClassSection, AttendanceSession.class_id == ClassSection.id)
                .filter(ClassSection.code == code, AttendanceSession.is_active.is_(True))
                .order_by(AttendanceSession.created_at.desc(), AttendanceSession.id.desc())
                .first()
            )
        return session

    def _latest(self, active_only: bool) -> Optional[AttendanceSession]:
        query = self.db.query(AttendanceSession)
        if active_only:
            query = query.filter(AttendanceSession.is_active.is_(True))
        return query.order_by(AttendanceSession.created_at.desc(), AttendanceSession.id.desc()).first()


def generate_session_code(class_code: str) -> str:
    return f"{class_code.upper()}-{secrets.token_hex(3).upper()}"


def start_session(db: Session, class_code: str, start_time: Optional[datetime] = None) -> AttendanceSession:
    section = db.query(ClassSection).filter(ClassSection.code == class_code).first()
    if section is None:
        raise LookupError(f"Class {class_code} not found")

    now = datetime.utcnow()
    session = AttendanceSession(
        class_id=section.id,
        session_code=generate_session_code(section.code),
        is_active=True,
        start_time=start_time or now,
        created_at=now,
    )
    db.add(session)
    db.flush()
    logger.info("Started session %s for class %s", session.session_code, section.code)
    return session


def end_session(db: Session, session_code: str) -> AttendanceSession:
    session = db.query(AttendanceSession).filter(AttendanceSession.session_code == session_code).first()
    if session is None:
        raise LookupError(f"Session {session_code} not found")
    if not session.is_active:
        raise ValueError(f"Session {session_code} already ended")

    session.is_active = False
    session.end_time = datetime.utcnow()
    logger.info("Ended session %s", session_code)
    return session


def purge_session(db: Session, session_code: str) -> int:
    """Delete a session and its ledger rows. Returns the number of rows removed."""
    session = db.query(AttendanceSession).filter(AttendanceSession.session_code == session_code).first()
    if session is None:
        raise LookupError(f"Session {session_code} not found")

    removed = db.query(AttendanceRecord).filter(AttendanceRecord.session_id == session.id).delete()
    db.delete(session)
    logger.info("Purged session %s with %d attendance records", session_code, removed)
    return removed


def active_session(db: Session) -> Optional[AttendanceSession]:
    return SessionResolver(db, SessionStrategy.EXPLICIT_OR_ACTIVE).resolve(None)
