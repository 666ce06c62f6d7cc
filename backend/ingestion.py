"""
Scan ingestion: authenticate a reader, attribute the tap and append it to the
attendance ledger exactly once.
"""
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import ScanPolicy
from duplicates import DuplicateGuard
from errors import (
    ScanError, Unauthorized, InvalidScan, SessionNotFound, AlreadyCheckedIn, PersistenceFailure,
)
from identity import IdentityResolver, normalize_card_identifier
from models import AttendanceRecord, Student, utc_isoformat
from sessions import SessionResolver

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    record_id: int
    student: dict
    session_code: Optional[str]
    session: Optional[dict]
    check_in_time: datetime

    def as_dict(self) -> dict:
        body = {
            "success": True,
            "student": self.student,
            "check_in_time": utc_isoformat(self.check_in_time),
        }
        if self.session_code:
            body["session_code"] = self.session_code
            body["session"] = self.session
        return body


class ScanIngestionService:
    """
    One instance per request. All reads and writes of a scan share one
    transaction, so a rejected scan leaves no trace (not even a placeholder).
    """

    def __init__(self, db: Session, policy: Optional[ScanPolicy] = None,
                 clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db
        self.policy = policy or ScanPolicy.from_env()
        self.clock = clock
        self.identity = IdentityResolver(db)
        self.sessions = SessionResolver(db, self.policy.session_strategy, self.policy.device_session_code)
        self.guard = DuplicateGuard(db, self.policy.debounce_minutes)

    def authenticate(self, api_key: Optional[str]):
        if not isinstance(api_key, str) or not api_key or \
                not hmac.compare_digest(api_key.encode(), self.policy.api_key.encode()):
            logger.warning("Rejected scan with invalid API key")
            raise Unauthorized()

    def ingest(self, rfid_code: str, api_key: Optional[str], session_code: Optional[str] = None) -> ScanResult:
        self.authenticate(api_key)
        card = normalize_card_identifier(rfid_code)
        if not card:
            raise InvalidScan()

        # A constraint race on the directory (two first taps of an unknown card)
        # is retried once; a race on the ledger is a duplicate.
        for attempt in (1, 2):
            try:
                return self._ingest_once(rfid_code, card, session_code)
            except IntegrityError as e:
                self.db.rollback()
                try:
                    existing = self._committed_check_in(card, session_code)
                except SQLAlchemyError as lookup_error:
                    self.db.rollback()
                    logger.exception("Conflict lookup for card %s failed", card)
                    raise PersistenceFailure(type(lookup_error).__name__)
                if existing is not None:
                    logger.info("Concurrent scan of card %s lost the race", card)
                    raise AlreadyCheckedIn(
                        AlreadyCheckedIn.CHECKED_IN, existing.check_in_time, existing.student.name,
                    )
                if attempt == 2:
                    logger.error("Ledger write for card %s failed: %s", card, e.orig)
                    raise PersistenceFailure(type(e).__name__)
                logger.info("Directory conflict for card %s, retrying", card)
            except ScanError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.exception("Ledger write for card %s failed", card)
                raise PersistenceFailure(type(e).__name__)

    def _ingest_once(self, rfid_code: str, card: str, session_code: Optional[str]) -> ScanResult:
        now = self.clock()

        recent = self.guard.recent_scan(card, now)
        if recent is not None:
            logger.info("Card %s scanned again within %d minutes", card, self.policy.debounce_minutes)
            raise AlreadyCheckedIn(
                AlreadyCheckedIn.SCANNED_RECENTLY, recent.check_in_time,
                recent.student.name if recent.student else None,
            )

        session = self.sessions.resolve(session_code)
        if session is None and self.policy.require_session:
            raise SessionNotFound(session_code or self.policy.device_session_code)

        student = self.identity.resolve(card)

        existing = self.guard.existing_check_in(session.id if session else None, student.id)
        if existing is not None:
            logger.info("%s already checked in to %s", student.name, session.session_code)
            raise AlreadyCheckedIn(AlreadyCheckedIn.CHECKED_IN, existing.check_in_time, student.name)

        record = AttendanceRecord(
            session_id=session.id if session else None,
            student_id=student.id,
            rfid_scan=rfid_code,
            card_identifier=card,
            check_in_time=now,
        )
        self.db.add(record)
        self.db.flush()

        result = ScanResult(
            record_id=record.id,
            student=student.summary(),
            session_code=session.session_code if session else None,
            session=session.summary() if session else None,
            check_in_time=now,
        )
        self.db.commit()
        logger.info(
            "Attendance recorded: student=%s session=%s time=%s",
            result.student["name"], result.session_code, now.isoformat(),
        )
        return result

    def _committed_check_in(self, card: str, session_code: Optional[str]) -> Optional[AttendanceRecord]:
        student = self.identity.lookup(card)
        session = self.sessions.resolve(session_code)
        if student is None or session is None:
            return None
        return self.guard.existing_check_in(session.id, student.id)

    def backfill_identity(self, rfid_code: str) -> dict:
        """
        Attribute ledger rows for a card whose person was unknown when scanned.

        Rows keep their id and check-in time. A row is skipped when the student
        already has a record in the same session.
        """
        card = normalize_card_identifier(rfid_code)
        if not card:
            raise InvalidScan()
        try:
            student = self.identity.resolve(card)
            if student.is_placeholder:
                self.db.rollback()
                return {"resolved": False, "card_identifier": card, "updated": 0, "skipped": 0}

            placeholders = select(Student.id).where(Student.is_placeholder.is_(True))
            rows = (
                self.db.query(AttendanceRecord)
                .filter(
                    AttendanceRecord.card_identifier == card,
                    or_(AttendanceRecord.student_id.is_(None), AttendanceRecord.student_id.in_(placeholders)),
                )
                .order_by(AttendanceRecord.check_in_time.asc())
                .all()
            )

            updated = skipped = 0
            for row in rows:
                if self.guard.existing_check_in(row.session_id, student.id) is not None:
                    skipped += 1
                    continue
                row.student_id = student.id
                self.db.flush()
                updated += 1

            summary = student.summary()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Backfill for card %s failed", card)
            raise PersistenceFailure(type(e).__name__)

        logger.info("Backfilled %d records for card %s (%d skipped)", updated, card, skipped)
        return {"resolved": True, "card_identifier": card, "student": summary,
                "updated": updated, "skipped": skipped}
