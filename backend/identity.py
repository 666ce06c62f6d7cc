"""
Card identifier to person resolution.

Lookup order: the student directory, then pending self-registrations (promoted
into the directory on first sight), then a placeholder student so that every
physical tap still has a ledger row to point at.
"""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from models import Student, PendingRegistration, UNKNOWN_NAME, UNKNOWN_FIELD

logger = logging.getLogger(__name__)


def normalize_card_identifier(raw: str) -> str:
    """Strip every whitespace character and upper-case the card UID."""
    return "".join((raw or "").split()).upper()


class IdentityResolver:
    def __init__(self, db: Session):
        self.db = db

    def lookup(self, card: str):
        return self.db.query(Student).filter(Student.card_identifier == card).first()

    def pending_for(self, card: str):
        # first-seen-wins: the oldest unpromoted registration claims the card
        return (
            self.db.query(PendingRegistration)
            .filter(
                PendingRegistration.card_identifier == card,
                PendingRegistration.promoted_student_id.is_(None),
            )
            .order_by(PendingRegistration.created_at.asc(), PendingRegistration.id.asc())
            .first()
        )

    def resolve(self, card: str) -> Student:
        student = self.lookup(card)
        if student is not None and not student.is_placeholder:
            return student

        pending = self.pending_for(card)
        if pending is not None:
            if student is None:
                student = Student(card_identifier=card)
                self.db.add(student)
            self._copy_registration(student, pending)
            self.db.flush()
            pending.promoted_student_id = student.id
            logger.info("Promoted pending registration %s for card %s", pending.id, card)
            return student

        if student is not None:
            return student

        student = Student(
            name=UNKNOWN_NAME,
            matric_number=UNKNOWN_FIELD,
            department=UNKNOWN_FIELD,
            card_identifier=card,
            is_placeholder=True,
        )
        self.db.add(student)
        self.db.flush()
        logger.info("Card %s not registered, created placeholder student %s", card, student.id)
        return student

    @staticmethod
    def _copy_registration(student: Student, pending: PendingRegistration):
        student.name = pending.full_name
        student.matric_number = pending.matric_number
        student.department = pending.department
        student.is_placeholder = False
        student.updated_at = datetime.utcnow()
