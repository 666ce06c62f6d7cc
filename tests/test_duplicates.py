from datetime import datetime, timedelta

from duplicates import DuplicateGuard
from models import AttendanceRecord

NOW = datetime(2026, 3, 2, 9, 0, 0)


def add_record(db, card, when, session_id=None, student_id=None):
    record = AttendanceRecord(session_id=session_id, student_id=student_id,
                              rfid_scan=card, card_identifier=card, check_in_time=when)
    db.add(record)
    db.commit()
    return record


def test_recent_scan_inside_window(db):
    record = add_record(db, "AB12", NOW - timedelta(minutes=4, seconds=59))

    assert DuplicateGuard(db, 5).recent_scan("AB12", NOW).id == record.id
    assert DuplicateGuard(db, 5).recent_scan("CD34", NOW) is None


def test_recent_scan_outside_window(db):
    add_record(db, "AB12", NOW - timedelta(minutes=5, seconds=1))

    assert DuplicateGuard(db, 5).recent_scan("AB12", NOW) is None


def test_zero_window_disables_debounce(db):
    add_record(db, "AB12", NOW)

    assert DuplicateGuard(db, 0).recent_scan("AB12", NOW) is None


def test_existing_check_in_per_session(db, make_session, make_student):
    s1 = make_session(code="S1")
    s2 = make_session(code="S2", created_at=NOW)
    alice = make_student()
    add_record(db, "04A1B2C3", NOW - timedelta(hours=1), session_id=s1.id, student_id=alice.id)
    guard = DuplicateGuard(db, 5)

    assert guard.existing_check_in(s1.id, alice.id) is not None
    assert guard.existing_check_in(s2.id, alice.id) is None
    assert guard.existing_check_in(None, alice.id) is None


def test_is_duplicate_combines_both_filters(db, make_session, make_student):
    s1 = make_session(code="S1")
    alice = make_student()
    guard = DuplicateGuard(db, 5)

    assert not guard.is_duplicate("04A1B2C3", s1.id, alice.id, now=NOW)

    add_record(db, "04A1B2C3", NOW - timedelta(hours=1), session_id=s1.id, student_id=alice.id)
    assert guard.is_duplicate("04A1B2C3", s1.id, alice.id, now=NOW)

    add_record(db, "FFFF", NOW - timedelta(minutes=1))
    assert guard.is_duplicate("FFFF", None, None, now=NOW)
