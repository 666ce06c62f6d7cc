from datetime import datetime

from identity import IdentityResolver, normalize_card_identifier
from models import Student, PendingRegistration, UNKNOWN_NAME


def test_normalize_strips_whitespace_and_folds_case():
    assert normalize_card_identifier("  ab 12\t") == "AB12"
    assert normalize_card_identifier("04a1b2c3\n") == "04A1B2C3"
    assert normalize_card_identifier("") == ""
    assert normalize_card_identifier(None) == ""


def test_directory_hit_wins(db, make_student, make_registration):
    alice = make_student(card="04A1B2C3")
    make_registration(card="04A1B2C3", full_name="Someone Else")

    resolved = IdentityResolver(db).resolve("04A1B2C3")

    assert resolved.id == alice.id
    assert db.query(PendingRegistration).one().promoted_student_id is None


def test_pending_registration_is_promoted(db, make_registration):
    registration = make_registration(card="04BEEF01")

    student = IdentityResolver(db).resolve("04BEEF01")
    db.commit()

    assert student.name == "David Wilson"
    assert student.matric_number == "CSC/2021/004"
    assert student.department == "Computer Science"
    assert not student.is_placeholder
    db.refresh(registration)
    assert registration.promoted_student_id == student.id

    # The next tap hits the directory directly
    assert IdentityResolver(db).resolve("04BEEF01").id == student.id
    assert db.query(Student).count() == 1


def test_oldest_pending_registration_claims_the_card(db, make_registration):
    make_registration(card="04BEEF01", full_name="Late Comer", created_at=datetime(2026, 3, 1, 15, 0))
    make_registration(card="04BEEF01", full_name="First Claimant", created_at=datetime(2026, 3, 1, 9, 0))

    student = IdentityResolver(db).resolve("04BEEF01")

    assert student.name == "First Claimant"


def test_unknown_card_gets_a_single_placeholder(db):
    resolver = IdentityResolver(db)

    first = resolver.resolve("DEADBEEF")
    db.commit()
    second = resolver.resolve("DEADBEEF")

    assert first.id == second.id
    assert first.is_placeholder
    assert first.name == UNKNOWN_NAME
    assert first.matric_number == "N/A"
    assert db.query(Student).count() == 1


def test_placeholder_is_upgraded_when_registration_arrives(db, make_registration):
    resolver = IdentityResolver(db)
    placeholder = resolver.resolve("DEADBEEF")
    db.commit()
    placeholder_id = placeholder.id

    make_registration(card="DEADBEEF", full_name="Erin Black", matric="CSC/2021/009")
    student = resolver.resolve("DEADBEEF")
    db.commit()

    assert student.id == placeholder_id
    assert student.name == "Erin Black"
    assert not student.is_placeholder


def test_lookup_does_not_create_records(db):
    assert IdentityResolver(db).lookup("NOPE") is None
    assert db.query(Student).count() == 0
