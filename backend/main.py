from datetime import datetime
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Request, Response, Body
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import ScanPolicy
from database import get_db, init_db
from errors import ScanError, InvalidScan
from identity import normalize_card_identifier
from ingestion import ScanIngestionService
from logger_helper import configure_logging, setup_logger, create_logging_middleware
from models import Student, PendingRegistration, ClassSection, Enrollment, AttendanceSession
from reminders import dispatch_reminders
from reports import list_attendance, attendance_percentage
from sessions import start_session, end_session, purge_session, active_session


# Request/Response Models
class ScanRequest(BaseModel):
    # some readers send the card UID as a bare number
    model_config = ConfigDict(coerce_numbers_to_str=True)

    rfid_code: Optional[str] = None
    api_key: Optional[str] = None
    session_code: Optional[str] = None

class StartSessionRequest(BaseModel):
    class_code: str
    start_time: Optional[datetime] = None

class AddStudentRequest(BaseModel):
    name: str
    matric_number: str
    rfid_code: str
    department: Optional[str] = None
    email: Optional[str] = None

class RegistrationRequest(BaseModel):
    full_name: str
    matric_number: str
    rfid_code: str
    department: str
    level: Optional[str] = None


def get_policy() -> ScanPolicy:
    return ScanPolicy.from_env()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize resources on startup."""
    configure_logging()
    init_db()
    yield


app = FastAPI(
    title="RFID Attendance",
    description="Card-tap attendance ingestion for lecture sessions",
    version="1.0.0",
    lifespan=lifespan
)

# Readers and dashboards call from anywhere
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

create_logging_middleware(app, setup_logger())


@app.exception_handler(ScanError)
async def scan_error_handler(request: Request, exc: ScanError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
async def health_check(policy: ScanPolicy = Depends(get_policy)):
    return {
        "status": "running",
        "session_strategy": policy.session_strategy,
        "require_session": policy.require_session,
        "debounce_minutes": policy.debounce_minutes,
    }

# Scan ingestion

@app.options("/rfid-scan")
async def rfid_scan_preflight():
    return Response(status_code=200)

@app.post("/rfid-scan")
def rfid_scan(payload: dict = Body(...), db: Session = Depends(get_db), policy: ScanPolicy = Depends(get_policy)):
    """Record one card tap from a reader."""
    service = ScanIngestionService(db, policy)
    # the key is checked on the raw body so a bad key is a 401 whatever the other fields hold
    service.authenticate(payload.get("api_key"))
    try:
        request = ScanRequest.model_validate(payload)
    except ValidationError:
        raise InvalidScan("rfid_code and session_code must be strings")
    result = service.ingest(request.rfid_code, request.api_key, request.session_code)
    return result.as_dict()

@app.post("/send-reminders")
def send_reminders(db: Session = Depends(get_db)):
    """Cron target: notify enrolled students of sessions starting soon."""
    try:
        return dispatch_reminders(db)
    except SQLAlchemyError as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=f"Reminder dispatch failed: {type(e).__name__}")

# Session lifecycle

@app.post("/sessions/")
def create_session(request: StartSessionRequest, db: Session = Depends(get_db)):
    try:
        session = start_session(db, request.class_code, request.start_time)
        db.commit()
        return session.summary()
    except LookupError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

@app.get("/sessions/active")
def get_active_session(db: Session = Depends(get_db)):
    session = active_session(db)
    if session is None:
        raise HTTPException(status_code=404, detail="No active session")
    return session.summary()

@app.post("/sessions/{session_code}/end")
def finish_session(session_code: str, db: Session = Depends(get_db)):
    try:
        session = end_session(db, session_code)
        db.commit()
        return session.summary()
    except LookupError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))

@app.delete("/sessions/{session_code}")
def delete_session(session_code: str, db: Session = Depends(get_db)):
    """Admin purge of a session and its ledger rows."""
    try:
        removed = purge_session(db, session_code)
        db.commit()
        return {"message": f"Session {session_code} deleted", "records_deleted": removed}
    except LookupError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))

@app.get("/sessions/{session_code}/attendance")
def session_attendance(session_code: str, db: Session = Depends(get_db)):
    session = db.query(AttendanceSession).filter(AttendanceSession.session_code == session_code).first()
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_code} not found")
    records = list_attendance(db, session_id=session.id, limit=1000)
    return {"session": session.summary(), "present": len(records), "attendance": records}

# Directory

@app.post("/students/")
def add_student(request: AddStudentRequest, db: Session = Depends(get_db)):
    """Register a student; a placeholder made for the same card is taken over."""
    card = normalize_card_identifier(request.rfid_code)
    if not card:
        raise HTTPException(status_code=400, detail="rfid_code is required")
    try:
        student = db.query(Student).filter(Student.card_identifier == card).first()
        if student and not student.is_placeholder:
            raise HTTPException(status_code=400, detail=f"Card {card} already assigned to {student.name}")
        if student is None:
            student = Student(card_identifier=card)
            db.add(student)

        student.name = request.name
        student.matric_number = request.matric_number
        student.department = request.department
        student.email = request.email
        student.is_placeholder = False
        db.commit()
        db.refresh(student)

        return {"message": "Student added successfully", "student_id": student.id, **student.summary()}
    except HTTPException:
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=f"Failed to add student: {type(e).__name__}")

@app.get("/students/")
def list_students(include_placeholders: bool = True, db: Session = Depends(get_db)):
    query = db.query(Student)
    if not include_placeholders:
        query = query.filter(Student.is_placeholder.is_(False))
    return {"students": [
        {"id": s.id, "card_identifier": s.card_identifier, "is_placeholder": s.is_placeholder, **s.summary()}
        for s in query.order_by(Student.name).all()
    ]}

@app.post("/registrations/")
def add_registration(request: RegistrationRequest, db: Session = Depends(get_db)):
    """Self-registration; promoted into the directory on the card's next tap."""
    card = normalize_card_identifier(request.rfid_code)
    if not card:
        raise HTTPException(status_code=400, detail="rfid_code is required")
    registration = PendingRegistration(
        full_name=request.full_name,
        matric_number=request.matric_number,
        card_identifier=card,
        department=request.department,
        level=request.level,
    )
    db.add(registration)
    db.commit()
    return {"message": "Registration received", "registration_id": registration.id}

@app.post("/students/{rfid_code}/backfill")
def backfill_student(rfid_code: str, db: Session = Depends(get_db), policy: ScanPolicy = Depends(get_policy)):
    """Attribute earlier unknown-card scans once the card's owner is known."""
    return ScanIngestionService(db, policy).backfill_identity(rfid_code)

@app.get("/students/{student_id}/attendance-percentage")
def student_attendance_percentage(student_id: int, class_id: int, db: Session = Depends(get_db)):
    return {
        "student_id": student_id,
        "class_id": class_id,
        "percentage": attendance_percentage(db, class_id, student_id),
    }

# Attendance read model

@app.get("/attendance/")
def get_attendance(session_id: Optional[int] = None, student_id: Optional[int] = None,
                   since: Optional[datetime] = None, limit: int = 50, db: Session = Depends(get_db)):
    """List recent attendance records."""
    return {"attendance": list_attendance(db, session_id, student_id, since, limit)}

@app.post("/seed-demo/")
def seed_demo(db: Session = Depends(get_db)):
    """Seed the database with demo classes, students and one pending registration."""
    try:
        existing = db.query(Student).count()
        if existing > 0:
            return {"message": f"Database already has {existing} students. Clear first to reseed."}

        section = ClassSection(name="Data Structures", code="CS201", room="A101",
                               time="10:00 AM - 11:30 AM", capacity=45)
        db.add(section)

        demo_students = [
            {"name": "Alice Johnson", "matric_number": "CSC/2021/001", "card_identifier": "04A1B2C3"},
            {"name": "Bob Smith", "matric_number": "CSC/2021/002", "card_identifier": "04D4E5F6"},
            {"name": "Carol Davis", "matric_number": "CSC/2021/003", "card_identifier": "0477AA10"},
        ]
        created = []
        for data in demo_students:
            student = Student(department="Computer Science", **data)
            db.add(student)
            created.append(student)
        db.flush()

        for student in created:
            db.add(Enrollment(class_id=section.id, student_id=student.id))
        db.add(PendingRegistration(full_name="David Wilson", matric_number="CSC/2021/004",
                                   card_identifier="04BEEF01", department="Computer Science", level="200"))

        session = start_session(db, section.code)
        db.commit()

        return {
            "message": f"Successfully seeded {len(created)} demo students",
            "students": [s.name for s in created],
            "session_code": session.session_code,
        }
    except SQLAlchemyError as e:
        db.rollback()
        raise HTTPException(status_code=500, detail=f"Seeding failed: {type(e).__name__}")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
