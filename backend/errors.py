"""
Failure taxonomy for scan ingestion.

Every error knows the HTTP status and JSON body the readers receive, so the
service layer never has to import FastAPI.
"""
from typing import Optional

from models import utc_isoformat


class ScanError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class Unauthorized(ScanError):
    status_code = 401

    def __init__(self):
        super().__init__("Invalid API key")


class SessionNotFound(ScanError):
    status_code = 404

    def __init__(self, session_code: Optional[str]):
        super().__init__("Active session not found")
        self.session_code = session_code

    def to_dict(self) -> dict:
        return {"error": self.message, "session_code": self.session_code}


class AlreadyCheckedIn(ScanError):
    """Duplicate scan. Readers treat this as "already handled"."""
    status_code = 409

    CHECKED_IN = "Already checked in"
    SCANNED_RECENTLY = "Already scanned recently"

    def __init__(self, message: str, check_in_time, student: Optional[str] = None):
        super().__init__(message)
        self.check_in_time = check_in_time
        self.student = student

    def to_dict(self) -> dict:
        body = {"error": self.message, "check_in_time": utc_isoformat(self.check_in_time)}
        if self.student:
            body["student"] = self.student
        return body


class PersistenceFailure(ScanError):
    status_code = 500

    def __init__(self, details: Optional[str] = None):
        super().__init__("Failed to record attendance")
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidScan(ScanError):
    status_code = 400

    def __init__(self, message: str = "rfid_code is required"):
        super().__init__(message)
