import logging
import re
import time
from fastapi import Request
from logging.handlers import TimedRotatingFileHandler
import gzip
import shutil
import os

from config import LOG_FILE, LOG_MAX_SIZE, LOG_BACKUP_COUNT

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

# Reader secrets must never reach the log files
_API_KEY_PATTERN = re.compile(r'("api_key"\s*:\s*)"[^"]*"')


def redact(body: str) -> str:
    return _API_KEY_PATTERN.sub(r'\1"***"', body)


def configure_logging(level=logging.INFO):
    """Console output for the service modules (identity, sessions, ingestion...)."""
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _gzip_namer(name):
    return name + ".gz"


def _gzip_rotator(source, dest):
    with open(source, "rb") as f_in, gzip.open(dest, "wb") as f_out:
        shutil.copyfileobj(f_in, f_out)
    os.remove(source)


class SizedTimedRotatingFileHandler(TimedRotatingFileHandler):
    """Rolls over on the weekly schedule or once the file reaches max_bytes; rotated files are gzipped."""

    def __init__(self, filename, max_bytes=LOG_MAX_SIZE, **kwargs):
        super().__init__(filename, **kwargs)
        self.max_bytes = max_bytes
        self.namer = _gzip_namer
        self.rotator = _gzip_rotator

    def shouldRollover(self, record):
        if super().shouldRollover(record):
            return True
        return os.path.exists(self.baseFilename) and os.path.getsize(self.baseFilename) >= self.max_bytes


def setup_logger(log_file: str = LOG_FILE):
    """Request log: weekly rotation (Monday), capped at LOG_MAX_SIZE, old files compressed."""
    logger = logging.getLogger("request_logger")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    if logger.handlers:
        return logger

    handler = SizedTimedRotatingFileHandler(
        log_file,
        when="W0",
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
        delay=True,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger


def create_logging_middleware(app, logger):
    """
    Adds a middleware to log request & response time, IP, and bodies.
    """
    @app.middleware("http")
    async def log_request_response_time(request: Request, call_next):
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "-"
        method = request.method
        path = request.url.path

        try:
            body_bytes = await request.body()
            request_body = redact(body_bytes.decode("utf-8")) if body_bytes else ""
        except UnicodeDecodeError:
            request_body = "<Failed to read body>"

        response = await call_next(request)
        process_time = time.perf_counter() - start_time

        try:
            response_body = response.body.decode("utf-8") if hasattr(response, "body") else "<Streaming>"
        except UnicodeDecodeError:
            response_body = "<Failed to read response body>"

        logger.info(
            f"IP={client_ip} | {method} {path} | Status={response.status_code} | "
            f"Time={process_time:.4f}s | RequestBody={request_body} | ResponseBody={response_body}"
        )
        response.headers["X-Process-Time"] = str(round(process_time, 4))
        return response

    return app
