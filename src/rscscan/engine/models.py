# src/rscscan/engine/models.py
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone

Base = declarative_base()

PENDING = "pending"
RUNNING = "running"
COMPLETE = "complete"
ERROR = "error"
ACTIVE_STATUSES = (PENDING, RUNNING)


def utcnow() -> datetime:
    # Naive UTC so values compare cleanly after a round trip through SQLite
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ScanJob(Base):
    __tablename__ = 'scan_jobs'
    id = Column(String, primary_key=True)
    url = Column(Text, nullable=False)
    normalized_url = Column(Text, nullable=False, index=True)
    status = Column(String, nullable=False, default=PENDING)

    vulnerable = Column(Boolean, nullable=True)
    confidence = Column(String, nullable=True)
    uses_rsc = Column(Boolean, nullable=True)
    framework = Column(String, nullable=True)
    detected_version = Column(String, nullable=True)
    http_status = Column(Integer, nullable=True)
    error_signature = Column(Text, nullable=True)
    raw_response = Column(Text, nullable=True)  # first 1000 chars of the probe response
    duration_ms = Column(Integer, nullable=True)

    authorization_confirmed = Column(Boolean, nullable=False, default=False)
    ip_address = Column(String, nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)


class ScanCache(Base):
    __tablename__ = 'scan_cache'
    normalized_url = Column(Text, primary_key=True)
    last_scan_id = Column(String, nullable=False)
    vulnerable = Column(Boolean, nullable=False)
    confidence = Column(String, nullable=True)
    cached_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
