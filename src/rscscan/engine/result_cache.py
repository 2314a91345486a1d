# src/rscscan/engine/result_cache.py
"""
Result cache: normalized URL -> latest completed verdict, fresh for a fixed TTL.

Entries are upserted last-write-wins and never deleted; staleness is decided at read
time against expires_at.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rscscan.engine.errors import OrchestrationFault
from rscscan.engine.models import ScanCache, utcnow

DEFAULT_TTL = timedelta(hours=1)


@dataclass(frozen=True)
class CacheEntry:
    normalized_url: str
    last_scan_id: str
    vulnerable: bool
    confidence: Optional[str]
    cached_at: datetime
    expires_at: datetime

    def is_fresh(self, now: datetime) -> bool:
        return now < self.expires_at


class ResultCache(ABC):
    @abstractmethod
    def get(self, normalized_url: str) -> Optional[CacheEntry]:
        pass

    @abstractmethod
    def put(self, normalized_url: str, job_id: str, vulnerable: bool, confidence: Optional[str]) -> CacheEntry:
        pass

    def get_fresh(self, normalized_url: str) -> Optional[CacheEntry]:
        entry = self.get(normalized_url)
        if entry is not None and entry.is_fresh(self.now()):
            return entry
        return None

    def now(self) -> datetime:
        return utcnow()


class SqlResultCache(ResultCache):
    def __init__(self, session_factory, ttl: timedelta = DEFAULT_TTL, clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory
        self.ttl = ttl
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    def get(self, normalized_url: str) -> Optional[CacheEntry]:
        db = self.session_factory()
        try:
            row = db.query(ScanCache).filter(ScanCache.normalized_url == normalized_url).first()
        except SQLAlchemyError as e:
            raise OrchestrationFault(f"Could not read cache entry: {e}") from e
        finally:
            db.close()
        if row is None:
            return None
        return CacheEntry(
            normalized_url=row.normalized_url,
            last_scan_id=row.last_scan_id,
            vulnerable=row.vulnerable,
            confidence=row.confidence,
            cached_at=row.cached_at,
            expires_at=row.expires_at,
        )

    def put(self, normalized_url: str, job_id: str, vulnerable: bool, confidence: Optional[str]) -> CacheEntry:
        cached_at = self.now()
        entry = CacheEntry(normalized_url, job_id, vulnerable, confidence, cached_at, cached_at + self.ttl)
        values = {
            "last_scan_id": entry.last_scan_id,
            "vulnerable": entry.vulnerable,
            "confidence": entry.confidence,
            "cached_at": entry.cached_at,
            "expires_at": entry.expires_at,
        }
        db = self.session_factory()
        try:
            updated = db.query(ScanCache).filter(ScanCache.normalized_url == normalized_url).update(values)
            if not updated:
                db.add(ScanCache(normalized_url=normalized_url, **values))
            try:
                db.commit()
            except IntegrityError:
                # Another worker inserted the same key first; last write still wins
                db.rollback()
                db.query(ScanCache).filter(ScanCache.normalized_url == normalized_url).update(values)
                db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise OrchestrationFault(f"Could not write cache entry: {e}") from e
        finally:
            db.close()
        logging.info(f"[job_id={job_id}] Cached verdict for {normalized_url} until {entry.expires_at.isoformat()}")
        return entry
