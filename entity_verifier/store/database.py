"""SQLAlchemy models, database initialisation and the record/task stores.

Schema targets SQLite for local runs; point DATABASE_URL at Postgres for a
shared deployment. Stores open a short-lived session per call and return
plain dicts so callers never hold detached ORM instances.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Column, DateTime, Float, Integer, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from entity_verifier.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------

class CandidateRecord(Base):
    """A person record with its latest verification outcome."""
    __tablename__ = "candidates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(256), nullable=False)
    last_name = Column(String(256), nullable=False, index=True)
    current_company = Column(String(512), nullable=True, index=True)
    current_title = Column(String(512), nullable=True)
    email = Column(String(512), nullable=True)
    suggested_email = Column(String(512), nullable=True)
    linkedin_url = Column(String(1024), nullable=True)
    bio_url = Column(String(1024), nullable=True)
    company_domain = Column(String(256), nullable=True)
    candidate_hash = Column(String(64), nullable=True, index=True)
    confidence_score = Column(Float, nullable=True)
    verification_status = Column(String(32), nullable=True, index=True)
    verification_notes = Column(Text, nullable=True)
    verification_json = Column(Text, nullable=True)  # full VerificationResult
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "current_company": self.current_company,
            "current_title": self.current_title,
            "email": self.email,
            "suggested_email": self.suggested_email,
            "linkedin_url": self.linkedin_url,
            "bio_url": self.bio_url,
            "company_domain": self.company_domain,
            "candidate_hash": self.candidate_hash,
            "confidence_score": self.confidence_score,
            "verification_status": self.verification_status,
            "verification_notes": self.verification_notes,
        }


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------

class CompanyRecord(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(512), nullable=False, index=True)
    website = Column(String(1024), nullable=True)
    domain = Column(String(256), nullable=True, index=True)
    email_pattern = Column(String(64), nullable=True)
    location = Column(String(512), nullable=True)
    industry = Column(String(256), nullable=True)
    parent_company = Column(String(512), nullable=True)
    offices = Column(Text, default="[]")  # JSON list of {city, country, address}
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def get_offices(self) -> list[dict]:
        return json.loads(self.offices) if self.offices else []

    def set_offices(self, value: list[dict]) -> None:
        self.offices = json.dumps(value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "website": self.website,
            "domain": self.domain,
            "email_pattern": self.email_pattern,
            "location": self.location,
            "industry": self.industry,
            "parent_company": self.parent_company,
            "offices": self.get_offices(),
        }


# ---------------------------------------------------------------------------
# Ingestion tasks
# ---------------------------------------------------------------------------

TASK_QUEUED = "queued"
TASK_PROCESSING = "processing"
TASK_COMPLETED = "completed"
TASK_DUPLICATE = "duplicate"
TASK_FAILED = "failed"


class IngestionTask(Base):
    """One queued item of a batch ingestion job."""
    __tablename__ = "ingestion_tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(128), nullable=False, index=True)
    kind = Column(String(32), nullable=False)  # candidate | company
    payload = Column(Text, nullable=False)  # JSON row dict
    status = Column(String(32), nullable=False, default=TASK_QUEUED, index=True)
    record_id = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def get_payload(self) -> dict:
        return json.loads(self.payload) if self.payload else {}


# ---------------------------------------------------------------------------
# Engine / session helpers
# ---------------------------------------------------------------------------

def get_engine(url: str | None = None):
    url = url or settings.effective_database_url
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=False, connect_args=connect_args)


def get_session_factory(url: str | None = None) -> sessionmaker:
    engine = get_engine(url)
    return sessionmaker(bind=engine)


def init_db(url: str | None = None) -> None:
    """Create all tables if they don't exist."""
    engine = get_engine(url)
    Base.metadata.create_all(engine)


def get_session(url: str | None = None) -> Session:
    factory = get_session_factory(url)
    return factory()


# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------

_CANDIDATE_FIELDS = frozenset(c.name for c in CandidateRecord.__table__.columns) - {"id"}
_COMPANY_FIELDS = frozenset(c.name for c in CompanyRecord.__table__.columns) - {"id"}


class RecordStore:
    """Candidate and company persistence."""

    def __init__(self, url: str | None = None):
        self.url = url
        init_db(url)

    def create_candidate(self, record: dict[str, Any]) -> dict[str, Any]:
        session = get_session(self.url)
        try:
            row = CandidateRecord(**{k: v for k, v in record.items() if k in _CANDIDATE_FIELDS})
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info("Stored candidate %d: %s %s", row.id, row.first_name, row.last_name)
            return row.to_dict()
        finally:
            session.close()

    def create_company(self, record: dict[str, Any]) -> dict[str, Any]:
        session = get_session(self.url)
        try:
            fields = {k: v for k, v in record.items() if k in _COMPANY_FIELDS and k != "offices"}
            row = CompanyRecord(**fields)
            row.set_offices(record.get("offices") or [])
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info("Stored company %d: %s", row.id, row.name)
            return row.to_dict()
        finally:
            session.close()

    def get_candidates(self) -> list[dict[str, Any]]:
        session = get_session(self.url)
        try:
            rows = session.query(CandidateRecord).order_by(CandidateRecord.id).all()
            return [r.to_dict() for r in rows]
        finally:
            session.close()

    def get_companies(self) -> list[dict[str, Any]]:
        session = get_session(self.url)
        try:
            rows = session.query(CompanyRecord).order_by(CompanyRecord.id).all()
            return [r.to_dict() for r in rows]
        finally:
            session.close()

    def find_candidate_by_hash(self, candidate_hash: str) -> Optional[dict[str, Any]]:
        session = get_session(self.url)
        try:
            row = session.query(CandidateRecord).filter_by(candidate_hash=candidate_hash).first()
            return row.to_dict() if row else None
        finally:
            session.close()

    def update_candidate(self, candidate_id: int, fields: dict[str, Any]) -> Optional[dict[str, Any]]:
        session = get_session(self.url)
        try:
            row = session.get(CandidateRecord, candidate_id)
            if row is None:
                return None
            for key, value in fields.items():
                if key in _CANDIDATE_FIELDS:
                    setattr(row, key, value)
            session.commit()
            session.refresh(row)
            return row.to_dict()
        finally:
            session.close()

    def merge_candidates(self, duplicate_id: int, primary_id: int) -> Optional[dict[str, Any]]:
        """Fold ``duplicate_id`` into ``primary_id`` and delete the duplicate.

        Only fields empty on the primary are taken from the duplicate.
        """
        if duplicate_id == primary_id:
            return None
        session = get_session(self.url)
        try:
            primary = session.get(CandidateRecord, primary_id)
            duplicate = session.get(CandidateRecord, duplicate_id)
            if primary is None or duplicate is None:
                return None
            for key in _CANDIDATE_FIELDS - {"created_at", "updated_at"}:
                if not getattr(primary, key) and getattr(duplicate, key):
                    setattr(primary, key, getattr(duplicate, key))
            session.delete(duplicate)
            session.commit()
            session.refresh(primary)
            logger.info("Merged candidate %d into %d", duplicate_id, primary_id)
            return primary.to_dict()
        finally:
            session.close()


# ---------------------------------------------------------------------------
# Task store
# ---------------------------------------------------------------------------

class TaskStore:
    """Per-task ingestion state backing the ingestion queue."""

    def __init__(self, url: str | None = None):
        self.url = url
        init_db(url)

    def add_tasks(self, job_id: str, kind: str, items: list[dict]) -> list[int]:
        session = get_session(self.url)
        try:
            rows = [
                IngestionTask(job_id=job_id, kind=kind, payload=json.dumps(item, default=str))
                for item in items
            ]
            session.add_all(rows)
            session.commit()
            return [r.id for r in rows]
        finally:
            session.close()

    def queued(self, job_id: str) -> list[tuple[int, str, dict]]:
        """``(task_id, kind, payload)`` for every queued task, oldest first."""
        session = get_session(self.url)
        try:
            rows = (
                session.query(IngestionTask)
                .filter_by(job_id=job_id, status=TASK_QUEUED)
                .order_by(IngestionTask.id)
                .all()
            )
            return [(r.id, r.kind, r.get_payload()) for r in rows]
        finally:
            session.close()

    def mark(
        self,
        task_id: int,
        status: str,
        record_id: int | None = None,
        error: str | None = None,
    ) -> None:
        session = get_session(self.url)
        try:
            row = session.get(IngestionTask, task_id)
            if row is None:
                return
            row.status = status
            if status == TASK_PROCESSING:
                row.attempts = (row.attempts or 0) + 1
            if record_id is not None:
                row.record_id = record_id
            row.error = error
            session.commit()
        finally:
            session.close()

    def requeue_stranded(self) -> int:
        """Reset tasks left in ``processing`` (e.g. by a crash) to ``queued``."""
        session = get_session(self.url)
        try:
            count = (
                session.query(IngestionTask)
                .filter_by(status=TASK_PROCESSING)
                .update({IngestionTask.status: TASK_QUEUED}, synchronize_session=False)
            )
            session.commit()
            return count
        finally:
            session.close()

    def counts(self, job_id: str) -> dict[str, int]:
        session = get_session(self.url)
        try:
            rows = session.query(IngestionTask.status).filter_by(job_id=job_id).all()
            counts: dict[str, int] = {}
            for (status,) in rows:
                counts[status] = counts.get(status, 0) + 1
            return counts
        finally:
            session.close()

