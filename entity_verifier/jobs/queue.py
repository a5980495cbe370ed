"""Batch ingestion queue.

Rows enqueued for a job become ``ingestion_tasks`` rows and are processed in
bounded batches. Each batch settles fully (``asyncio.gather`` with
``return_exceptions=True``): one failing item is recorded and never cancels
its siblings. Task state lives in the database, so ``recover()`` can requeue
anything a crashed worker left in ``processing``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from entity_verifier.config import settings
from entity_verifier.extract.locations import extract_office_locations
from entity_verifier.models import CandidateStub, EmailInference, VerificationStatus
from entity_verifier.resolve.duplicates import (
    candidate_hash,
    find_candidate_duplicates,
    find_company_duplicates,
    website_domain,
)
from entity_verifier.store.database import (
    TASK_COMPLETED,
    TASK_DUPLICATE,
    TASK_FAILED,
    TASK_PROCESSING,
    RecordStore,
    TaskStore,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemOutcome:
    status: str  # completed | duplicate | failed
    record_id: Optional[int] = None
    error: Optional[str] = None


@dataclass
class IngestionSummary:
    job_id: str
    successful: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.successful + self.duplicates + self.failed


class Pipeline(Protocol):
    async def process(self, row: dict[str, Any]) -> ItemOutcome: ...


# ---------------------------------------------------------------------------
# Per-item pipelines
# ---------------------------------------------------------------------------

class CandidatePipeline:
    """Verify a candidate row and store it unless it is a duplicate."""

    def __init__(self, verifier, store: RecordStore):
        self.verifier = verifier
        self.store = store

    async def process(self, row: dict[str, Any]) -> ItemOutcome:
        try:
            stub = CandidateStub.model_validate({k: v for k, v in row.items() if v is not None})
        except ValidationError as exc:
            return ItemOutcome(TASK_FAILED, error=f"Invalid candidate row: {exc.error_count()} error(s)")

        key = candidate_hash(stub.linkedin_url, stub.email)
        if key:
            existing = self.store.find_candidate_by_hash(key)
            if existing:
                logger.info("Hash match for %s – existing candidate %d", stub.full_name, existing["id"])
                return ItemOutcome(TASK_DUPLICATE, record_id=existing["id"])

        population = self.store.get_candidates()
        matches = find_candidate_duplicates(stub, population)
        if matches:
            best = matches[0]
            logger.info(
                "Weighted match for %s – existing candidate %d (score=%d, %s)",
                stub.full_name, best.record["id"], best.match_score, ", ".join(best.matched_fields),
            )
            return ItemOutcome(TASK_DUPLICATE, record_id=best.record["id"])

        result = await self.verifier.verify(stub, population)
        if result.verification_status is VerificationStatus.DUPLICATE:
            return ItemOutcome(TASK_DUPLICATE)

        linkedin_url = stub.linkedin_url or result.linkedin_url
        record = self.store.create_candidate({
            **stub.model_dump(),
            "email": stub.email or None,
            "suggested_email": result.suggested_email,
            "linkedin_url": linkedin_url,
            "candidate_hash": candidate_hash(linkedin_url, stub.email),
            "confidence_score": result.confidence_score,
            "verification_status": result.verification_status.value,
            "verification_notes": result.verification_notes,
            "verification_json": result.model_dump_json(),
        })
        return ItemOutcome(TASK_COMPLETED, record_id=record["id"])


class CompanyPipeline:
    """Research, extract offices for, and store a company row."""

    def __init__(self, researcher, fetcher, llm, store: RecordStore):
        self.researcher = researcher
        self.fetcher = fetcher
        self.llm = llm
        self.store = store

    async def process(self, row: dict[str, Any]) -> ItemOutcome:
        name = (row.get("name") or "").strip()
        if not name:
            return ItemOutcome(TASK_FAILED, error="Company row has no name")

        website = (row.get("website") or "").strip()
        inference = EmailInference()
        if self.researcher is not None:
            inference = await self.researcher.research_company(name)

        domain = website_domain(website) or inference.domain
        if not website and domain:
            website = f"https://{domain}"

        company = {
            "name": name,
            "website": website,
            "domain": domain,
            "location": row.get("location") or "",
            "industry": row.get("industry") or "",
            "parent_company": row.get("parent_company") or "",
        }
        duplicates = find_company_duplicates(company, self.store.get_companies())
        if duplicates:
            return ItemOutcome(TASK_DUPLICATE, record_id=duplicates[0].record.get("id"))

        offices = []
        if website and self.fetcher is not None:
            html = await self.fetcher.fetch(website)
            if html:
                offices = await extract_office_locations(html, website, self.llm)

        record = self.store.create_company({
            **company,
            "email_pattern": inference.pattern.value if inference.pattern else None,
            "offices": [asdict(o) for o in offices],
        })
        return ItemOutcome(TASK_COMPLETED, record_id=record["id"])


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------

class IngestionQueue:
    def __init__(
        self,
        task_store: TaskStore,
        pipelines: dict[str, Pipeline],
        batch_size: int | None = None,
    ):
        self.task_store = task_store
        self.pipelines = pipelines
        self.batch_size = max(1, batch_size or settings.ingestion_batch_size)

    def enqueue(self, job_id: str, items: list[dict[str, Any]], kind: str = "candidate") -> int:
        if kind not in self.pipelines:
            raise ValueError(f"No pipeline registered for {kind!r}")
        ids = self.task_store.add_tasks(job_id, kind, items)
        logger.info("Queued %d %s task(s) for job %s", len(ids), kind, job_id)
        return len(ids)

    async def _process(self, kind: str, payload: dict[str, Any]) -> ItemOutcome:
        return await self.pipelines[kind].process(payload)

    async def run(self, job_id: str) -> IngestionSummary:
        """Process every queued task of a job, batch by batch."""
        summary = IngestionSummary(job_id=job_id)
        tasks = self.task_store.queued(job_id)
        if not tasks:
            logger.info("No queued tasks for job %s", job_id)
            return summary

        n_batches = (len(tasks) + self.batch_size - 1) // self.batch_size
        for start in range(0, len(tasks), self.batch_size):
            batch = tasks[start:start + self.batch_size]
            for task_id, _, _ in batch:
                self.task_store.mark(task_id, TASK_PROCESSING)

            outcomes = await asyncio.gather(
                *(self._process(kind, payload) for _, kind, payload in batch),
                return_exceptions=True,
            )

            for (task_id, _, _), outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                    raise outcome
                if isinstance(outcome, Exception):
                    outcome = ItemOutcome(
                        TASK_FAILED, error=f"Task {task_id}: {outcome.__class__.__name__}: {outcome}",
                    )
                    logger.warning("%s", outcome.error)
                self.task_store.mark(task_id, outcome.status, outcome.record_id, outcome.error)

                if outcome.status == TASK_COMPLETED:
                    summary.successful += 1
                elif outcome.status == TASK_DUPLICATE:
                    summary.duplicates += 1
                else:
                    summary.failed += 1
                    summary.errors.append(outcome.error or "Unknown error")

            logger.info(
                "Job %s batch %d/%d done (%d items)",
                job_id, start // self.batch_size + 1, n_batches, len(batch),
            )

        logger.info(
            "Job %s complete: %d successful, %d duplicates, %d failed",
            job_id, summary.successful, summary.duplicates, summary.failed,
        )
        return summary

    def recover(self) -> int:
        """Requeue tasks stranded in ``processing``. Returns how many."""
        count = self.task_store.requeue_stranded()
        if count:
            logger.warning("Recovered %d stranded ingestion task(s)", count)
        return count

    def status(self, job_id: str) -> dict[str, int]:
        return self.task_store.counts(job_id)
