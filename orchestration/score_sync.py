"""
🔄 SCORE SYNC QUEUE
===================
Background recalculation of lead scores on a worker pool.

Callers submit contact ids and get a job back; each job reports its
own outcome (pending -> running -> succeeded / failed) so nothing is
fire-and-forget. ``drain()`` waits for everything submitted so far.

Usage:
    queue = ScoreSyncQueue(engine)
    job = queue.submit(contact_id)
    ...
    summary = queue.drain()   # {"processed": 12, "succeeded": 11, "failed": 1, ...}
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from loguru import logger

from config.settings import settings
from orchestration.models import utcnow
from orchestration.scoring_engine import LeadScoringEngine


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ScoreSyncJob:
    contact_id: str
    status: JobStatus = JobStatus.PENDING
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    submitted_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    future: Optional[Future] = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)

    def wait(self, timeout: Optional[float] = None) -> "ScoreSyncJob":
        if self.future is not None:
            self.future.result(timeout=timeout)
        return self


class ScoreSyncQueue:
    """
    Worker pool that runs ``engine.score_contact`` per submitted contact.

    A contact already waiting or running is not submitted twice; the
    existing job is returned instead.
    """

    def __init__(self, engine: Optional[LeadScoringEngine] = None, max_workers: Optional[int] = None):
        self.engine = engine if engine is not None else LeadScoringEngine()
        self.max_workers = max_workers or settings.scoring.sync_workers
        self.executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="score-sync")
        self._jobs: List[ScoreSyncJob] = []
        self._in_flight: Dict[str, ScoreSyncJob] = {}
        self._lock = threading.Lock()

    def submit(self, contact_id: str) -> ScoreSyncJob:
        """Queue one contact for rescoring."""
        with self._lock:
            existing = self._in_flight.get(contact_id)
            if existing is not None:
                return existing
            job = ScoreSyncJob(contact_id=contact_id)
            self._jobs.append(job)
            self._in_flight[contact_id] = job
            job.future = self.executor.submit(self._run, job)
        return job

    def submit_many(self, contact_ids: List[str]) -> List[ScoreSyncJob]:
        return [self.submit(contact_id) for contact_id in contact_ids]

    def _run(self, job: ScoreSyncJob) -> None:
        job.status = JobStatus.RUNNING
        try:
            job.result = self.engine.score_contact(job.contact_id)
            job.status = JobStatus.SUCCEEDED
        except Exception as e:
            job.error = str(e)
            job.status = JobStatus.FAILED
            logger.error(f"❌ Score sync failed for {job.contact_id}: {e}")
        finally:
            job.finished_at = utcnow()
            with self._lock:
                self._in_flight.pop(job.contact_id, None)

    def drain(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Wait for every submitted job and summarize the outcomes.

        Finished jobs are removed from the queue.

        Returns:
            Dict with processed, succeeded, failed and errors
        """
        with self._lock:
            jobs = list(self._jobs)

        for job in jobs:
            job.wait(timeout=timeout)

        with self._lock:
            self._jobs = [job for job in self._jobs if not job.done]

        failed = [job for job in jobs if job.status is JobStatus.FAILED]
        summary = {
            "processed": len(jobs),
            "succeeded": len(jobs) - len(failed),
            "failed": len(failed),
            "errors": [{"contact_id": job.contact_id, "error": job.error} for job in failed],
        }
        logger.info(
            f"🔄 Score sync drained: {summary['succeeded']}/{summary['processed']} succeeded"
        )
        return summary

    def recalculate_stale(self, limit: int = 500, force: bool = False) -> List[ScoreSyncJob]:
        """
        Submit contacts whose score is out of date.

        Picks contacts engaged within the active window whose score is
        missing or older than the refresh interval. ``force`` picks every
        contact regardless.

        Args:
            limit: Maximum contacts to submit
            force: Ignore freshness and rescore everything

        Returns:
            The submitted jobs
        """
        store = self.engine.db

        if force:
            rows = store.query("contacts", columns="id", limit=limit)
        else:
            now = utcnow()
            active_since = now - timedelta(days=settings.scoring.active_window_days)
            fresh_after = now - timedelta(minutes=settings.scoring.refresh_after_minutes)
            engaged = {"field": "last_engagement_date", "operator": "greater_or_equal", "value": active_since.isoformat()}

            rows = store.select_where(
                "contacts",
                [engaged, {"field": "last_score_update", "operator": "is_null"}],
                limit=limit
            )
            if len(rows) < limit:
                rows += store.select_where(
                    "contacts",
                    [engaged, {"field": "last_score_update", "operator": "less_than", "value": fresh_after.isoformat()}],
                    limit=limit - len(rows)
                )

        contact_ids = list(dict.fromkeys(row["id"] for row in rows))
        logger.info(f"🔄 Submitting {len(contact_ids)} contacts for rescoring (force={force})")
        return self.submit_many(contact_ids)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)

    def __enter__(self) -> "ScoreSyncQueue":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
