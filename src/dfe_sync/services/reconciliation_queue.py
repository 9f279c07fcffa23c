"""
Reconciliation Job Queue Service.

Decouples single-shot reconciliation from receipt creation.

Features:
- Enqueue a job once the receipt is durably stored
- Process pending jobs in scheduling order
- Bounded retries for lookups that found nothing or failed
- Outcome of each job kept for the status command
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from dfe_sync.config import Config
from dfe_sync.schemas.access_key import normalize_access_key
from dfe_sync.services.reconciliation import LinkOutcome, ReconciliationService
from dfe_sync.state_store import JobStatus, StateStore

logger = logging.getLogger(__name__)

# Outcomes worth another attempt: the note may not have reached the
# distribution service yet, or the channel was briefly unusable
RETRYABLE_OUTCOMES = frozenset({LinkOutcome.NOT_FOUND, LinkOutcome.FAILED})


@dataclass
class QueueRunResult:
    """Result of draining the queue once."""

    processed: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class ReconciliationQueue:
    """
    Persisted queue of single-shot reconciliations.

    The capture pipeline calls enqueue() after writing a receipt; a worker
    (the process-queue command, or any caller) calls process_pending().
    """

    def __init__(
        self,
        state_store: StateStore,
        reconciliation: ReconciliationService,
        config: Config,
    ):
        """
        Initialize the queue.

        Args:
            state_store: State store for job persistence
            reconciliation: Service running the single-shot pass
            config: Application configuration (retry and batch limits)
        """
        self.store = state_store
        self.reconciliation = reconciliation
        self.config = config

    def enqueue(self, location: str, receipt_id: str, access_key: str | None) -> int | None:
        """
        Queue a reconciliation for a freshly stored receipt.

        Returns:
            Job ID if queued, None if the key is invalid or a job is already active
        """
        key = normalize_access_key(access_key)
        if key is None:
            logger.debug(f"Receipt {receipt_id} has no valid access key, nothing to reconcile")
            return None

        job_id = self.store.enqueue_reconciliation_job(
            location=location,
            receipt_id=receipt_id,
            access_key=key,
            max_retries=self.config.reconciliation.queue_max_retries,
        )
        if job_id:
            logger.info(f"Queued reconciliation job #{job_id} for receipt {receipt_id}")
        else:
            logger.debug(f"Reconciliation job already active for receipt {receipt_id}")
        return job_id

    def process_pending(self, limit: int | None = None) -> QueueRunResult:
        """Process up to `limit` pending jobs, oldest first."""
        run = QueueRunResult()
        batch_size = limit or self.config.reconciliation.queue_batch_size

        for job in self.store.get_pending_reconciliation_jobs(limit=batch_size):
            status = self.process_job(job)
            if status is None:
                continue
            run.processed += 1
            if status == JobStatus.COMPLETED:
                run.completed += 1
            elif status == JobStatus.PENDING:
                run.retried += 1
            else:
                run.failed += 1
                run.errors.append(f"Job #{job['id']} (receipt {job['receipt_id']}) gave up")

        if run.processed:
            logger.info(
                f"Reconciliation queue: {run.processed} processed, {run.completed} completed, "
                f"{run.retried} to retry, {run.failed} failed"
            )
        return run

    def process_job(self, job: dict[str, Any]) -> str | None:
        """
        Run one job.

        Returns:
            Resulting job status, or None if another worker took the job
        """
        job_id = job["id"]
        if not self.store.start_reconciliation_job(job_id):
            return None

        if not self.store.receipt_exists(job["receipt_id"]):
            # Receipt deleted while the job waited
            self.store.complete_reconciliation_job(job_id, "RECEIPT_DELETED")
            return JobStatus.COMPLETED

        result = self.reconciliation.reconcile_receipt(
            job["location"], job["receipt_id"], job["access_key"]
        )

        if result.outcome in RETRYABLE_OUTCOMES:
            message = str(result.warning) if result.warning else result.outcome.value
            status = self.store.fail_reconciliation_job(job_id, message)
            logger.info(f"Reconciliation job #{job_id}: {result.outcome.value}, now {status}")
            return status

        self.store.complete_reconciliation_job(job_id, result.outcome.value)
        return JobStatus.COMPLETED
