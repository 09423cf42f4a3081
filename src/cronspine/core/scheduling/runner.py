"""Cron runner - slot claiming, due-set processing and the reschedule decision.

Manifesto:
    Any number of runner processes may be started against one job store
    (a system cron entry every minute, a long-lived worker, an operator
    typing ``cronspine trigger``). Correctness comes from two lock
    families, not from process supervision: a bounded pool of slots caps
    how many runners are active, and a per-job lock guarantees each due
    job is executed by exactly one of them.

Tags:
    cronspine, scheduling, runner, distributed-locks, state-machine

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  CRON RUNNER                                                                 │
│                                                                              │
│   run(TriggerRequest)                                                        │
│   ├── list=True      → all jobs by start                     (no execution)  │
│   ├── remove=<id>    → unschedule                            (no execution)  │
│   ├── run=<id>       → run_job() bypassing due check and locks               │
│   └── (none)         → process_jobs()                                        │
│                                                                              │
│   process_jobs()                                                             │
│   1. claim slot cron:slot:0..N-1      none free → LOCKED, nothing inspected  │
│   2. query_due(now, max_errors)       once, iterated once                    │
│   3. per job: claim cron:job:<id>     busy → skipped                         │
│        reload; gone or no longer due → skipped                               │
│        run_job() → decide() → remove | save     finally release job lock     │
│   4. release slot                     once, after the loop                   │
│                                                                              │
│   decide(job, now, max_errors)        evaluated in this order                │
│   1. DONE             ok, not CONTINUE, one-shot or end <= now → remove      │
│   2. RETRY_SOON       error / CONTINUE / UNDETERMINED → start = now + 60     │
│   3. TOO_MANY_ERRORS  errors >= max_errors → remove                          │
│   4. NEXT_RECURRENCE  start = next_occurrence(recurring, start) → save       │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import tzinfo
from enum import Enum
from typing import TYPE_CHECKING, Any

from cronspine.core.errors import InvalidConfigError, ParseError, RecurrenceError, ValidationError
from cronspine.core.logging import LogContext, get_logger
from cronspine.core.protocols import Clock
from cronspine.core.scheduling.events import Origin, Outcome, RequestEvent
from cronspine.core.scheduling.executor import EventDispatcher, Executor
from cronspine.core.scheduling.job import CronJob
from cronspine.core.scheduling.lock_manager import LockManager, LockProvider
from cronspine.core.scheduling.repository import JobRepository
from cronspine.core.status import StatusEnum
from cronspine.core.timeexpr import next_occurrence, system_clock

if TYPE_CHECKING:
    from cronspine.core.dialect import Dialect
    from cronspine.core.protocols import Connection
    from cronspine.core.settings import CronSettings

logger = get_logger(__name__)

RETRY_DELAY_SECONDS = 60
DEFAULT_MAX_CONCURRENT_JOBS = 3

SLOT_LOCK_KEY = "cron:slot:{}"
JOB_LOCK_KEY = "cron:job:{}"


class Decision(str, Enum):
    """What happens to a job after an execution attempt."""

    DONE = "done"
    RETRY_SOON = "retry_soon"
    TOO_MANY_ERRORS = "too_many_errors"
    NEXT_RECURRENCE = "next_recurrence"


def decide(job: CronJob, now: int, max_errors: int) -> Decision:
    """Pick the post-execution action for ``job``.

    The branch order is significant: an ok recurring job whose error
    counter is already at the budget is removed rather than rescheduled.
    """
    status = job.status
    if status.is_ok and status != StatusEnum.CONTINUE and (
        job.recurring is None or (job.end is not None and job.end <= now)
    ):
        return Decision.DONE
    if status.is_error or status in (StatusEnum.CONTINUE, StatusEnum.UNDETERMINED):
        return Decision.RETRY_SOON
    if job.errors >= max_errors:
        return Decision.TOO_MANY_ERRORS
    return Decision.NEXT_RECURRENCE


@dataclass
class TriggerRequest:
    """Options for one runner invocation; at most one may be set."""

    list: bool = False
    remove: int | str | None = None
    run: int | str | None = None

    def __post_init__(self) -> None:
        chosen = [
            name
            for name, value in (("list", self.list or None), ("remove", self.remove), ("run", self.run))
            if value is not None
        ]
        if len(chosen) > 1:
            raise ValidationError(
                f"Trigger options are mutually exclusive, got: {', '.join(chosen)}",
                field="request",
                value=chosen,
                constraint="at most one of list/remove/run",
            )

    @classmethod
    def from_mapping(cls, request: Mapping[str, Any] | None) -> TriggerRequest:
        """Build from a request payload such as ``{"run": 12}``."""
        request = request or {}
        return cls(
            list=bool(request.get("list")),
            remove=request.get("remove"),
            run=request.get("run"),
        )


@dataclass
class RunResult:
    """Outcome of one runner invocation.

    ``status`` is OK or LOCKED for batch passes; individual job outcomes
    live on the job records, not here.
    """

    status: StatusEnum
    message: str
    jobs: list[CronJob] | None = None
    job: CronJob | None = None
    processed: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def is_ok(self) -> bool:
        return self.status.is_ok

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "status": self.status.name,
            "message": self.message,
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
        }
        if self.jobs is not None:
            result["jobs"] = [j.to_dict() for j in self.jobs]
        if self.job is not None:
            result["job"] = self.job.to_dict()
        return result


@dataclass
class RunnerStats:
    """Counters across invocations of one runner instance."""

    invocations: int = 0
    locked: int = 0
    jobs_processed: int = 0
    jobs_skipped: int = 0
    jobs_failed: int = 0
    last_run: int | None = None
    last_error: str | None = None
    decisions: dict[str, int] = field(default_factory=dict)


class CronRunner:
    """Executes due jobs under slot and per-job locks.

    Example:
        >>> runner = CronRunner(repo, LockManager(conn), EventDispatcher(), max_errors=5)
        >>> runner.run().status
        <StatusEnum.OK: 200>
    """

    def __init__(
        self,
        repository: JobRepository,
        locks: LockProvider,
        executor: Executor,
        *,
        max_errors: int,
        max_concurrent_jobs: int | None = DEFAULT_MAX_CONCURRENT_JOBS,
        clock: Clock = system_clock,
        tz: str | tzinfo | None = "UTC",
    ) -> None:
        if isinstance(max_errors, bool) or not isinstance(max_errors, int) or max_errors < 1:
            raise InvalidConfigError("max_errors", max_errors)
        if max_concurrent_jobs is not None and max_concurrent_jobs < 0:
            raise InvalidConfigError("max_concurrent_jobs", max_concurrent_jobs)

        self.repository = repository
        self.locks = locks
        self.executor = executor
        self.max_errors = max_errors
        self.max_concurrent_jobs = max_concurrent_jobs or DEFAULT_MAX_CONCURRENT_JOBS
        self.clock = clock
        self.tz = tz
        self.slot: int | None = None
        self.stats = RunnerStats()

    @classmethod
    def from_settings(
        cls,
        settings: CronSettings,
        conn: Connection,
        *,
        executor: Executor | None = None,
        dialect: Dialect | None = None,
        clock: Clock = system_clock,
        instance_id: str | None = None,
    ) -> CronRunner:
        """Wire a runner with database-backed store and locks."""
        return cls(
            JobRepository(conn, dialect),
            LockManager(conn, dialect, instance_id=instance_id, ttl_seconds=settings.lock_ttl_seconds),
            executor or EventDispatcher(),
            max_errors=settings.max_errors,
            max_concurrent_jobs=settings.max_concurrent_jobs,
            clock=clock,
            tz=settings.timezone,
        )

    # === Trigger surface ===

    def run(self, request: TriggerRequest | Mapping[str, Any] | None = None) -> RunResult:
        """Handle one trigger request (list / remove / run / batch pass)."""
        if not isinstance(request, TriggerRequest):
            request = TriggerRequest.from_mapping(request)

        if request.list:
            return self.list_jobs()
        if request.remove is not None:
            return self.remove_job(request.remove)
        if request.run is not None:
            return self.force_run(request.run)
        return self.process_jobs()

    def list_jobs(self) -> RunResult:
        jobs = self.repository.list_all()
        return RunResult(StatusEnum.OK, f"Found {len(jobs)} cron jobs.", jobs=jobs)

    def remove_job(self, id_or_uuid: int | str) -> RunResult:
        job = self.repository.load(id_or_uuid)
        if job is None:
            return RunResult(StatusEnum.NOT_FOUND, f"Cron job {id_or_uuid!r} not found.")

        job_id = job.id
        self.repository.remove(job)
        logger.info("job_removed", job_id=job_id, uuid=job.uuid, reason="requested")
        return RunResult(StatusEnum.OK, "Cron job removed.", job=job)

    def force_run(self, id_or_uuid: int | str) -> RunResult:
        """Run one job now, bypassing the due check and lock claiming.

        Raises:
            RecurrenceError: The job's recurring expression cannot be evaluated.
        """
        job = self.repository.load(id_or_uuid)
        if job is None:
            return RunResult(StatusEnum.NOT_FOUND, f"Cron job {id_or_uuid!r} not found.")

        self.run_job(job)
        return RunResult(StatusEnum.OK, "Cron job run.", job=job, processed=1)

    # === Batch pass ===

    def process_jobs(self) -> RunResult:
        """Claim a slot, run every due job once, release the slot."""
        self.stats.invocations += 1

        if not self.claim_slot():
            self.stats.locked += 1
            logger.info("runner_locked", max_concurrent_jobs=self.max_concurrent_jobs)
            return RunResult(StatusEnum.LOCKED, "Cron runner is already running.")

        processed = skipped = failed = 0
        try:
            with LogContext(runner_slot=self.slot):
                now = self.clock()
                self.stats.last_run = now
                due = self.repository.query_due(now, self.max_errors)
                if due:
                    logger.info("due_jobs_found", count=len(due))

                for job in due:
                    job_key = JOB_LOCK_KEY.format(job.id)
                    if not self.locks.acquire(job_key):
                        logger.debug("job_skipped", job_id=job.id, reason="locked")
                        skipped += 1
                        continue
                    try:
                        current = self.repository.load(job.id)
                        if current is None or not current.is_due(now) or current.errors >= self.max_errors:
                            # finished or rescheduled by another runner since the due query
                            logger.debug("job_skipped", job_id=job.id, reason="stale")
                            skipped += 1
                            continue
                        self.run_job(current)
                        processed += 1
                    except Exception as e:
                        failed += 1
                        self.stats.last_error = str(e)
                        logger.exception("job_failed", job=str(job), error=str(e))
                    finally:
                        self.locks.release(job_key)
        finally:
            self.release_slot()

        self.stats.jobs_processed += processed
        self.stats.jobs_skipped += skipped
        self.stats.jobs_failed += failed
        logger.info("runner_finished", processed=processed, skipped=skipped, failed=failed)
        return RunResult(
            StatusEnum.OK,
            "Cron runner finished.",
            processed=processed,
            skipped=skipped,
            failed=failed,
        )

    def claim_slot(self) -> bool:
        """Acquire the first free ``cron:slot:<n>``; False if all are held."""
        for slot in range(self.max_concurrent_jobs):
            if self.locks.acquire(SLOT_LOCK_KEY.format(slot)):
                self.slot = slot
                return True
        return False

    def release_slot(self) -> None:
        if self.slot is not None:
            self.locks.release(SLOT_LOCK_KEY.format(self.slot))
            self.slot = None

    # === Single job ===

    def run_job(self, job: CronJob) -> Decision:
        """Execute ``job`` and apply the reschedule decision.

        Executor failures become ERROR outcomes.

        Raises:
            RecurrenceError: The job's recurring expression cannot be evaluated.
        """
        now = self.clock()
        event = RequestEvent(job.event, Origin.INTERNAL, job.request, uuid=job.uuid)

        job.last_run = now
        job.status = StatusEnum.PROCESSING
        job.message = f"Processing job (pid {os.getpid()})"
        self.repository.save(job)

        with LogContext(job_id=job.id, uuid=job.uuid):
            logger.info("job_started", event_name=job.event, pid=os.getpid())
            try:
                outcome = Outcome.from_value(self.executor.execute(event))
            except Exception as e:
                logger.exception("job_executor_failed", event_name=job.event, error=str(e))
                outcome = Outcome(StatusEnum.ERROR, f"{type(e).__name__}: {e}")

            log = logger.info if outcome.is_ok else logger.error
            log("job_finished", status=outcome.status.name, message=outcome.message)

            job.status = outcome.status
            job.message = outcome.message
            job.total_runs += 1
            job.errors = 0 if outcome.is_ok else job.errors + 1

            return self.reschedule_or_remove(job, now)

    def reschedule_or_remove(self, job: CronJob, now: int) -> Decision:
        """Apply :func:`decide` to ``job`` and persist the result."""
        decision = decide(job, now, self.max_errors)
        self.stats.decisions[decision.value] = self.stats.decisions.get(decision.value, 0) + 1

        if decision is Decision.DONE:
            logger.info("job_removed", reason="done")
            self.repository.remove(job)
        elif decision is Decision.RETRY_SOON:
            job.start = now + RETRY_DELAY_SECONDS
            logger.info("job_rescheduled", reason="retry_soon", start=job.start, errors=job.errors)
            self.repository.save(job)
        elif decision is Decision.TOO_MANY_ERRORS:
            logger.error("job_removed", reason="too_many_errors", errors=job.errors)
            self.repository.remove(job)
        else:
            try:
                job.start = next_occurrence(job.recurring, job.start, self.tz)
            except ParseError as e:
                # park the job: visible as ERROR, excluded from the due set
                job.status = StatusEnum.ERROR
                job.message = f"Invalid recurring value: {job.recurring!r}"
                job.errors = max(job.errors, self.max_errors)
                self.repository.save(job)
                raise RecurrenceError(job.recurring, cause=e).with_context(
                    job_id=job.id, uuid=job.uuid, event=job.event
                ) from e
            logger.info("job_rescheduled", reason="recurrence", start=job.start, recurring=job.recurring)
            self.repository.save(job)
        return decision


__all__ = [
    "RETRY_DELAY_SECONDS",
    "DEFAULT_MAX_CONCURRENT_JOBS",
    "SLOT_LOCK_KEY",
    "JOB_LOCK_KEY",
    "Decision",
    "decide",
    "TriggerRequest",
    "RunResult",
    "RunnerStats",
    "CronRunner",
]
