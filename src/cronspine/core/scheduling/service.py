"""Scheduler API - create, cancel and look up scheduled jobs.

Manifesto:
    Scheduling is a privileged operation: whoever can schedule an event
    can make the runner execute it later with no caller present. The
    service therefore accepts only INTERNAL request events and validates
    every time expression before anything touches the store.

Tags:
    cronspine, scheduling, service, scheduler-api

Doc-Types:
    api-reference


    Usage::

        service = CronService(JobRepository(conn))
        event = RequestEvent("nightly_report", request={"to": "ops"}, uuid="nightly")
        job = service.schedule(event, "12:00", "+1 day", "2024-12-31")
        service.get("nightly")      # by uuid
        service.get(job.id)         # by id
        service.unschedule("nightly")
"""

from __future__ import annotations

from datetime import tzinfo

from cronspine.core.errors import AuthorizationError
from cronspine.core.logging import get_logger
from cronspine.core.protocols import Clock
from cronspine.core.scheduling.events import RequestEvent
from cronspine.core.scheduling.job import CronJob
from cronspine.core.scheduling.repository import JobRepository
from cronspine.core.timeexpr import next_occurrence, resolve, system_clock

logger = get_logger(__name__)


class CronService:
    """Creates, cancels and looks up job records on behalf of callers.

    Args:
        repository: Job store
        clock: Returns the current unix timestamp; relative ``start``/``end``
            expressions are resolved against it
        tz: Timezone for calendar arithmetic in expressions
    """

    def __init__(
        self,
        repository: JobRepository,
        clock: Clock = system_clock,
        tz: str | tzinfo | None = "UTC",
    ) -> None:
        self.repository = repository
        self.clock = clock
        self.tz = tz

    def schedule(
        self,
        event: RequestEvent,
        start: int | str,
        recurring: str | None = None,
        end: int | str | None = None,
    ) -> CronJob:
        """Schedule ``event`` to run at ``start``.

        Args:
            event: Job descriptor; must have INTERNAL origin
            start: Unix timestamp or time expression
            recurring: Expression evaluated against the previous start to
                produce the next one; None for a one-shot job
            end: Unix timestamp or time expression after which a recurring
                job stops

        Returns:
            The persisted job

        Raises:
            AuthorizationError: The event is not internal.
            ParseError: ``start``, ``end`` or ``recurring`` cannot be parsed.
            DuplicateJobError: The event uuid is already scheduled.
        """
        if not event.is_internal:
            logger.warning("schedule_rejected", event_name=event.type, origin=event.origin.value)
            raise AuthorizationError("Only internal events can be scheduled.").with_context(
                uuid=event.uuid, event=event.type, origin=event.origin.value
            )

        now = self.clock()
        start_at = resolve(start, now, self.tz)
        end_at = resolve(end, now, self.tz) if end is not None else None
        if recurring is not None:
            next_occurrence(recurring, start_at, self.tz)

        job = CronJob(
            uuid=event.uuid,
            event=event.type,
            request=event.request,
            start=start_at,
            recurring=recurring,
            end=end_at,
        )
        self.repository.create(job)
        logger.info(
            "job_scheduled",
            job_id=job.id,
            uuid=job.uuid,
            event_name=job.event,
            start=job.start,
            recurring=job.recurring,
            end=job.end,
        )
        return job

    def unschedule(self, job: CronJob | int | str) -> bool:
        """Remove a job by id, uuid or record.

        A missing or already-removed job is a no-op.

        Returns:
            True if a record was removed
        """
        record = job if isinstance(job, CronJob) else self.repository.load(job)
        if record is None or not record.is_persisted:
            return False

        job_id, uuid = record.id, record.uuid
        removed = self.repository.remove(record)
        logger.info("job_unscheduled", job_id=job_id, uuid=uuid, removed=removed)
        return removed

    def get(self, id_or_uuid: int | str) -> CronJob | None:
        """Read-only lookup by id or uuid; None when absent."""
        return self.repository.load(id_or_uuid)


__all__ = ["CronService"]
