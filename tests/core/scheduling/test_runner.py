"""Tests for cronspine.core.scheduling.runner — batch passes and reschedule decisions."""

from __future__ import annotations

import pytest

from cronspine.core.errors import InvalidConfigError, RecurrenceError, ValidationError
from cronspine.core.scheduling.events import Outcome, RequestEvent
from cronspine.core.scheduling.executor import EventDispatcher
from cronspine.core.scheduling.job import CronJob
from cronspine.core.scheduling.lock_manager import LockManager
from cronspine.core.scheduling.runner import (
    RETRY_DELAY_SECONDS,
    CronRunner,
    Decision,
    TriggerRequest,
    decide,
)
from cronspine.core.scheduling.service import CronService
from cronspine.core.settings import CronSettings
from cronspine.core.status import StatusEnum

NOW = 1_700_000_000
HOUR = 3_600
DAY = 86_400


@pytest.fixture
def runner(repo, locks, registry, clock):
    return CronRunner(repo, locks, EventDispatcher(registry), max_errors=3, clock=clock)


@pytest.fixture
def service(repo, clock):
    return CronService(repo, clock=clock)


def _returns(registry, event, value):
    registry.register(event, lambda request, ev: value)


# ── decide() ────────────────────────────────────────────────────────────


class TestDecide:
    @pytest.mark.parametrize(
        "status, recurring, end, errors, expected",
        [
            (StatusEnum.OK, None, None, 0, Decision.DONE),
            (StatusEnum.NO_CONTENT, None, None, 0, Decision.DONE),
            (StatusEnum.OK, "+1 day", NOW, 0, Decision.DONE),
            (StatusEnum.OK, "+1 day", NOW - 1, 0, Decision.DONE),
            (StatusEnum.OK, "+1 day", None, 0, Decision.NEXT_RECURRENCE),
            (StatusEnum.OK, "+1 day", NOW + 1, 0, Decision.NEXT_RECURRENCE),
            (StatusEnum.CONTINUE, None, None, 0, Decision.RETRY_SOON),
            (StatusEnum.UNDETERMINED, None, None, 0, Decision.RETRY_SOON),
            (StatusEnum.ERROR, None, None, 1, Decision.RETRY_SOON),
            (StatusEnum.NOT_FOUND, "+1 day", None, 3, Decision.RETRY_SOON),
            (StatusEnum.OK, "+1 day", None, 3, Decision.TOO_MANY_ERRORS),
            (StatusEnum.OK, "+1 day", None, 2, Decision.NEXT_RECURRENCE),
        ],
    )
    def test_branches(self, status, recurring, end, errors, expected):
        job = CronJob(start=NOW, status=status, recurring=recurring, end=end, errors=errors)
        assert decide(job, NOW, max_errors=3) is expected


# ── Batch pass ──────────────────────────────────────────────────────────


class TestProcessJobs:
    def test_empty_store(self, runner):
        result = runner.run()
        assert result.status is StatusEnum.OK
        assert result.message == "Cron runner finished."
        assert result.processed == 0

    def test_one_shot_success_removed(self, runner, registry, service):
        _returns(registry, "report", StatusEnum.OK)
        service.schedule(RequestEvent("report", uuid="U1"), NOW - 1)

        result = runner.run()
        assert result.status is StatusEnum.OK
        assert result.processed == 1
        assert service.get("U1") is None

    def test_recurring_scenario(self, runner, registry, service, clock):
        calls = []

        def flaky(request, event):
            calls.append(clock())
            if len(calls) == 1:
                return StatusEnum.ERROR, "first attempt failed"
            return StatusEnum.OK

        registry.register("sync", flaky)
        service.schedule(RequestEvent("sync", uuid="U2"), NOW - 1, "+1 hour")

        runner.run()
        job = service.get("U2")
        assert job.start == NOW + RETRY_DELAY_SECONDS
        assert job.errors == 1
        assert job.status is StatusEnum.ERROR
        assert job.message == "first attempt failed"

        clock.advance(RETRY_DELAY_SECONDS)
        runner.run()
        job = service.get("U2")
        assert job.errors == 0
        assert job.start == NOW + RETRY_DELAY_SECONDS + HOUR
        assert job.status is StatusEnum.OK
        assert job.total_runs == 2
        assert calls == [NOW, NOW + RETRY_DELAY_SECONDS]

    @pytest.mark.parametrize("recurring", [None, "+1 day"])
    def test_error_retries_soon_regardless_of_recurring(self, runner, registry, make_job, repo, recurring):
        _returns(registry, "report", StatusEnum.ERROR)
        job = make_job(event="report", recurring=recurring, errors=1)

        runner.run()
        stored = repo.load(job.uuid)
        assert stored.errors == 2
        assert stored.start == NOW + RETRY_DELAY_SECONDS
        assert stored.recurring == recurring

    def test_recurring_success_advances_from_previous_start(self, runner, registry, make_job, repo):
        _returns(registry, "report", StatusEnum.OK)
        job = make_job(event="report", start=NOW - 500, recurring="+1 day", errors=2)

        runner.run()
        stored = repo.load(job.uuid)
        assert stored.start == NOW - 500 + DAY
        assert stored.errors == 0
        assert stored.last_run == NOW

    def test_recurring_cron_expression(self, runner, registry, make_job, repo):
        _returns(registry, "report", StatusEnum.OK)
        job = make_job(event="report", start=NOW - 1, recurring="0 8 * * *")

        runner.run()
        # next 08:00 UTC after 2023-11-14 22:13:19
        assert repo.load(job.uuid).start == 1_699_920_000 + DAY + 8 * HOUR

    def test_recurring_past_end_removed(self, runner, registry, make_job, repo):
        _returns(registry, "report", StatusEnum.OK)
        job = make_job(event="report", start=NOW - 10, end=NOW, recurring="+1 hour")
        # end == now is excluded from the due set; run it explicitly
        runner.run(TriggerRequest(run=job.id))
        assert repo.load(job.uuid) is None

    def test_continue_retries_with_clean_error_count(self, runner, registry, make_job, repo):
        _returns(registry, "report", Outcome(StatusEnum.CONTINUE, "more to do"))
        job = make_job(event="report", errors=1)

        runner.run()
        stored = repo.load(job.uuid)
        assert stored.status is StatusEnum.CONTINUE
        assert stored.errors == 0
        assert stored.start == NOW + RETRY_DELAY_SECONDS

    def test_unknown_event_is_an_error_outcome(self, runner, make_job, repo):
        job = make_job(event="nobody_handles_this")
        runner.run()
        stored = repo.load(job.uuid)
        assert stored.status is StatusEnum.NOT_FOUND
        assert stored.errors == 1

    def test_unrecognised_handler_result_keeps_one_shot_job(self, runner, registry, make_job, repo):
        _returns(registry, "report", ("FAILED", "disk full"))
        job = make_job(event="report", uuid="u1")

        runner.run()
        stored = repo.load("u1")
        assert stored is not None
        assert stored.status is StatusEnum.ERROR
        assert stored.message == "Unrecognised handler result: ('FAILED', 'disk full')"
        assert stored.errors == 1
        assert stored.start == NOW + RETRY_DELAY_SECONDS
        assert stored.id == job.id

    def test_bare_error_code_does_not_advance_recurrence(self, runner, registry, make_job, repo):
        _returns(registry, "report", 500)
        job = make_job(event="report", recurring="+1 day", errors=1)

        runner.run()
        stored = repo.load(job.uuid)
        assert stored.status is StatusEnum.ERROR
        assert stored.errors == 2
        assert stored.start == NOW + RETRY_DELAY_SECONDS

    def test_executor_exception_does_not_abort_batch(self, runner, registry, make_job, repo):
        def broken(request, event):
            raise RuntimeError("smtp down")

        registry.register("broken", broken)
        _returns(registry, "fine", StatusEnum.OK)
        bad = make_job(event="broken", start=NOW - 20)
        good = make_job(event="fine", start=NOW - 10)

        result = runner.run()
        assert result.status is StatusEnum.OK
        assert result.processed == 2
        stored = repo.load(bad.uuid)
        assert stored.status is StatusEnum.ERROR
        assert stored.message == "RuntimeError: smtp down"
        assert stored.errors == 1
        assert repo.load(good.uuid) is None

    def test_marks_processing_before_execution(self, runner, registry, make_job, repo):
        seen = {}

        def inspect(request, event):
            stored = repo.load(event.uuid)
            seen["status"] = stored.status
            seen["last_run"] = stored.last_run
            seen["message"] = stored.message
            return StatusEnum.OK

        registry.register("inspect", inspect)
        make_job(event="inspect")
        runner.run()
        assert seen["status"] is StatusEnum.PROCESSING
        assert seen["last_run"] == NOW
        assert seen["message"].startswith("Processing job")

    def test_handler_receives_payload_and_uuid(self, runner, registry, make_job):
        seen = []
        registry.register("report", lambda request, event: seen.append((request, event.uuid, event.is_internal)))
        make_job(event="report", uuid="nightly", request={"to": "ops"})
        runner.run()
        assert seen == [({"to": "ops"}, "nightly", True)]

    def test_ascending_start_order(self, runner, registry, make_job):
        order = []
        registry.register("report", lambda request, event: order.append(event.uuid))
        make_job(event="report", uuid="c", start=NOW - 1)
        make_job(event="report", uuid="a", start=NOW - 30)
        make_job(event="report", uuid="b", start=NOW - 20)
        runner.run()
        assert order == ["a", "b", "c"]

    def test_due_set_queried_once(self, runner, registry, make_job, service, repo):
        def spawn(request, event):
            service.schedule(RequestEvent("report", uuid="spawned"), NOW - 100)

        registry.register("spawn", spawn)
        _returns(registry, "report", StatusEnum.OK)
        make_job(event="spawn")

        result = runner.run()
        assert result.processed == 1
        assert repo.load("spawned").total_runs == 0

        runner.run()
        assert repo.load("spawned") is None

    def test_future_and_exhausted_jobs_not_run(self, runner, registry, make_job, repo):
        calls = []
        registry.register("report", lambda request, event: calls.append(event.uuid))
        make_job(event="report", uuid="future", start=NOW + 1)
        make_job(event="report", uuid="exhausted", errors=3)
        runner.run()
        assert calls == []


# ── Locks ───────────────────────────────────────────────────────────────


class TestLocking:
    def test_all_slots_taken_is_locked(self, runner, registry, make_job, locks, repo):
        calls = []
        registry.register("report", lambda request, event: calls.append(1))
        job = make_job(event="report")
        other = locks.for_owner("runner-b")
        for slot in range(3):
            other.acquire(f"cron:slot:{slot}")

        result = runner.run()
        assert result.status is StatusEnum.LOCKED
        assert result.message == "Cron runner is already running."
        assert calls == []
        assert repo.load(job.uuid) == job
        assert runner.stats.locked == 1

    def test_claims_first_free_slot(self, repo, locks, registry, clock, make_job):
        held = {}
        registry.register("report", lambda request, event: held.update(locks.held()))
        job_id = make_job(event="report").id
        locks.for_owner("runner-b").acquire("cron:slot:0")

        runner = CronRunner(repo, locks, EventDispatcher(registry), max_errors=3, max_concurrent_jobs=2, clock=clock)
        assert runner.run().status is StatusEnum.OK
        assert held["cron:slot:1"] == "runner-a"
        assert held[f"cron:job:{job_id}"] == "runner-a"

    def test_single_slot(self, repo, locks, registry, clock):
        locks.for_owner("runner-b").acquire("cron:slot:0")
        runner = CronRunner(repo, locks, EventDispatcher(registry), max_errors=3, max_concurrent_jobs=1, clock=clock)
        assert runner.run().status is StatusEnum.LOCKED

    def test_locked_job_skipped(self, runner, registry, make_job, locks, repo):
        calls = []
        registry.register("report", lambda request, event: calls.append(event.uuid))
        busy = make_job(event="report", uuid="busy", start=NOW - 20)
        make_job(event="report", uuid="free", start=NOW - 10)
        locks.for_owner("runner-b").acquire(f"cron:job:{busy.id}")

        result = runner.run()
        assert result.status is StatusEnum.OK
        assert result.skipped == 1
        assert calls == ["free"]
        assert repo.load("busy") == busy

    def test_locks_released_after_pass(self, runner, registry, make_job, locks):
        def broken(request, event):
            raise RuntimeError("boom")

        registry.register("broken", broken)
        make_job(event="broken")
        _returns(registry, "report", StatusEnum.OK)
        make_job(event="report")

        runner.run()
        assert locks.held() == {}
        assert runner.slot is None

    def test_stale_record_skipped(self, runner, registry, make_job, repo):
        calls = []
        registry.register("report", lambda request, event: calls.append(event.uuid))
        job = make_job(event="report", uuid="moved")

        original_query = repo.query_due

        def query_then_reschedule(now, max_errors):
            due = original_query(now, max_errors)
            # another runner finishes the job between the query and the claim
            moved = repo.load(job.id)
            moved.start = NOW + 60
            repo.save(moved)
            return due

        repo.query_due = query_then_reschedule
        result = runner.run()
        assert calls == []
        assert result.skipped == 1


# ── Fatal recurrence ────────────────────────────────────────────────────


class TestRecurrenceError:
    def test_batch_counts_failure_and_parks_job(self, runner, registry, make_job, repo, locks):
        _returns(registry, "report", StatusEnum.OK)
        bad = make_job(event="report", uuid="bad", start=NOW - 20, recurring="+1 parsec")
        make_job(event="report", uuid="good", start=NOW - 10)

        result = runner.run()
        assert result.status is StatusEnum.OK
        assert result.failed == 1
        assert result.processed == 1
        assert repo.load("good") is None

        parked = repo.load(bad.id)
        assert parked.status is StatusEnum.ERROR
        assert parked.message == "Invalid recurring value: '+1 parsec'"
        assert parked.errors == 3
        assert repo.query_due(NOW + DAY, 3) == []
        assert locks.held() == {}

    def test_force_run_raises(self, runner, registry, make_job):
        _returns(registry, "report", StatusEnum.OK)
        job = make_job(event="report", recurring="+1 parsec")
        with pytest.raises(RecurrenceError) as exc_info:
            runner.run(TriggerRequest(run=job.id))
        assert exc_info.value.context.job_id == job.id
        assert exc_info.value.recurring == "+1 parsec"


def test_too_many_errors_removes(runner, make_job, repo):
    job = make_job(recurring="+1 day", errors=3)
    job.status = StatusEnum.OK
    assert runner.reschedule_or_remove(job, NOW) is Decision.TOO_MANY_ERRORS
    assert repo.count() == 0


# ── Trigger options ─────────────────────────────────────────────────────


class TestTrigger:
    def test_list(self, runner, make_job):
        b = make_job(start=NOW + 100)
        a = make_job(start=NOW - 100)
        result = runner.run({"list": True})
        assert result.status is StatusEnum.OK
        assert [j.id for j in result.jobs] == [a.id, b.id]

    def test_remove(self, runner, make_job, repo):
        make_job(uuid="nightly")
        result = runner.run({"remove": "nightly"})
        assert result.status is StatusEnum.OK
        assert repo.load("nightly") is None

    def test_remove_missing(self, runner):
        assert runner.run({"remove": 99}).status is StatusEnum.NOT_FOUND

    def test_run_bypasses_due_check_and_locks(self, runner, registry, make_job, locks, repo):
        _returns(registry, "report", StatusEnum.OK)
        job = make_job(event="report", start=NOW + DAY, recurring="+1 day")
        locks.for_owner("runner-b").acquire(f"cron:job:{job.id}")
        for slot in range(3):
            locks.for_owner("runner-b").acquire(f"cron:slot:{slot}")

        result = runner.run({"run": str(job.id)})
        assert result.status is StatusEnum.OK
        assert result.job.total_runs == 1
        assert result.job.start == NOW + 2 * DAY
        assert repo.load(job.id).last_run == NOW

    def test_run_missing(self, runner):
        assert runner.run(TriggerRequest(run="nope")).status is StatusEnum.NOT_FOUND

    def test_options_mutually_exclusive(self):
        with pytest.raises(ValidationError):
            TriggerRequest(list=True, run=1)
        with pytest.raises(ValidationError):
            TriggerRequest.from_mapping({"remove": 1, "run": 2})

    def test_id_zero_counts_as_set(self):
        with pytest.raises(ValidationError):
            TriggerRequest(remove=0, run=0)

    def test_result_to_dict(self, runner, make_job):
        make_job()
        data = runner.run({"list": True}).to_dict()
        assert data["status"] == "OK"
        assert len(data["jobs"]) == 1


# ── Configuration ───────────────────────────────────────────────────────


class TestConfiguration:
    @pytest.mark.parametrize("max_errors", [0, -1, True, "3", None])
    def test_invalid_max_errors(self, repo, locks, registry, max_errors):
        with pytest.raises(InvalidConfigError):
            CronRunner(repo, locks, EventDispatcher(registry), max_errors=max_errors)

    def test_negative_concurrency(self, repo, locks, registry):
        with pytest.raises(InvalidConfigError):
            CronRunner(repo, locks, EventDispatcher(registry), max_errors=1, max_concurrent_jobs=-1)

    @pytest.mark.parametrize("value", [0, None])
    def test_concurrency_defaults_to_three(self, repo, locks, registry, value):
        runner = CronRunner(repo, locks, EventDispatcher(registry), max_errors=1, max_concurrent_jobs=value)
        assert runner.max_concurrent_jobs == 3

    def test_from_settings(self, conn, registry, clock, make_job, repo):
        _returns(registry, "report", StatusEnum.OK)
        make_job(event="report")
        settings = CronSettings(max_errors=2, max_concurrent_jobs=1)

        runner = CronRunner.from_settings(settings, conn, executor=EventDispatcher(registry), clock=clock)
        assert isinstance(runner.locks, LockManager)
        assert runner.max_errors == 2
        assert runner.max_concurrent_jobs == 1
        assert runner.run().processed == 1
        assert repo.count() == 0
        assert runner.locks.list_active_locks() == []

    def test_stats(self, runner, registry, make_job):
        _returns(registry, "report", StatusEnum.OK)
        make_job(event="report")
        runner.run()
        runner.run()
        assert runner.stats.invocations == 2
        assert runner.stats.jobs_processed == 1
        assert runner.stats.decisions == {"done": 1}
        assert runner.stats.last_run == NOW
