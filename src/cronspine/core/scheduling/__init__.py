"""Scheduling package for cronspine.

Manifesto:
    Deferred and recurring work in a multi-process deployment needs more
    than ``time.sleep()`` in a loop. It needs a persisted job record, a
    bounded pool of runner slots, per-job exclusion so no due job runs
    twice, and an explicit decision after every run: remove, retry soon or
    reschedule.

┌──────────────────────────────────────────────────────────────────────────────┐
│  CRONSPINE SCHEDULING                                                        │
│                                                                              │
│  Quick Start:                                                                │
│  ┌──────────────────────────────────────────────────────────────────────┐   │
│  │   from cronspine.core.scheduling import (                            │   │
│  │       CronRunner, CronService, EventDispatcher,                      │   │
│  │       JobRepository, LockManager, RequestEvent,                      │   │
│  │   )                                                                  │   │
│  │                                                                      │   │
│  │   repo = JobRepository(conn)                                         │   │
│  │   CronService(repo).schedule(RequestEvent("report"), "+1 hour")     │   │
│  │                                                                      │   │
│  │   runner = CronRunner(repo, LockManager(conn), EventDispatcher(),    │   │
│  │                       max_errors=5)                                  │   │
│  │   runner.run()          # batch pass: OK or LOCKED                   │   │
│  └──────────────────────────────────────────────────────────────────────┘   │
│                                                                              │
│   job.py          CronJob record + validate_field                            │
│   repository.py   JobRepository (create/load/save/remove/query_due)          │
│   lock_manager.py LockProvider, LockManager, InMemoryLockProvider            │
│   events.py       Origin, RequestEvent, Outcome                              │
│   executor.py     Executor, HandlerRegistry, EventDispatcher                 │
│   service.py      CronService (schedule/unschedule/get)                      │
│   runner.py       CronRunner, TriggerRequest, RunResult, decide              │
│   worker.py       TriggerBackend, ThreadSchedulerBackend, CronWorker         │
└──────────────────────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Executing a due job without holding its ``cron:job:<id>`` lock
    ✅ Go through CronRunner, which claims and releases both lock families
"""

from .events import Origin, Outcome, RequestEvent
from .executor import (
    EventDispatcher,
    Executor,
    HandlerRegistry,
    get_default_registry,
    register_handler,
    reset_default_registry,
)
from .job import CronJob, validate_field
from .lock_manager import InMemoryLockProvider, LockManager, LockProvider
from .repository import JobRepository
from .runner import (
    RETRY_DELAY_SECONDS,
    CronRunner,
    Decision,
    RunnerStats,
    RunResult,
    TriggerRequest,
    decide,
)
from .service import CronService
from .worker import CronWorker, ThreadSchedulerBackend, TriggerBackend

__all__ = [
    # Records
    "CronJob",
    "validate_field",
    "JobRepository",
    # Locks
    "LockProvider",
    "LockManager",
    "InMemoryLockProvider",
    # Events / execution
    "Origin",
    "RequestEvent",
    "Outcome",
    "Executor",
    "HandlerRegistry",
    "EventDispatcher",
    "get_default_registry",
    "reset_default_registry",
    "register_handler",
    # Scheduling
    "CronService",
    "CronRunner",
    "TriggerRequest",
    "RunResult",
    "RunnerStats",
    "Decision",
    "decide",
    "RETRY_DELAY_SECONDS",
    # Worker
    "TriggerBackend",
    "ThreadSchedulerBackend",
    "CronWorker",
]
