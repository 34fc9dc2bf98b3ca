"""Daily scan scheduling, per-listing processing, and process wiring.

Public API
----------
* :class:`~salewatch.orchestrator.scheduler.DailyScheduler` — state machine
  that runs one pass over every tracked listing per daily trigger.
* :class:`~salewatch.orchestrator.scheduler.StatusReporter` — hourly
  "time until next check" report and heartbeat file.
* :class:`~salewatch.orchestrator.cursor.ResumableCursor` — in-memory pass
  position kept across rate-limit cooldowns.
* :func:`~salewatch.orchestrator.processing.process_listing` /
  :func:`~salewatch.orchestrator.processing.decide_alert` — per-listing
  subscription evaluation.
* :func:`~salewatch.orchestrator.runner.run_once` /
  :func:`~salewatch.orchestrator.runner.run_continuous` — entry-points used
  by ``python -m salewatch``.
"""

from salewatch.orchestrator.cursor import ResumableCursor
from salewatch.orchestrator.processing import PassStats, decide_alert, process_listing
from salewatch.orchestrator.runner import open_scheduler, run_continuous, run_once
from salewatch.orchestrator.scheduler import (
    DailyScheduler,
    SchedulerState,
    StatusReporter,
)

__all__ = [
    # Scheduler
    "DailyScheduler",
    "SchedulerState",
    "StatusReporter",
    "ResumableCursor",
    # Processing
    "PassStats",
    "decide_alert",
    "process_listing",
    # Entry-points
    "open_scheduler",
    "run_once",
    "run_continuous",
]
