"""Structured log event name constants for the daily scan pass.

Every key transition in the scheduler emits a log record with an ``event``
field (passed via ``extra={"event": events.X}``).  In ``LOG_FORMAT=json``
mode it surfaces as ``extra.event``; in text mode the message text is
self-describing and the field is not interpolated.

Usage example::

    import logging
    from salewatch.core import events

    logger = logging.getLogger(__name__)

    logger.info("Pass started", extra={"event": events.PASS_START})
"""

from __future__ import annotations

__all__ = [
    # Pass lifecycle
    "PASS_START",
    "PASS_RESUME",
    "PASS_RATE_LIMITED",
    "PASS_COMPLETE",
    "PASS_ABORT",
    "NEXT_TRIGGER_ARMED",
    # Listing processing
    "LISTING_CHECKED",
    "LISTING_SKIPPED",
    "ALERT_SENT",
    "ALERT_FAILED",
    "FLAGS_WRITE_FAILED",
    # Status
    "STATUS_REPORT",
]

# ---------------------------------------------------------------------------
# Pass lifecycle
# ---------------------------------------------------------------------------

#: A trigger fired and a fresh iteration over all listing ids was opened.
PASS_START: str = "PASS_START"

#: A cooldown fired and the pass resumes with the parked listing id.
PASS_RESUME: str = "PASS_RESUME"

#: The price source rate-limited us; the pass is parked for a cooldown.
PASS_RATE_LIMITED: str = "PASS_RATE_LIMITED"

#: Every listing id was visited; the cursor was cleared.
PASS_COMPLETE: str = "PASS_COMPLETE"

#: A non-rate-limit fetch failure abandoned the rest of the pass.
PASS_ABORT: str = "PASS_ABORT"

#: The next daily trigger timer was armed.
NEXT_TRIGGER_ARMED: str = "NEXT_TRIGGER_ARMED"

# ---------------------------------------------------------------------------
# Listing processing
# ---------------------------------------------------------------------------

#: A snapshot was fetched and every subscription of the listing evaluated.
LISTING_CHECKED: str = "LISTING_CHECKED"

#: Subscriptions of a listing could not be read; listing skipped this pass.
LISTING_SKIPPED: str = "LISTING_SKIPPED"

#: A sale or release alert was delivered (or logged in dry-run mode).
ALERT_SENT: str = "ALERT_SENT"

#: Alert delivery failed; flags were already written, alert is lost.
ALERT_FAILED: str = "ALERT_FAILED"

#: Subscription flag update failed; alert deferred to a later pass.
FLAGS_WRITE_FAILED: str = "FLAGS_WRITE_FAILED"

# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

#: Hourly "time until next check" status report.
STATUS_REPORT: str = "STATUS_REPORT"
