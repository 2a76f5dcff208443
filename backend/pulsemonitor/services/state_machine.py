"""Status/incident/alert transition rules.

``apply_check`` is a pure function: it derives the next Status from the
previous one and a new sample, and says which incident side effects the
caller must perform. It never mutates its inputs.

Incident policy:
- UP -> DOWN opens an incident on the first failure, regardless of the
  consecutive-failure threshold.
- DOWN -> DOWN (and PENDING -> DOWN) opens one only once the failure count
  reaches the threshold and no incident is ongoing. This mostly matters after
  an incident was closed by hand while the endpoint stayed down.
- DOWN -> UP resolves the ongoing incident (if any) and every active alert
  of the endpoint when auto-resolve is enabled.
An endpoint never gets a second ongoing incident.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..schemas.status import HISTORY_LIMIT, HistoryEntry, Status
from .checker import CheckResult, STATUS_DOWN, STATUS_UP


@dataclass(frozen=True)
class Transition:
    """Outcome of applying one sample to an endpoint's Status."""
    status: Status
    previous_status: str
    open_incident: bool = False
    resolve_incident: bool = False

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.status.status


def apply_check(
    previous: Optional[Status],
    result: CheckResult,
    has_ongoing_incident: bool,
    threshold: int,
    auto_resolve: bool,
    now: datetime,
) -> Transition:
    """Compute the next Status and the incident actions for one sample."""
    previous = previous or Status()
    is_up = result.status == STATUS_UP
    consecutive_failures = 0 if is_up else previous.consecutive_failures + 1

    entry = HistoryEntry(
        timestamp=now,
        status=result.status,
        response_time_ms=result.response_time_ms,
        message=result.message,
    )
    status = Status(
        status=result.status,
        response_time_ms=result.response_time_ms,
        message=result.message,
        last_check=now,
        consecutive_failures=consecutive_failures,
        total_checks=previous.total_checks + 1,
        successful_checks=previous.successful_checks + (1 if is_up else 0),
        history=[entry, *previous.history][:HISTORY_LIMIT],
        ssl_info=result.ssl_info,
    )

    open_incident = False
    resolve_incident = False
    if not is_up:
        if previous.status == STATUS_UP:
            open_incident = not has_ongoing_incident
        else:
            open_incident = consecutive_failures >= threshold and not has_ongoing_incident
    elif previous.status == STATUS_DOWN and auto_resolve:
        resolve_incident = True

    return Transition(
        status=status,
        previous_status=previous.status,
        open_incident=open_incident,
        resolve_incident=resolve_incident,
    )
