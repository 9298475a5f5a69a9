"""Fault counters and the availability/MTTR/MTBF figures derived from them."""
from __future__ import annotations

import logging
import statistics

from .errors import PlacementError, RetryExhaustion
from .models import FaultKind, FaultRecord, ReactiveSnapshot

logger = logging.getLogger(__name__)


class MetricsAggregator:
    """Single owner of every fault counter for one simulation run.

    Counters only grow between two calls to reset(). Availability is computed
    from VM fault records, each of which is a downtime interval that stays
    open until the VM's clone is running again.
    """

    def __init__(self, start_time=0.0):
        self.reset(start_time)

    def reset(self, start_time=0.0):
        self.start_time = start_time
        self.total_faults = 0
        self.host_faults = 0
        self.records = []
        self.errors = []
        self.placement_errors = 0
        self.retry_exhaustions = 0

    @property
    def vm_faults(self):
        return self.total_faults - self.host_faults

    def open_fault(self, kind, subject_id, now):
        record = FaultRecord(kind=kind, subject_id=subject_id, start_time=now)
        self.records.append(record)
        self.total_faults += 1
        if kind is FaultKind.HOST:
            self.host_faults += 1
        return record

    def close_fault(self, record, now):
        record.complete(now)
        logger.info(f"{now:.2f}: {record.kind.value} {record.subject_id} repaired "
                    f"after {record.repair_duration:.2f}s")

    def abandon_fault(self, record, now):
        """Close a record whose subject will never come back.

        Its downtime still counts up to now, but it is left out of MTTR.
        """
        record.complete(now)
        record.abandoned = True
        logger.warning(f"{now:.2f}: {record.kind.value} {record.subject_id} abandoned "
                       f"after {record.repair_duration:.2f}s")

    def record_error(self, error):
        self.errors.append(error)
        if isinstance(error, PlacementError):
            self.placement_errors += 1
        elif isinstance(error, RetryExhaustion):
            self.retry_exhaustions += 1
        logger.error(f"{type(error).__name__}: {error}")

    def _records(self, kind=None):
        return [r for r in self.records if kind is None or r.kind is kind]

    def pending_repairs(self, kind=None):
        return [r for r in self._records(kind) if not r.completed]

    def mttr(self, kind=None):
        """Mean repair duration in seconds over repaired records; 0.0 when none were repaired."""
        durations = [r.repair_duration for r in self._records(kind) if r.completed and not r.abandoned]
        if not durations:
            return 0.0
        return statistics.mean(durations)

    def observed_time(self, now):
        return max(0.0, now - self.start_time)

    def mtbf(self, now, kind=FaultKind.VM):
        """Observed time divided by the number of faults of that kind.

        With no faults the whole observed time is returned, as a lower bound.
        """
        faults = self.host_faults if kind is FaultKind.HOST else self.vm_faults
        return self.observed_time(now) / max(1, faults)

    def downtime(self, now):
        """Length of the union of VM downtime intervals clipped to [start_time, now]."""
        intervals = []
        for record in self._records(FaultKind.VM):
            begin = max(record.start_time, self.start_time)
            end = min(record.repair_time if record.completed else now, now)
            if end > begin:
                intervals.append((begin, end))
        intervals.sort()

        total = 0.0
        current_begin = current_end = None
        for begin, end in intervals:
            if current_end is None or begin > current_end:
                if current_end is not None:
                    total += current_end - current_begin
                current_begin, current_end = begin, end
            else:
                current_end = max(current_end, end)
        if current_end is not None:
            total += current_end - current_begin
        return total

    def availability(self, now):
        observed = self.observed_time(now)
        if observed <= 0:
            return 1.0
        return min(1.0, max(0.0, 1.0 - self.downtime(now) / observed))

    def snapshot(self, now):
        return ReactiveSnapshot(time=now, availability=self.availability(now),
                                fault_count=self.total_faults,
                                host_fault_count=self.host_faults)
