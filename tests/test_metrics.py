"""Tests for MetricsAggregator."""
import pytest

from cloudreact.errors import PlacementError, RetryExhaustion
from cloudreact.metrics import MetricsAggregator
from cloudreact.models import FaultKind


def test_counters_by_kind(aggregator):
    aggregator.open_fault(FaultKind.HOST, 3, 10.0)
    aggregator.open_fault(FaultKind.VM, 1, 10.0)
    aggregator.open_fault(FaultKind.VM, 2, 10.0)

    assert aggregator.total_faults == 3
    assert aggregator.host_faults == 1
    assert aggregator.vm_faults == 2


def test_mttr_uses_completed_records_only(aggregator):
    done = aggregator.open_fault(FaultKind.VM, 1, 0.0)
    aggregator.open_fault(FaultKind.VM, 2, 5.0)
    host = aggregator.open_fault(FaultKind.HOST, 0, 0.0)
    aggregator.close_fault(done, 10.0)
    aggregator.close_fault(host, 30.0)

    assert aggregator.mttr() == 20.0
    assert aggregator.mttr(FaultKind.VM) == 10.0
    assert len(aggregator.pending_repairs()) == 1


def test_mttr_without_repairs_is_zero(aggregator):
    aggregator.open_fault(FaultKind.VM, 1, 0.0)
    assert aggregator.mttr() == 0.0


def test_repair_cannot_precede_fault(aggregator):
    record = aggregator.open_fault(FaultKind.VM, 1, 10.0)
    with pytest.raises(ValueError):
        aggregator.close_fault(record, 5.0)
    aggregator.close_fault(record, 10.0)
    with pytest.raises(ValueError):
        aggregator.close_fault(record, 20.0)


def test_mtbf_host_and_vm_variants(aggregator):
    aggregator.open_fault(FaultKind.VM, 1, 1.0)
    aggregator.open_fault(FaultKind.VM, 2, 2.0)

    assert aggregator.mtbf(100.0, FaultKind.VM) == 50.0
    # no host faults: the whole observed time
    assert aggregator.mtbf(100.0, FaultKind.HOST) == 100.0


def test_availability_merges_overlapping_downtime(aggregator):
    first = aggregator.open_fault(FaultKind.VM, 1, 10.0)
    second = aggregator.open_fault(FaultKind.VM, 2, 20.0)
    aggregator.close_fault(first, 30.0)
    aggregator.close_fault(second, 40.0)

    assert aggregator.downtime(100.0) == 30.0
    assert aggregator.availability(100.0) == pytest.approx(0.7)


def test_open_record_counts_as_down_until_now(aggregator):
    aggregator.open_fault(FaultKind.VM, 1, 50.0)

    assert aggregator.availability(100.0) == pytest.approx(0.5)
    assert aggregator.availability(200.0) == pytest.approx(0.25)


def test_host_records_do_not_count_as_downtime(aggregator):
    aggregator.open_fault(FaultKind.HOST, 0, 0.0)
    assert aggregator.availability(100.0) == 1.0


def test_availability_stays_within_bounds():
    aggregator = MetricsAggregator(start_time=10.0)
    for vm_id in range(20):
        aggregator.open_fault(FaultKind.VM, vm_id, 5.0 + vm_id)

    assert aggregator.availability(10.0) == 1.0
    for now in (10.5, 11.0, 50.0, 1000.0):
        assert 0.0 <= aggregator.availability(now) <= 1.0
    assert aggregator.availability(50.0) == 0.0


def test_snapshot_reflects_latest_counters(aggregator):
    aggregator.open_fault(FaultKind.HOST, 0, 0.0)
    aggregator.open_fault(FaultKind.VM, 1, 0.0)

    snapshot = aggregator.snapshot(20.0)

    assert snapshot.time == 20.0
    assert snapshot.fault_count == 2
    assert snapshot.host_fault_count == 1
    assert snapshot.availability == 0.0


def test_record_error_counts_incidents(aggregator):
    aggregator.record_error(PlacementError(10))
    aggregator.record_error(RetryExhaustion(4, 3))
    aggregator.record_error(RetryExhaustion(5, 3))

    assert aggregator.placement_errors == 1
    assert aggregator.retry_exhaustions == 2
    assert len(aggregator.errors) == 3


def test_reset_starts_a_new_run(aggregator):
    aggregator.open_fault(FaultKind.HOST, 0, 0.0)
    aggregator.record_error(PlacementError(1))

    aggregator.reset(start_time=500.0)

    assert aggregator.total_faults == 0
    assert aggregator.host_faults == 0
    assert aggregator.records == []
    assert aggregator.placement_errors == 0
    assert aggregator.availability(600.0) == 1.0


def test_abandoned_record_closes_downtime_but_skips_mttr(aggregator):
    repaired = aggregator.open_fault(FaultKind.VM, 1, 0.0)
    aggregator.close_fault(repaired, 10.0)
    lost = aggregator.open_fault(FaultKind.VM, 2, 50.0)
    aggregator.abandon_fault(lost, 60.0)

    assert lost.abandoned
    assert aggregator.pending_repairs() == []
    assert aggregator.mttr(FaultKind.VM) == 10.0
    # downtime stops growing once the loss is final
    assert aggregator.downtime(100.0) == 20.0
    assert aggregator.downtime(1000.0) == 20.0
