"""Reactive controller run on every clock tick."""
from __future__ import annotations

import logging
import math

from .errors import MetricUnavailable, RetryExhaustion
from .models import ControllerState
from .sla import AVAILABILITY

logger = logging.getLogger(__name__)

CONTROL_INTERVAL = 5  # simulated seconds between resubmission scans
MAX_RESUBMISSIONS = 3


class ReactiveController:
    """Alert state machine plus a periodic failed-cloudlet resubmission scan.

    Each tick takes a fresh snapshot from the aggregator. Availability below
    the contract minimum moves IDLE -> ALERTED -> REMEDIATING (failed
    cloudlets are resubmitted) -> IDLE. A fault count above the previous
    tick's is only logged and leaves the controller ALERTED until a clean
    tick brings it back to IDLE.
    """

    def __init__(self, datacenter, aggregator, contract, control_interval=CONTROL_INTERVAL,
                 max_resubmissions=MAX_RESUBMISSIONS):
        if control_interval <= 0:
            raise ValueError("control_interval must be positive")
        self.datacenter = datacenter
        self.aggregator = aggregator
        self.contract = contract
        self.control_interval = control_interval
        self.max_resubmissions = max_resubmissions
        self.state = ControllerState.IDLE
        self.history = []
        self.previous = None
        self.next_scan_time = control_interval
        self.resubmitted_batches = []

    def attach(self):
        self.datacenter.add_clock_tick_listener(self.on_clock_tick)
        return self

    def _transition(self, now, new_state, reason=""):
        if new_state is self.state:
            return
        self.history.append((now, self.state, new_state))
        logger.debug(f"{now:.2f}: Controller {self.state.value} -> {new_state.value} {reason}")
        self.state = new_state

    def availability_violated(self, snapshot):
        try:
            return self.contract.is_violated(AVAILABILITY, snapshot.availability * 100)
        except MetricUnavailable:
            return False

    def on_clock_tick(self, now):
        snapshot = self.aggregator.snapshot(now)
        previous = self.previous
        self.previous = snapshot

        low_availability = self.availability_violated(snapshot)
        remediated = False
        prior_faults = previous.fault_count if previous else 0
        prior_host_faults = previous.host_fault_count if previous else 0
        new_faults = (snapshot.fault_count > prior_faults
                      or snapshot.host_fault_count > prior_host_faults)

        if not (low_availability or new_faults):
            self._transition(now, ControllerState.IDLE, "no violation")
        else:
            self._transition(now, ControllerState.ALERTED)
            if new_faults:
                logger.warning(f"{now:.2f}: Fault count rose {prior_faults} -> {snapshot.fault_count} "
                               f"(host faults {prior_host_faults} -> {snapshot.host_fault_count})")
            if low_availability:
                logger.warning(f"{now:.2f}: Availability SLA violated, current availability "
                               f"{snapshot.availability * 100:.2f}%")
                self._transition(now, ControllerState.REMEDIATING, "resubmitting failed cloudlets")
                self.resubmit_failed(now)
                remediated = True
                self._transition(now, ControllerState.IDLE, "remediation returned")

        if now >= self.next_scan_time:
            self.next_scan_time = (math.floor(now / self.control_interval) + 1) * self.control_interval
            if not remediated:
                logger.debug(f"{now:.2f}: Executing task resubmission control")
                self.resubmit_failed(now)

    def collect_failed(self):
        return [c for c in self.datacenter.unfinished_cloudlets() if c.is_failed()]

    def resubmit_failed(self, now):
        """Resubmit every failed cloudlet as one batch, restarting it from zero.

        Cloudlets already resubmitted max_resubmissions times are marked
        permanently failed instead.
        """
        batch = []
        for cloudlet in self.collect_failed():
            if cloudlet.resubmissions >= self.max_resubmissions:
                cloudlet.permanently_failed = True
                self.aggregator.record_error(RetryExhaustion(cloudlet.id, cloudlet.resubmissions))
                continue
            cloudlet.resubmissions += 1
            cloudlet.reset()
            batch.append(cloudlet)
        if batch:
            logger.info(f"{now:.2f}: Cloudlets are being resubmitted: {batch}")
            self.datacenter.submit_cloudlet_batch(batch)
            self.resubmitted_batches.append((now, [c.id for c in batch]))
        return batch
