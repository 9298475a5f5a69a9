"""Poisson host-failure injection."""
from __future__ import annotations

import logging
import random

from .models import FailureEvent

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 3600.0
MEAN_HOST_REPAIR_HOURS = 1.0


class FailureInjector:
    """Samples host failures from a Poisson process and delivers them on the engine timeline.

    Failure times are in simulated hours; inter-arrival times are exponential
    with mean 1/rate. Identical seed, rate and horizon give identical events.
    """

    def __init__(self, mean_failures_per_hour, seed, max_time_to_fail_hours,
                 weighting=None, mean_repair_hours=MEAN_HOST_REPAIR_HOURS):
        if mean_failures_per_hour <= 0:
            raise ValueError("mean_failures_per_hour must be positive")
        if max_time_to_fail_hours <= 0:
            raise ValueError("max_time_to_fail_hours must be positive")
        self.rate = mean_failures_per_hour
        self.seed = seed
        self.horizon = max_time_to_fail_hours
        self.weighting = weighting
        self.mean_repair_hours = mean_repair_hours
        # Separate streams so target and repair draws never shift the failure times.
        self._time_rng = random.Random(seed)
        self._target_rng = random.Random(seed + 1)
        self.events = []
        self._listeners = []

    @property
    def inter_arrival_mean_hours(self):
        return 1.0 / self.rate

    def add_listener(self, listener):
        """listener(event) is called when a FailureEvent is delivered."""
        self._listeners.append(listener)

    def _sample_interval(self, rng):
        while True:
            sample = rng.expovariate(self.rate)
            if sample > 0:
                return sample

    def next_failure_time(self, current_time, rng=None):
        """current_time plus an exponential sample, or None past the horizon."""
        t = current_time + self._sample_interval(rng or self._time_rng)
        if t > self.horizon:
            return None
        return t

    def choose_target(self, hosts):
        if not hosts:
            return None
        if self.weighting is None:
            return self._target_rng.choice(hosts)
        weights = [self.weighting(h) for h in hosts]
        if sum(weights) <= 0:
            return self._target_rng.choice(hosts)
        return self._target_rng.choices(hosts, weights=weights, k=1)[0]

    def sample_repair_time(self):
        """Seconds until a failed host comes back."""
        return self._target_rng.expovariate(1.0 / self.mean_repair_hours) * SECONDS_PER_HOUR

    def schedule(self):
        """The failure times this seed produces, without touching any engine."""
        rng = random.Random(self.seed)
        times = []
        t = self.next_failure_time(0.0, rng)
        while t is not None:
            times.append(t)
            t = self.next_failure_time(t, rng)
        return times

    def start(self, datacenter):
        return datacenter.env.process(self.run(datacenter))

    def run(self, datacenter):
        env = datacenter.env
        t = self.next_failure_time(env.now / SECONDS_PER_HOUR)
        while t is not None:
            yield env.timeout(t * SECONDS_PER_HOUR - env.now)
            host = self.choose_target(datacenter.active_hosts())
            if host is None:
                logger.warning(f"{env.now:.2f}: No active host left to fail")
            else:
                event = FailureEvent(time=t, target_host_id=host.id)
                self.events.append(event)
                logger.warning(f"{env.now:.2f}: Injecting failure into Host {host.id} ({t:.2f}h)")
                for listener in self._listeners:
                    listener(event)
            t = self.next_failure_time(t)
