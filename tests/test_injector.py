"""Tests for FailureInjector."""
import pytest

from cloudreact.engine import Datacenter
from cloudreact.injector import SECONDS_PER_HOUR, FailureInjector

SEED = 112717613


def test_failure_times_increase_strictly_within_horizon():
    injector = FailureInjector(0.01, SEED, 800)
    times = injector.schedule()

    assert all(later > earlier for earlier, later in zip(times, times[1:]))
    assert all(0 < t <= 800 for t in times)


def test_same_seed_same_schedule():
    first = FailureInjector(0.5, 42, 100).schedule()
    second = FailureInjector(0.5, 42, 100).schedule()

    assert first == second
    assert len(first) > 10


def test_schedule_does_not_consume_the_live_stream():
    injector = FailureInjector(0.5, 7, 100)
    expected = injector.schedule()

    assert injector.next_failure_time(0.0) == expected[0]
    assert injector.schedule() == expected


def test_no_event_past_the_horizon():
    injector = FailureInjector(0.5, 7, 100)
    assert injector.next_failure_time(100.0) is None


def test_inter_arrival_mean():
    assert FailureInjector(0.01, SEED, 800).inter_arrival_mean_hours == pytest.approx(100.0)


@pytest.mark.parametrize("rate, horizon", [(0, 10), (-1, 10), (0.1, 0)])
def test_invalid_parameters(rate, horizon):
    with pytest.raises(ValueError):
        FailureInjector(rate, SEED, horizon)


def test_choose_target_uniform_and_weighted():
    hosts = ["a", "b", "c"]
    uniform = FailureInjector(0.1, SEED, 10)
    assert {uniform.choose_target(hosts) for _ in range(50)} <= set(hosts)
    assert uniform.choose_target([]) is None

    weighted = FailureInjector(0.1, SEED, 10, weighting=lambda h: 1.0 if h == "c" else 0.0)
    assert {weighted.choose_target(hosts) for _ in range(20)} == {"c"}


def test_repair_time_is_positive_seconds():
    injector = FailureInjector(0.1, SEED, 10, mean_repair_hours=2)
    samples = [injector.sample_repair_time() for _ in range(20)]
    assert all(s > 0 for s in samples)


def test_events_delivered_on_the_engine_timeline():
    datacenter = Datacenter()
    for _ in range(3):
        datacenter.add_host(4, 1000, 4096, 100000, 1000000)
    injector = FailureInjector(1.0, 3, 10)
    delivered = []
    injector.add_listener(lambda event: delivered.append((datacenter.now, event)))

    injector.start(datacenter)
    datacenter.run(until=20 * SECONDS_PER_HOUR)

    assert [event.time for _, event in delivered] == injector.schedule()
    for now, event in delivered:
        assert now == pytest.approx(event.time * SECONDS_PER_HOUR)
        assert event.target_host_id in datacenter.hosts
    assert injector.events == [event for _, event in delivered]
