"""Tests for SLA contract loading and evaluation."""
import dataclasses
import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from cloudreact.errors import ConfigError, MetricUnavailable
from cloudreact.models import BoundKind, FaultKind, Verdict
from cloudreact.sla import (
    AVAILABILITY,
    FAULT_TOLERANCE_LEVEL,
    TASK_COMPLETION_TIME,
    assess_run,
    load_contract,
    normalize_metric_name,
    parse_contract,
)

REPO_CONTRACT = Path(__file__).resolve().parent.parent / "CustomerSLA.json"


def test_max_bound_is_inclusive(contract):
    assert contract.evaluate(TASK_COMPLETION_TIME, 9000) is Verdict.COMPLIANT
    assert contract.evaluate(TASK_COMPLETION_TIME, 9000.01) is Verdict.VIOLATED


def test_min_bound_is_inclusive(contract):
    assert not contract.is_violated(AVAILABILITY, 99.0)
    assert contract.is_violated(AVAILABILITY, 98.99)
    assert not contract.is_violated(AVAILABILITY, 100.0)


def test_both_bounds():
    contract = parse_contract({"cpuUtilization": {"minValue": 0.1, "maxValue": 0.9}})
    assert contract.is_violated("cpuUtilization", 0.05)
    assert not contract.is_violated("cpuUtilization", 0.1)
    assert not contract.is_violated("cpuUtilization", 0.9)
    assert contract.is_violated("cpuUtilization", 0.95)


def test_unconfigured_metric_is_unavailable(contract):
    with pytest.raises(MetricUnavailable) as excinfo:
        contract.evaluate("responseTime", 1.0)
    assert excinfo.value.metric_name == "responseTime"


def test_metric_without_bounds_is_always_compliant():
    contract = parse_contract({"metrics": {"availability": {}}})
    assert contract.evaluate(AVAILABILITY, 0.0) is Verdict.COMPLIANT


def test_list_form_with_cloudsim_names():
    contract = parse_contract({"metrics": [
        {"name": "TaskCompletionTime", "dimensions": [{"name": "maxValue", "value": 50}]},
        {"name": "Availability", "dimensions": [{"name": "minValue", "value": 95}]},
    ]})

    assert contract.bounds(TASK_COMPLETION_TIME) == (None, 50.0)
    assert contract.bounds(AVAILABILITY) == (95.0, None)
    assert [(d.metric_name, d.bound_kind) for d in contract.dimensions] == [
        (TASK_COMPLETION_TIME, BoundKind.MAX), (AVAILABILITY, BoundKind.MIN)]


def test_normalize_metric_name():
    assert normalize_metric_name("FaultToleranceLevel") == FAULT_TOLERANCE_LEVEL
    assert normalize_metric_name("availability") == AVAILABILITY


def test_dimensions_are_read_only(contract):
    dimension = contract.dimensions[0]
    with pytest.raises(dataclasses.FrozenInstanceError):
        dimension.threshold = 1.0
    assert isinstance(contract.dimensions, tuple)


@pytest.mark.parametrize("document", [
    [],
    {},
    {"metrics": 3},
    {"availability": 99},
    {"availability": {"minValue": "high"}},
    {"availability": {"minValue": True}},
    {"cpuUtilization": {"minValue": 0.9, "maxValue": 0.1}},
    {"metrics": [{"dimensions": []}]},
    {"metrics": [{"name": "Availability", "dimensions": [{"name": "minValue"}]}]},
    {"metrics": [{"name": "Availability", "dimensions": [{"name": "minValue", "value": 1},
                                                         {"name": "minValue", "value": 2}]}]},
    {"metrics": [{"name": "Availability", "dimensions": []},
                 {"name": "availability", "dimensions": []}]},
])
def test_malformed_documents_raise_config_error(document):
    with pytest.raises(ConfigError):
        parse_contract(document)


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_contract(tmp_path / "nope.json")


def test_load_invalid_json(tmp_path):
    path = tmp_path / "sla.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError):
        load_contract(path)


def test_load_from_file(tmp_path):
    path = tmp_path / "sla.json"
    path.write_text(json.dumps({"metrics": {"taskCompletionTime": {"maxValue": 9000}}}))

    contract = load_contract(path)

    assert contract.metric_names == {TASK_COMPLETION_TIME}


def test_shipped_contract_loads():
    contract = load_contract(REPO_CONTRACT)
    assert contract.is_configured(TASK_COMPLETION_TIME)
    assert contract.is_configured(FAULT_TOLERANCE_LEVEL)
    assert contract.is_configured(AVAILABILITY)
    assert contract.is_configured("cpuUtilization")


def _finished(total_time):
    return SimpleNamespace(total_time=lambda: total_time)


def test_assess_run_counts_task_completion_violations(contract, aggregator):
    cloudlets = [_finished(100), _finished(9000), _finished(9001), _finished(None)]

    assessment = assess_run(contract, cloudlets, aggregator, now=100.0, cpu_utilization=0.5)

    assert assessment.task_completion_violations == 1
    assert assessment.evaluated_cloudlets == 3
    assert assessment.verdicts[AVAILABILITY] is Verdict.COMPLIANT
    assert assessment.verdicts["cpuUtilization"] is Verdict.COMPLIANT
    assert assessment.violated


def test_assess_run_fault_tolerance_and_availability(aggregator):
    contract = parse_contract({"faultToleranceLevel": {"maxValue": 1},
                               "availability": {"minValue": 99.0}})
    aggregator.open_fault(FaultKind.HOST, 0, 0.0)
    aggregator.open_fault(FaultKind.VM, 1, 0.0)

    assessment = assess_run(contract, [], aggregator, now=100.0)

    assert assessment.observed[FAULT_TOLERANCE_LEVEL] == 2
    assert assessment.verdicts[FAULT_TOLERANCE_LEVEL] is Verdict.VIOLATED
    assert assessment.verdicts[AVAILABILITY] is Verdict.VIOLATED
    assert "cpuUtilization" not in assessment.verdicts
