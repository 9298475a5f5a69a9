"""SLA contract loading and per-metric threshold evaluation.

A contract document is JSON with one entry per metric, each optionally
carrying ``minValue`` and/or ``maxValue``::

    {"metrics": {"taskCompletionTime": {"maxValue": 9000},
                 "availability": {"minValue": 99.5}}}

The list form written by CloudSim Plus customers is accepted as well::

    {"metrics": [{"name": "TaskCompletionTime",
                  "dimensions": [{"name": "maxValue", "value": 9000}]}]}

Bounds are inclusive: a value equal to a bound is compliant.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Optional

from .errors import ConfigError, MetricUnavailable
from .models import BoundKind, SlaDimension, Verdict

logger = logging.getLogger(__name__)

TASK_COMPLETION_TIME = "taskCompletionTime"
FAULT_TOLERANCE_LEVEL = "faultToleranceLevel"
AVAILABILITY = "availability"  # percent
CPU_UTILIZATION = "cpuUtilization"  # fraction of host PE capacity

BOUND_KEYS = {"minValue": BoundKind.MIN, "maxValue": BoundKind.MAX}


def normalize_metric_name(name):
    """'TaskCompletionTime' and 'taskCompletionTime' name the same metric."""
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"Invalid metric name: {name!r}")
    name = name.strip()
    return name[0].lower() + name[1:]


def _threshold(metric, key, value):
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise ConfigError(f"{metric}.{key} must be a number, got {value!r}")
    return float(value)


class SlaContract:
    """Immutable, ordered set of SLA dimensions, unique per metric and bound kind."""

    def __init__(self, dimensions, metrics=None):
        self._dimensions = tuple(dimensions)
        index = {}
        for dim in self._dimensions:
            key = (dim.metric_name, dim.bound_kind)
            if key in index:
                raise ConfigError(f"Duplicate {dim.bound_kind.value} bound for {dim.metric_name}")
            index[key] = dim.threshold
        self._index = MappingProxyType(index)
        names = [d.metric_name for d in self._dimensions] + list(metrics or ())
        self._metrics = frozenset(names)

        for name in self._metrics:
            low, high = self.bounds(name)
            if low is not None and high is not None and low > high:
                raise ConfigError(f"{name}: minValue {low} is greater than maxValue {high}")

    @property
    def dimensions(self):
        return self._dimensions

    @property
    def metric_names(self):
        return self._metrics

    def is_configured(self, metric_name):
        return metric_name in self._metrics

    def bounds(self, metric_name):
        return (self._index.get((metric_name, BoundKind.MIN)),
                self._index.get((metric_name, BoundKind.MAX)))

    def evaluate(self, metric_name, observed_value):
        if metric_name not in self._metrics:
            raise MetricUnavailable(metric_name)
        low, high = self.bounds(metric_name)
        if high is not None and observed_value > high:
            return Verdict.VIOLATED
        if low is not None and observed_value < low:
            return Verdict.VIOLATED
        return Verdict.COMPLIANT

    def is_violated(self, metric_name, observed_value):
        return self.evaluate(metric_name, observed_value).violated


def _entries(document):
    """Yield (metric name, {minValue/maxValue: value}) from either document shape."""
    if not isinstance(document, dict):
        raise ConfigError("SLA contract must be a JSON object")
    metrics = document.get("metrics", document)

    if isinstance(metrics, list):
        for entry in metrics:
            if not isinstance(entry, dict) or "name" not in entry:
                raise ConfigError(f"Malformed metric entry: {entry!r}")
            dims = entry.get("dimensions", [])
            if not isinstance(dims, list):
                raise ConfigError(f"{entry['name']}: dimensions must be a list")
            values = {}
            for dim in dims:
                if not isinstance(dim, dict) or "name" not in dim or "value" not in dim:
                    raise ConfigError(f"{entry['name']}: malformed dimension {dim!r}")
                if dim["name"] in values:
                    raise ConfigError(f"Duplicate {dim['name']} for {entry['name']}")
                values[dim["name"]] = dim["value"]
            yield entry["name"], values
    elif isinstance(metrics, dict):
        for name, values in metrics.items():
            if not isinstance(values, dict):
                raise ConfigError(f"{name}: expected an object with minValue/maxValue")
            yield name, values
    else:
        raise ConfigError("SLA contract 'metrics' must be an object or a list")


def parse_contract(document):
    dimensions = []
    metrics = []
    for raw_name, values in _entries(document):
        name = normalize_metric_name(raw_name)
        if name in metrics:
            raise ConfigError(f"Metric {name} declared more than once")
        metrics.append(name)
        for key, kind in BOUND_KEYS.items():
            if key in values:
                dimensions.append(SlaDimension(name, kind, _threshold(name, key, values[key])))
    if not metrics:
        raise ConfigError("SLA contract declares no metrics")
    return SlaContract(dimensions, metrics)


def load_contract(path):
    path = Path(path)
    try:
        document = json.loads(path.read_text())
    except FileNotFoundError as e:
        raise ConfigError(f"SLA contract not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"SLA contract {path} is not valid JSON: {e}") from e
    contract = parse_contract(document)
    logger.info(f"Loaded SLA contract {path} with metrics: {', '.join(sorted(contract.metric_names))}")
    return contract


@dataclass
class SlaAssessment:
    """End-of-run verdicts for the configured metrics."""
    task_completion_violations: int = 0
    evaluated_cloudlets: int = 0
    verdicts: Dict[str, Verdict] = field(default_factory=dict)
    observed: Dict[str, float] = field(default_factory=dict)

    @property
    def violated(self):
        return self.task_completion_violations > 0 or any(v.violated for v in self.verdicts.values())


def assess_run(contract, cloudlets, aggregator, now, cpu_utilization: Optional[float] = None):
    """Check finished cloudlets and the run-wide metrics against the contract.

    Unconfigured metrics are skipped.
    """
    assessment = SlaAssessment()
    if contract.is_configured(TASK_COMPLETION_TIME):
        for cloudlet in cloudlets:
            total_time = cloudlet.total_time()
            if total_time is None:
                continue
            assessment.evaluated_cloudlets += 1
            if contract.is_violated(TASK_COMPLETION_TIME, total_time):
                assessment.task_completion_violations += 1

    observed = {
        FAULT_TOLERANCE_LEVEL: aggregator.total_faults,
        AVAILABILITY: aggregator.availability(now) * 100,
    }
    if cpu_utilization is not None:
        observed[CPU_UTILIZATION] = cpu_utilization

    for metric, value in observed.items():
        if not contract.is_configured(metric):
            continue
        assessment.observed[metric] = value
        assessment.verdicts[metric] = contract.evaluate(metric, value)
        if assessment.verdicts[metric].violated:
            logger.warning(f"SLA {metric} violated: observed {value:.4f}, bounds {contract.bounds(metric)}")
    return assessment
