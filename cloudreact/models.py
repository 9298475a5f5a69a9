"""Data models shared by the injector, resolver, aggregator and controller."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Clone ids are the source id times this, so a clone can be traced back by eye.
CLONE_ID_MULTIPLIER = 10


class FaultKind(str, Enum):
    HOST = "HOST"
    VM = "VM"


class BoundKind(str, Enum):
    MIN = "min"
    MAX = "max"


class Verdict(str, Enum):
    COMPLIANT = "compliant"
    VIOLATED = "violated"

    @property
    def violated(self):
        return self is Verdict.VIOLATED


class CloudletStatus(str, Enum):
    CREATED = "CREATED"
    QUEUED = "QUEUED"
    INEXEC = "INEXEC"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    FAILED_RESOURCE_UNAVAILABLE = "FAILED_RESOURCE_UNAVAILABLE"
    CANCELED = "CANCELED"


FAILED_STATUSES = frozenset({CloudletStatus.FAILED, CloudletStatus.FAILED_RESOURCE_UNAVAILABLE})


class ControllerState(str, Enum):
    IDLE = "IDLE"
    ALERTED = "ALERTED"
    REMEDIATING = "REMEDIATING"


@dataclass(frozen=True)
class FailureEvent:
    time: float  # hours
    target_host_id: int


@dataclass
class FaultRecord:
    kind: FaultKind
    subject_id: int
    start_time: float
    repair_time: Optional[float] = None
    abandoned: bool = False  # closed because the VM could not be recovered

    @property
    def completed(self):
        return self.repair_time is not None

    @property
    def repair_duration(self):
        if self.repair_time is None:
            return None
        return self.repair_time - self.start_time

    def complete(self, now):
        if self.repair_time is not None:
            raise ValueError(f"{self.kind.value} fault on {self.subject_id} already repaired")
        if now < self.start_time:
            raise ValueError(f"Repair time {now} precedes fault start {self.start_time}")
        self.repair_time = now


@dataclass(frozen=True)
class SlaDimension:
    metric_name: str
    bound_kind: BoundKind
    threshold: float


@dataclass(frozen=True)
class CloneMapping:
    source_id: int
    clone_id: int
    cause: str


@dataclass(frozen=True)
class ReactiveSnapshot:
    time: float
    availability: float
    fault_count: int
    host_fault_count: int


@dataclass(frozen=True)
class VmSpec:
    """Capacity profile of a VM; vm_id is optional and assigned by the engine if missing."""
    mips: float
    pes: int
    ram: int
    bw: int
    storage: int
    vm_id: Optional[int] = None
    owner: str = "broker0"
    description: str = ""


@dataclass(frozen=True)
class CloudletSpec:
    length: float  # million instructions per PE
    pes: int
    utilization_cpu: float = 1.0
    utilization_ram: float = 0.0
    utilization_bw: float = 0.0
    cloudlet_id: Optional[int] = None
