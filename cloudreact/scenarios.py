"""Ready-made simulation scenarios wiring the datacenter to the reactive core."""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field, replace
from typing import Optional

from .controller import CONTROL_INTERVAL, MAX_RESUBMISSIONS, ReactiveController
from .engine import Datacenter
from .injector import FailureInjector, SECONDS_PER_HOUR
from .metrics import MetricsAggregator
from .models import CloudletSpec, VmSpec
from .resolver import FaultImpactResolver, VmCloner
from .sla import SlaAssessment, assess_run, load_contract

logger = logging.getLogger(__name__)

BROKER = "broker0"
SLA_CONTRACT_FILE = "CustomerSLA.json"

# --- host-faults scenario ---
HOSTS = 10
HOST_PES = 4
HOST_MIPS_BY_PE = 1000
HOST_RAM = 500000  # MB
HOST_STORAGE = 1000000  # MB
HOST_BW = 100000000  # Mbps

VMS = 2
VM_MIPS = 1000
VM_PES = 2
VM_RAM = 10000
VM_BW = 100000
VM_SIZE = 1000
VM_RECOVERY_DELAY = 600  # seconds for a clone to boot

CLOUDLETS = 6
CLOUDLET_PES = 2
CLOUDLET_LENGTH = 2_800_000_000

# The average number of failures expected each hour (Poisson rate)
MEAN_FAILURE_NUMBER_PER_HOUR = 0.01
FAILURE_SEED = 112717613
MAX_TIME_TO_FAIL_HOURS = 800
HOST_FAULT_CONTROL_INTERVAL = SECONDS_PER_HOUR

# --- resubmission scenario ---
RESUB_HOST_PES = 16
RESUB_VMS = 4
RESUB_VM_PES = 4
RESUB_CLOUDLETS = 120
RESUB_CLOUDLET_PES = 2
RESUB_LENGTH_MEAN = 10000
RESUB_LENGTH_STDDEV = 500
DYNAMIC_ARRIVAL_DELAY = 5
DYNAMIC_CLOUDLET_PES = (4, 8)  # the 8-PE cloudlet fits no VM


@dataclass(frozen=True)
class ScenarioConfig:
    """Knobs of a single run; module constants are the defaults."""
    name: str = "host-faults"
    sla_path: str = SLA_CONTRACT_FILE
    seed: int = FAILURE_SEED
    mean_failures_per_hour: float = MEAN_FAILURE_NUMBER_PER_HOUR
    max_time_to_fail_hours: float = MAX_TIME_TO_FAIL_HOURS
    control_interval: Optional[float] = None
    max_resubmissions: int = MAX_RESUBMISSIONS
    max_simulation_hours: float = 5000


@dataclass
class RunResult:
    config: ScenarioConfig
    datacenter: Datacenter
    aggregator: MetricsAggregator
    controller: ReactiveController
    resolver: Optional[FaultImpactResolver] = None
    injector: Optional[FailureInjector] = None
    finished_at: float = 0.0
    assessment: SlaAssessment = field(default_factory=SlaAssessment)


def _host_fault_datacenter():
    datacenter = Datacenter(scheduling_interval=HOST_FAULT_CONTROL_INTERVAL,
                            vm_boot_delay=VM_RECOVERY_DELAY)
    for _ in range(HOSTS):
        datacenter.add_host(HOST_PES, HOST_MIPS_BY_PE, HOST_RAM, HOST_BW, HOST_STORAGE)
    for _ in range(VMS):
        datacenter.create_vm(VmSpec(mips=VM_MIPS, pes=VM_PES, ram=VM_RAM, bw=VM_BW,
                                    storage=VM_SIZE, owner=BROKER))
    cloudlets = [datacenter.get_cloudlet(datacenter.create_cloudlet(
        CloudletSpec(length=CLOUDLET_LENGTH, pes=CLOUDLET_PES,
                     utilization_cpu=1.0, utilization_ram=0.1, utilization_bw=0.1)))
        for _ in range(CLOUDLETS)]
    datacenter.submit_cloudlet_batch(cloudlets)
    return datacenter


def _resubmission_datacenter(seed):
    datacenter = Datacenter(scheduling_interval=1)
    datacenter.add_host(RESUB_HOST_PES, 1000, 2048, 10000, 1000000)
    for _ in range(RESUB_VMS):
        datacenter.create_vm(VmSpec(mips=1000, pes=RESUB_VM_PES, ram=512, bw=1000,
                                    storage=10000, owner=BROKER))
    rng = random.Random(seed)

    def _length():
        return max(1, int(rng.gauss(RESUB_LENGTH_MEAN, RESUB_LENGTH_STDDEV)))

    cloudlets = [datacenter.get_cloudlet(datacenter.create_cloudlet(
        CloudletSpec(length=_length(), pes=RESUB_CLOUDLET_PES, utilization_cpu=0.5,
                     utilization_ram=0.5, utilization_bw=0.5)))
        for _ in range(RESUB_CLOUDLETS)]
    datacenter.submit_cloudlet_batch(cloudlets)

    def _create_dynamic_cloudlets():
        logger.info(f"{datacenter.now:.2f}: Dynamically creating {len(DYNAMIC_CLOUDLET_PES)} cloudlets")
        batch = [datacenter.get_cloudlet(datacenter.create_cloudlet(CloudletSpec(length=_length(), pes=pes)))
                 for pes in DYNAMIC_CLOUDLET_PES]
        datacenter.submit_cloudlet_batch(batch)

    datacenter.schedule(DYNAMIC_ARRIVAL_DELAY, _create_dynamic_cloudlets)
    datacenter.schedule(DYNAMIC_ARRIVAL_DELAY * 2, _create_dynamic_cloudlets)
    return datacenter


def build_host_fault_scenario(config, contract):
    datacenter = _host_fault_datacenter()
    aggregator = MetricsAggregator(start_time=datacenter.now)
    injector = FailureInjector(config.mean_failures_per_hour, config.seed, config.max_time_to_fail_hours)
    resolver = FaultImpactResolver(datacenter, aggregator, repair_time=injector.sample_repair_time)
    resolver.add_vm_cloner(BROKER, VmCloner())
    injector.add_listener(resolver.on_failure_event)
    injector.start(datacenter)
    controller = ReactiveController(datacenter, aggregator, contract,
                                    control_interval=config.control_interval or HOST_FAULT_CONTROL_INTERVAL,
                                    max_resubmissions=config.max_resubmissions).attach()
    return RunResult(config, datacenter, aggregator, controller, resolver, injector)


def build_resubmission_scenario(config, contract):
    datacenter = _resubmission_datacenter(config.seed)
    aggregator = MetricsAggregator(start_time=datacenter.now)
    controller = ReactiveController(datacenter, aggregator, contract,
                                    control_interval=config.control_interval or CONTROL_INTERVAL,
                                    max_resubmissions=config.max_resubmissions).attach()
    return RunResult(config, datacenter, aggregator, controller)


SCENARIOS = {
    "host-faults": build_host_fault_scenario,
    "resubmission": build_resubmission_scenario,
}


def run_scenario(config=None, contract=None):
    """Build and run one scenario end to end; the SLA contract is loaded first so a bad one aborts early."""
    config = config or ScenarioConfig()
    if config.name not in SCENARIOS:
        raise ValueError(f"Unknown scenario '{config.name}', choose from {', '.join(SCENARIOS)}")
    if contract is None:
        contract = load_contract(config.sla_path)

    result = SCENARIOS[config.name](config, contract)
    logger.info(f"Running scenario {config.name} (seed {config.seed})")
    result.finished_at = result.datacenter.run(until=config.max_simulation_hours * SECONDS_PER_HOUR)
    result.assessment = assess_run(contract, result.datacenter.finished_cloudlets(), result.aggregator,
                                   result.finished_at, result.datacenter.cpu_utilization())
    return result


def with_overrides(config, **overrides):
    """Copy of config with the non-None overrides applied."""
    return replace(config, **{k: v for k, v in overrides.items() if v is not None})
