"""Command line entry point: run one scenario and print the fault/SLA summary."""
from __future__ import annotations

import argparse
import logging
import sys

from .errors import ConfigError
from .injector import SECONDS_PER_HOUR
from .models import FaultKind
from .scenarios import SCENARIOS, ScenarioConfig, run_scenario, with_overrides

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(prog="cloudreact", description=__doc__)
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="host-faults")
    parser.add_argument("--sla", dest="sla_path", help="SLA contract JSON (default: CustomerSLA.json)")
    parser.add_argument("--seed", type=int)
    parser.add_argument("--rate", dest="mean_failures_per_hour", type=float,
                        help="mean host failures per simulated hour")
    parser.add_argument("--horizon", dest="max_time_to_fail_hours", type=float,
                        help="no failure is injected after this many hours")
    parser.add_argument("--control-interval", type=float)
    parser.add_argument("--max-resubmissions", type=int)
    parser.add_argument("--log-level", type=str.upper, default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    return parser


def print_report(result):
    aggregator = result.aggregator
    now = result.finished_at
    print("\n--- Simulation Complete ---")
    if result.injector is not None:
        print(f"Mean Number of Failures per Hour: {result.injector.rate:.3f} "
              f"(1 failure expected at each {result.injector.inter_arrival_mean_hours:.2f} hours)")
    print(f"Number of Host faults: {aggregator.host_faults}")
    print(f"Number of VM faults (VMs destroyed): {aggregator.vm_faults}")
    print(f"Time the simulation finished: {now / SECONDS_PER_HOUR:.4f} hours")
    print(f"Mean Time To Repair (MTTR): {aggregator.mttr() / 60:.2f} minutes")
    print(f"Mean Time To Repair VM faults: {aggregator.mttr(FaultKind.VM) / 60:.2f} minutes")
    print(f"Mean Time Between VM Failures (MTBF): {aggregator.mtbf(now, FaultKind.VM) / 60:.2f} minutes")
    print(f"Hosts MTBF: {aggregator.mtbf(now, FaultKind.HOST) / 60:.2f} minutes")
    print(f"Availability: {aggregator.availability(now) * 100:.2f}%")
    if aggregator.pending_repairs():
        print(f"Unrepaired faults at end of run: {len(aggregator.pending_repairs())}")
    print(f"Placement errors: {aggregator.placement_errors}, retry exhaustions: {aggregator.retry_exhaustions}")

    assessment = result.assessment
    print("\n--- SLA ---")
    print(f"Task completion time violations: {assessment.task_completion_violations} "
          f"of {assessment.evaluated_cloudlets} finished cloudlets")
    for metric, verdict in assessment.verdicts.items():
        print(f"{metric}: {assessment.observed[metric]:.4f} -> {verdict.value}")
    print(f"Contract violated: {'yes' if assessment.violated else 'no'}")


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    config = with_overrides(ScenarioConfig(name=args.scenario),
                            sla_path=args.sla_path, seed=args.seed,
                            mean_failures_per_hour=args.mean_failures_per_hour,
                            max_time_to_fail_hours=args.max_time_to_fail_hours,
                            control_interval=args.control_interval,
                            max_resubmissions=args.max_resubmissions)
    try:
        result = run_scenario(config)
    except ConfigError as e:
        logger.error(f"Invalid SLA contract: {e}")
        return 2
    except ValueError as e:
        logger.error(f"Scenario setup failed: {e}")
        return 1

    print_report(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
