"""Host fault handling: destroy the VMs on a failed host and clone them elsewhere."""
from __future__ import annotations

import logging

from .errors import PlacementError
from .models import CLONE_ID_MULTIPLIER, CloneMapping, CloudletSpec, CloudletStatus, FaultKind, VmSpec

logger = logging.getLogger(__name__)


def clone_vm_spec(vm):
    """Same capacity profile as the source VM, id = 10 x source id."""
    return VmSpec(mips=vm.mips, pes=vm.pes, ram=vm.ram, bw=vm.bw, storage=vm.storage,
                  vm_id=vm.id * CLONE_ID_MULTIPLIER, owner=vm.owner,
                  description=f"Clone of VM {vm.id}")


def clone_cloudlet_spec(cloudlet):
    """Same length and utilisation as the source; execution starts over from zero."""
    return CloudletSpec(length=cloudlet.length, pes=cloudlet.pes,
                        utilization_cpu=cloudlet.utilization_cpu,
                        utilization_ram=cloudlet.utilization_ram,
                        utilization_bw=cloudlet.utilization_bw,
                        cloudlet_id=cloudlet.id * CLONE_ID_MULTIPLIER)


class VmCloner:
    """Clone policy registered per VM owner."""

    def __init__(self, clone_vm=clone_vm_spec, clone_cloudlet=clone_cloudlet_spec):
        self.clone_vm = clone_vm
        self.clone_cloudlet = clone_cloudlet


class FaultImpactResolver:
    """Reacts to HostFault deliveries.

    Each VM on the failed host is destroyed once (a handled marker guards
    against overlapping signals), a VM FaultRecord is opened, and, when its
    owner registered a VmCloner, a clone with the same capacity is placed and
    the VM's unfinished cloudlets are restarted on it. The VM record completes
    when the clone starts. A clone destroyed while still booting hands its
    open records on to its own clone. The host record completes when the
    host is repaired.
    """

    def __init__(self, datacenter, aggregator, repair_time=None):
        self.datacenter = datacenter
        self.aggregator = aggregator
        self.repair_time = repair_time
        self.cloners = {}
        self.handled_vms = set()
        self.vm_clones = []
        self.cloudlet_clones = []
        self.pending_records = {}  # booting clone id -> VM records it closes on start

    def add_vm_cloner(self, owner, cloner):
        self.cloners[owner] = cloner

    def on_failure_event(self, event):
        self.on_host_fault(event.target_host_id)

    def on_host_fault(self, host_id):
        now = self.datacenter.now
        if self.datacenter.fail_host(host_id):
            record = self.aggregator.open_fault(FaultKind.HOST, host_id, now)
            if self.repair_time is not None:
                self.datacenter.schedule(self.repair_time(), self._repair_host, host_id, record)

        for vm in self.datacenter.vms_on_host(host_id):
            if vm.id in self.handled_vms:
                continue
            self.handled_vms.add(vm.id)
            self._handle_vm_fault(vm, host_id)

    def _repair_host(self, host_id, record):
        self.datacenter.repair_host(host_id)
        self.aggregator.close_fault(record, self.datacenter.now)

    def _recovered(self, clone):
        for record in self.pending_records.pop(clone.id, []):
            self.aggregator.close_fault(record, self.datacenter.now)

    def _handle_vm_fault(self, vm, host_id):
        now = self.datacenter.now
        cloudlets = vm.unfinished_cloudlets()
        self.datacenter.destroy_vm(vm.id)
        record = self.aggregator.open_fault(FaultKind.VM, vm.id, now)
        records = self.pending_records.pop(vm.id, []) + [record]

        cloner = self.cloners.get(vm.owner)
        if cloner is None:
            logger.warning(f"{now:.2f}: {vm} lost with Host {host_id}; no cloner for {vm.owner}, "
                           f"{len(cloudlets)} cloudlet(s) left FAILED")
            return

        spec = cloner.clone_vm(vm)
        clone_id = self.datacenter.create_vm(spec, on_start=self._recovered)
        if clone_id is None:
            self.aggregator.record_error(PlacementError(spec.vm_id))
            for lost in records:
                self.aggregator.abandon_fault(lost, now)
            for cloudlet in cloudlets:
                cloudlet.permanently_failed = True
                cloudlet.status = CloudletStatus.FAILED
            return

        self.pending_records[clone_id] = records
        self.vm_clones.append(CloneMapping(vm.id, clone_id, f"host {host_id} fault"))
        logger.info(f"{now:.2f}: Cloning {vm} as Vm {clone_id} - MIPS {spec.mips:.2f} PEs {spec.pes}")

        clones = []
        for cloudlet in cloudlets:
            clone_cloudlet_id = self.datacenter.create_cloudlet(cloner.clone_cloudlet(cloudlet))
            if clone_cloudlet_id is None:
                cloudlet.permanently_failed = True
                continue
            clone = self.datacenter.get_cloudlet(clone_cloudlet_id)
            cloudlet.status = CloudletStatus.CANCELED
            self.cloudlet_clones.append(CloneMapping(cloudlet.id, clone.id, f"vm {vm.id} destroyed"))
            clones.append(clone)
            logger.info(f"{now:.2f}: Created {clone} as clone of {cloudlet} on Vm {clone_id}")
        if clones:
            self.datacenter.submit_cloudlet_batch(clones, vm_id=clone_id)
