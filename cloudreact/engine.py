"""Minimal simpy datacenter: hosts, VMs and cloudlets plus a clock-tick subscription.

The reactive core only talks to this module through the Datacenter operations
(create/destroy VMs, create/submit cloudlets, fail/repair hosts, schedule) and
the clock tick listeners.
"""
from __future__ import annotations

import logging
from itertools import count

import simpy

from .models import CloudletSpec, CloudletStatus, FAILED_STATUSES, VmSpec

logger = logging.getLogger(__name__)

VM_BOOT_DELAY = 0.0  # seconds between placement and a VM accepting work
TERMINAL_STATUSES = frozenset({CloudletStatus.SUCCESS, CloudletStatus.CANCELED})


class Host:
    """A physical node supplying PEs, RAM, bandwidth and storage to VMs."""

    def __init__(self, host_id, pes, mips, ram, bw, storage):
        self.id = host_id
        self.pes = pes
        self.mips = mips
        self.ram = ram
        self.bw = bw
        self.storage = storage
        self.vms = []
        self.active = True

    def __repr__(self):
        return f"Host {self.id}"

    def get_allocated_pes(self):
        return sum(vm.pes for vm in self.vms)

    def get_current_ram_usage(self):
        return sum(vm.ram for vm in self.vms)

    def get_current_bw_usage(self):
        return sum(vm.bw for vm in self.vms)

    def get_current_storage_usage(self):
        return sum(vm.storage for vm in self.vms)

    def can_accommodate(self, spec):
        """Check if the host is up and has room for a VM with the given profile."""
        if not self.active:
            return False
        if spec.mips > self.mips:
            return False
        if self.get_allocated_pes() + spec.pes > self.pes:
            return False
        if self.get_current_ram_usage() + spec.ram > self.ram:
            return False
        if self.get_current_bw_usage() + spec.bw > self.bw:
            return False
        return self.get_current_storage_usage() + spec.storage <= self.storage


class Vm:
    """A VM placed on a host. Its PEs are a simpy Container shared space-style by cloudlets."""

    def __init__(self, env, vm_id, spec, host):
        self.env = env
        self.id = vm_id
        self.mips = spec.mips
        self.pes = spec.pes
        self.ram = spec.ram
        self.bw = spec.bw
        self.storage = spec.storage
        self.owner = spec.owner
        self.description = spec.description
        self.host = host
        self.pes_pool = simpy.Container(env, capacity=spec.pes, init=spec.pes)
        self.started = env.event()
        self.start_time = None
        self.destroyed = False
        self.cloudlets = []

    def __repr__(self):
        return f"Vm {self.id}"

    def spec(self):
        return VmSpec(mips=self.mips, pes=self.pes, ram=self.ram, bw=self.bw,
                      storage=self.storage, vm_id=self.id, owner=self.owner,
                      description=self.description)

    def boot(self, delay, on_start=None):
        if delay > 0:
            yield self.env.timeout(delay)
        if self.destroyed:
            return
        self.start_time = self.env.now
        self.started.succeed()
        logger.debug(f"{self.env.now:.2f}: {self} started on {self.host}")
        if on_start is not None:
            on_start(self)

    def unfinished_cloudlets(self):
        return [c for c in self.cloudlets if c.vm is self and not c.is_finished()]


class Cloudlet:
    """A unit of work; length is in million instructions per PE."""

    def __init__(self, env, cloudlet_id, spec):
        self.env = env
        self.id = cloudlet_id
        self.length = spec.length
        self.pes = spec.pes
        self.utilization_cpu = spec.utilization_cpu
        self.utilization_ram = spec.utilization_ram
        self.utilization_bw = spec.utilization_bw
        self.status = CloudletStatus.CREATED
        self.vm = None
        self.arrival_time = None
        self.exec_start_time = None
        self.finish_time = None
        self.finished_so_far = 0.0
        self.actual_cpu_time = 0.0
        self.resubmissions = 0
        self.permanently_failed = False
        self._process = None
        self._segment_start = None

    def __repr__(self):
        return f"Cloudlet {self.id}"

    def spec(self):
        return CloudletSpec(length=self.length, pes=self.pes,
                            utilization_cpu=self.utilization_cpu,
                            utilization_ram=self.utilization_ram,
                            utilization_bw=self.utilization_bw,
                            cloudlet_id=self.id)

    def is_finished(self):
        return self.status in TERMINAL_STATUSES or self.permanently_failed

    def is_failed(self):
        return self.status in FAILED_STATUSES

    def total_time(self):
        """Finish time minus execution start, or None if the cloudlet never completed."""
        if self.status is not CloudletStatus.SUCCESS or self.exec_start_time is None:
            return None
        return self.finish_time - self.exec_start_time

    def reset(self):
        """Drop all execution state so the cloudlet restarts from zero on its next submission."""
        self.status = CloudletStatus.CREATED
        self.vm = None
        self.exec_start_time = None
        self.finish_time = None
        self.finished_so_far = 0.0
        self._process = None
        self._segment_start = None

    def run(self, vm):
        if self.status is not CloudletStatus.CREATED:
            return  # aborted before the process got its first step
        self.status = CloudletStatus.QUEUED
        request = None
        try:
            if not vm.started.triggered:
                yield vm.started
            request = vm.pes_pool.get(self.pes)
            yield request
            self.status = CloudletStatus.INEXEC
            self.exec_start_time = self.env.now
            self._segment_start = self.env.now
            yield self.env.timeout((self.length - self.finished_so_far) / vm.mips)
            self._close_segment(vm)
            self.status = CloudletStatus.SUCCESS
            self.finish_time = self.env.now
            vm.pes_pool.put(self.pes)
        except simpy.Interrupt:
            # status was already set by interrupt()
            if self._segment_start is not None:
                self._close_segment(vm)
                if not vm.destroyed:
                    vm.pes_pool.put(self.pes)
            elif request is not None:
                if request.triggered:
                    vm.pes_pool.put(self.pes)  # granted but never started
                else:
                    request.cancel()

    def _close_segment(self, vm):
        elapsed = self.env.now - self._segment_start
        self.actual_cpu_time += elapsed
        self.finished_so_far = min(self.length, self.finished_so_far + elapsed * vm.mips)
        self._segment_start = None

    def interrupt(self, status=CloudletStatus.FAILED):
        """Abort the cloudlet; the status is visible immediately, the process unwinds on its next step."""
        started = self.status is not CloudletStatus.CREATED
        self.status = status
        if started and self._process is not None and self._process.is_alive:
            try:
                self._process.interrupt(status)
            except RuntimeError:
                pass  # process already finished or interrupted


class Datacenter:
    """Owns hosts, VMs and cloudlets, and drives the simpy clock tick by tick."""

    def __init__(self, env=None, scheduling_interval=0, vm_boot_delay=VM_BOOT_DELAY):
        self.env = env or simpy.Environment()
        self.scheduling_interval = scheduling_interval
        self.vm_boot_delay = vm_boot_delay
        self.hosts = {}
        self.vms = {}
        self.cloudlets = {}
        self.submitted = []
        self._tick_listeners = []
        self._host_ids = count(0)
        self._vm_ids = count(1)
        self._cloudlet_ids = count(1)
        self._next_vm = 0
        self.last_tick = None

    @property
    def now(self):
        return self.env.now

    def add_clock_tick_listener(self, listener):
        self._tick_listeners.append(listener)

    @staticmethod
    def _next_free(ids, taken):
        candidate = next(ids)
        while candidate in taken:
            candidate = next(ids)
        return candidate

    # --- hosts ---

    def add_host(self, pes, mips, ram, bw, storage):
        host = Host(next(self._host_ids), pes, mips, ram, bw, storage)
        self.hosts[host.id] = host
        return host

    def active_hosts(self):
        return [h for h in self.hosts.values() if h.active]

    def vms_on_host(self, host_id):
        host = self.hosts.get(host_id)
        return list(host.vms) if host else []

    def fail_host(self, host_id):
        host = self.hosts.get(host_id)
        if host is None or not host.active:
            return False
        host.active = False
        logger.warning(f"{self.now:.2f}: {host} failed with {len(host.vms)} VM(s)")
        return True

    def repair_host(self, host_id):
        host = self.hosts.get(host_id)
        if host is None or host.active:
            return False
        host.active = True
        logger.info(f"{self.now:.2f}: {host} repaired")
        return True

    # --- VMs ---

    def find_host_for(self, spec):
        """Least-loaded active host that fits the VM, lowest id first on ties."""
        best_host = None
        for host in self.hosts.values():
            if not host.can_accommodate(spec):
                continue
            if best_host is None or host.get_allocated_pes() < best_host.get_allocated_pes():
                best_host = host
        return best_host

    def create_vm(self, spec, on_start=None):
        vm_id = spec.vm_id if spec.vm_id is not None else self._next_free(self._vm_ids, self.vms)
        if vm_id in self.vms:
            logger.error(f"{self.now:.2f}: VM id {vm_id} already exists")
            return None
        host = self.find_host_for(spec)
        if host is None:
            logger.warning(f"{self.now:.2f}: No host can accommodate VM {vm_id}")
            return None
        vm = Vm(self.env, vm_id, spec, host)
        host.vms.append(vm)
        self.vms[vm_id] = vm
        self.env.process(vm.boot(self.vm_boot_delay, on_start))
        logger.debug(f"{self.now:.2f}: {vm} placed on {host}")
        return vm_id

    def destroy_vm(self, vm_id):
        vm = self.vms.get(vm_id)
        if vm is None or vm.destroyed:
            return False
        vm.destroyed = True
        if vm in vm.host.vms:
            vm.host.vms.remove(vm)
        for cloudlet in vm.unfinished_cloudlets():
            cloudlet.interrupt(CloudletStatus.FAILED)
        logger.warning(f"{self.now:.2f}: {vm} destroyed on {vm.host}")
        return True

    def alive_vms(self):
        return [vm for vm in self.vms.values() if not vm.destroyed]

    # --- cloudlets ---

    def create_cloudlet(self, spec):
        cloudlet_id = spec.cloudlet_id
        if cloudlet_id is None:
            cloudlet_id = self._next_free(self._cloudlet_ids, self.cloudlets)
        if cloudlet_id in self.cloudlets:
            logger.error(f"{self.now:.2f}: Cloudlet id {cloudlet_id} already exists")
            return None
        self.cloudlets[cloudlet_id] = Cloudlet(self.env, cloudlet_id, spec)
        return cloudlet_id

    def get_cloudlet(self, cloudlet_id):
        return self.cloudlets[cloudlet_id]

    def _pick_vm(self):
        vms = self.alive_vms()
        if not vms:
            return None
        vm = vms[self._next_vm % len(vms)]
        self._next_vm += 1
        return vm

    def submit_cloudlet_batch(self, cloudlets, vm_id=None):
        """Bind each cloudlet to a VM (round robin unless vm_id is given) and start it.

        Returns False if any cloudlet could not be bound; those end FAILED_RESOURCE_UNAVAILABLE.
        """
        all_bound = True
        for cloudlet in cloudlets:
            if cloudlet not in self.submitted:
                self.submitted.append(cloudlet)
            cloudlet.arrival_time = self.now
            vm = self.vms.get(vm_id) if vm_id is not None else self._pick_vm()
            if vm is None or vm.destroyed or cloudlet.pes > vm.pes:
                cloudlet.status = CloudletStatus.FAILED_RESOURCE_UNAVAILABLE
                all_bound = False
                logger.debug(f"{self.now:.2f}: {cloudlet} has no VM able to run it")
                continue
            cloudlet.vm = vm
            vm.cloudlets.append(cloudlet)
            cloudlet._process = self.env.process(cloudlet.run(vm))
        return all_bound

    def fail_cloudlet(self, cloudlet_id, status=CloudletStatus.FAILED):
        """Workload fault: abort a cloudlet with the given failure status."""
        cloudlet = self.cloudlets[cloudlet_id]
        if cloudlet.is_finished():
            return False
        cloudlet.interrupt(status)
        return True

    def unfinished_cloudlets(self):
        return [c for c in self.submitted if not c.is_finished()]

    def finished_cloudlets(self):
        return [c for c in self.submitted if c.status is CloudletStatus.SUCCESS]

    def cpu_utilization(self):
        """Busy PE-seconds over total host PE-seconds elapsed."""
        capacity = sum(h.pes for h in self.hosts.values()) * self.now
        if capacity <= 0:
            return 0.0
        busy = 0.0
        for cloudlet in self.cloudlets.values():
            running = 0.0
            if cloudlet._segment_start is not None:
                running = self.now - cloudlet._segment_start
            busy += (cloudlet.actual_cpu_time + running) * cloudlet.pes
        return min(1.0, busy / capacity)

    # --- clock ---

    def schedule(self, delay, callback, *args):
        def _fire():
            yield self.env.timeout(delay)
            callback(*args)
        return self.env.process(_fire())

    def _heartbeat(self):
        while True:
            yield self.env.timeout(self.scheduling_interval)

    def is_idle(self):
        return bool(self.submitted) and not self.unfinished_cloudlets()

    def run(self, until=float("inf")):
        """Process events time-slice by time-slice, notifying listeners after each slice."""
        if self.scheduling_interval > 0:
            self.env.process(self._heartbeat())
        while True:
            t = self.env.peek()
            if t == float("inf") or t > until:
                break
            while self.env.peek() == t:
                self.env.step()
            if self.last_tick is None or t > self.last_tick:
                self.last_tick = t
                for listener in self._tick_listeners:
                    listener(t)
            if self.is_idle():
                break
        return self.now
