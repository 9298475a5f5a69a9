import pytest

from cloudreact.engine import Datacenter
from cloudreact.metrics import MetricsAggregator
from cloudreact.models import CloudletSpec, VmSpec
from cloudreact.sla import parse_contract


def vm_spec(pes=2, mips=1000, vm_id=None, owner="broker0"):
    return VmSpec(mips=mips, pes=pes, ram=512, bw=1000, storage=10000, vm_id=vm_id, owner=owner)


def add_cloudlets(datacenter, count, length=10000, pes=1, vm_id=None):
    cloudlets = [datacenter.get_cloudlet(datacenter.create_cloudlet(CloudletSpec(length=length, pes=pes)))
                 for _ in range(count)]
    datacenter.submit_cloudlet_batch(cloudlets, vm_id=vm_id)
    return cloudlets


@pytest.fixture
def datacenter():
    return Datacenter()


@pytest.fixture
def aggregator():
    return MetricsAggregator()


@pytest.fixture
def contract():
    return parse_contract({
        "taskCompletionTime": {"maxValue": 9000},
        "faultToleranceLevel": {"maxValue": 10},
        "availability": {"minValue": 99.0},
        "cpuUtilization": {"maxValue": 0.9},
    })
