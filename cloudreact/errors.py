"""Error taxonomy for the reactive core."""


class CloudReactError(Exception):
    """Base class for every error raised by cloudreact."""


class ConfigError(CloudReactError):
    """SLA contract document missing or malformed. Fatal before the run starts."""


class PlacementError(CloudReactError):
    """No host could accommodate a clone VM."""

    def __init__(self, vm_id, message=None):
        self.vm_id = vm_id
        super().__init__(message or f"No placement capacity for VM {vm_id}")


class MetricUnavailable(CloudReactError):
    """Evaluation requested for a metric the contract does not configure."""

    def __init__(self, metric_name):
        self.metric_name = metric_name
        super().__init__(f"Metric '{metric_name}' is not configured in the SLA contract")


class RetryExhaustion(CloudReactError):
    """A cloudlet hit the resubmission cap and was given up on."""

    def __init__(self, cloudlet_id, attempts):
        self.cloudlet_id = cloudlet_id
        self.attempts = attempts
        super().__init__(f"Cloudlet {cloudlet_id} failed after {attempts} resubmissions")
