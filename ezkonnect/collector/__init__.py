"""Request-scoped Kubernetes watchers and the signal channels they feed."""

from ezkonnect.collector.resource_watcher import CustomResourceWatcher
from ezkonnect.collector.signals import SignalCategory, SignalChannels, WatchSignal
from ezkonnect.collector.watcher import ResourceWatcher
from ezkonnect.collector.workload_watcher import WorkloadWatcher

__all__ = [
    "CustomResourceWatcher",
    "ResourceWatcher",
    "SignalCategory",
    "SignalChannels",
    "WatchSignal",
    "WorkloadWatcher",
]
