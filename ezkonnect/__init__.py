"""ezkonnect - instrumentation control server for Kubernetes workloads."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ezkonnect")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
