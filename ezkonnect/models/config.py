"""Configuration data structures populated by :func:`ezkonnect.config.load_config`."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class ConfirmationMode(StrEnum):
    """How an annotate request decides that the reconciler reacted.

    COUNTED:      wait for every expected spec/status change of the custom resource.
    FIRST_SIGNAL: any single spec, status or workload annotation change confirms.
    """

    COUNTED = "counted"
    FIRST_SIGNAL = "first_signal"


@dataclass
class APIConfig:
    port: int = 5050


@dataclass
class LogConfig:
    level: str = "info"


@dataclass
class AnnotateConfig:
    """Settings for the annotate confirmation wait."""

    timeout_seconds: int = 15
    confirmation_mode: ConfirmationMode = ConfirmationMode.COUNTED


@dataclass
class KubeConfig:
    """Kubernetes credential source.

    An empty ``kubeconfig`` tries the in-cluster service account first and
    falls back to the default kubeconfig location.
    """

    kubeconfig: str = ""


@dataclass
class EzKonnectConfig:
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
    annotate: AnnotateConfig = field(default_factory=AnnotateConfig)
    kube: KubeConfig = field(default_factory=KubeConfig)
    metrics_enabled: bool = True
