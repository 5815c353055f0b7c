"""Annotate workloads and confirm the reconciler reacted."""

from ezkonnect.annotate.coordinator import AnnotateRun, ConfirmationCoordinator

__all__ = ["AnnotateRun", "ConfirmationCoordinator"]
