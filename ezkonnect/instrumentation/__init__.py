"""Instrumentation state projections and expected-change calculation."""

from ezkonnect.instrumentation.changes import classify_changes, compute_expected_changes
from ezkonnect.instrumentation.documents import extract_observed_state, project_records

__all__ = [
    "classify_changes",
    "compute_expected_changes",
    "extract_observed_state",
    "project_records",
]
