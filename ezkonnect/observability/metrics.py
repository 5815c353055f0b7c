"""Prometheus metrics for ezkonnect."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# Annotate metrics
annotate_requests_total = Counter(
    "ezkonnect_annotate_requests_total",
    "Total annotate requests by terminal outcome",
    ["outcome", "controller_kind"],
)

annotate_expected_changes = Histogram(
    "ezkonnect_annotate_expected_changes",
    "Reconciliation events an annotate request waits for",
    buckets=(0, 1, 2, 3, 4),
)

confirmation_duration_seconds = Histogram(
    "ezkonnect_confirmation_duration_seconds",
    "Time from workload update to reconciler confirmation",
    ["outcome"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0, 60.0),
)

# State metrics
state_requests_total = Counter(
    "ezkonnect_state_requests_total",
    "Total state listing requests",
    ["outcome"],
)

# Watcher metrics
watch_signals_total = Counter(
    "ezkonnect_watch_signals_total",
    "Qualifying change signals published by request-scoped watchers",
    ["category"],
)

watcher_events_total = Counter(
    "ezkonnect_watcher_events_total",
    "Total raw watch events received",
    ["watcher", "event_type"],
)

watcher_reconnects_total = Counter(
    "ezkonnect_watcher_reconnects_total",
    "Total watch stream reconnections",
    ["watcher", "reason"],
)

watcher_errors_total = Counter(
    "ezkonnect_watcher_errors_total",
    "Total watch API errors",
    ["watcher", "status_code"],
)
