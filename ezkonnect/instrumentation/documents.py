"""Typed projections over InstrumentedApplication custom resource documents.

Custom resources arrive as plain nested dicts.  Nothing here assumes a
field is present: a missing branch means "not recorded yet".  A branch that
is present but has the wrong type is a defect in the resource and raises
:class:`~ezkonnect.errors.MalformedResourceDocumentError` rather than being
coerced.

Expected shape::

    spec:
      logType: str
      languages:    [{containerName, language, activeServiceName}]
      applications: [{containerName, application, activeServiceName}]
    status:
      tracesInstrumented: bool
      metricsInstrumented: bool
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ezkonnect.errors import MalformedResourceDocumentError
from ezkonnect.models.instrumentation import InstrumentationRecord, ObservedState

# Entry lists scanned for a container, in precedence order, with the key that
# names the detected language/application inside each entry.
_ENTRY_BRANCHES: tuple[tuple[str, str], ...] = (
    ("languages", "language"),
    ("applications", "application"),
)

_MISSING: Any = object()

# ---------------------------------------------------------------------------
# Typed accessors
# ---------------------------------------------------------------------------


def _get(doc: Mapping[str, Any], key: str) -> Any:
    return doc.get(key, _MISSING)


def _get_mapping(doc: Mapping[str, Any], key: str, path: str) -> Mapping[str, Any]:
    value = _get(doc, key)
    if value is _MISSING or value is None:
        return {}
    if not isinstance(value, Mapping):
        raise MalformedResourceDocumentError(path, "mapping", value)
    return value


def _get_list(doc: Mapping[str, Any], key: str, path: str) -> list[Any] | None:
    value = _get(doc, key)
    if value is _MISSING or value is None:
        return None
    if not isinstance(value, list):
        raise MalformedResourceDocumentError(path, "list", value)
    return value


def _get_str(doc: Mapping[str, Any], key: str, path: str) -> str | None:
    value = _get(doc, key)
    if value is _MISSING or value is None:
        return None
    if not isinstance(value, str):
        raise MalformedResourceDocumentError(path, "string", value)
    return value


def _get_bool(doc: Mapping[str, Any], key: str, path: str) -> bool:
    value = _get(doc, key)
    if value is _MISSING or value is None:
        return False
    if not isinstance(value, bool):
        raise MalformedResourceDocumentError(path, "bool", value)
    return value


def _entries(spec: Mapping[str, Any], branch: str) -> list[Mapping[str, Any]] | None:
    items = _get_list(spec, branch, f"spec.{branch}")
    if items is None:
        return None
    entries: list[Mapping[str, Any]] = []
    for i, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise MalformedResourceDocumentError(f"spec.{branch}[{i}]", "mapping", item)
        entries.append(item)
    return entries


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------


def extract_observed_state(document: Mapping[str, Any], container_name: str) -> ObservedState:
    """Return the instrumentation state the resource records for *container_name*.

    The first matching entry (languages before applications) is authoritative.
    No matching entry yields an ObservedState without a service name.
    """
    spec = _get_mapping(document, "spec", "spec")
    log_type = _get_str(spec, "logType", "spec.logType") or ""

    for branch, _ in _ENTRY_BRANCHES:
        entries = _entries(spec, branch)
        if not entries:
            continue
        for i, entry in enumerate(entries):
            if _get_str(entry, "containerName", f"spec.{branch}[{i}].containerName") != container_name:
                continue
            service_name = _get_str(entry, "activeServiceName", f"spec.{branch}[{i}].activeServiceName")
            return ObservedState(log_type=log_type, service_name=service_name or None)

    return ObservedState(log_type=log_type)


def controller_kind_of(document: Mapping[str, Any]) -> str:
    """Lower-cased kind of the first owner reference (the annotated workload)."""
    metadata = _get_mapping(document, "metadata", "metadata")
    owners = _get_list(metadata, "ownerReferences", "metadata.ownerReferences")
    if not owners:
        raise MalformedResourceDocumentError("metadata.ownerReferences", "non-empty list", owners)
    owner = owners[0]
    if not isinstance(owner, Mapping):
        raise MalformedResourceDocumentError("metadata.ownerReferences[0]", "mapping", owner)
    kind = _get_str(owner, "kind", "metadata.ownerReferences[0].kind")
    if not kind:
        raise MalformedResourceDocumentError("metadata.ownerReferences[0].kind", "non-empty string", kind)
    return kind.lower()


def project_records(document: Mapping[str, Any]) -> list[InstrumentationRecord]:
    """Flatten one resource into a record per language/application entry.

    A resource with neither list yields a single record without a container.
    """
    metadata = _get_mapping(document, "metadata", "metadata")
    spec = _get_mapping(document, "spec", "spec")
    status = _get_mapping(document, "status", "status")

    base: dict[str, Any] = {
        "name": _get_str(metadata, "name", "metadata.name") or "",
        "namespace": _get_str(metadata, "namespace", "metadata.namespace") or "",
        "controller_kind": controller_kind_of(document),
        "traces_instrumented": _get_bool(status, "tracesInstrumented", "status.tracesInstrumented"),
        "metrics_instrumented": _get_bool(status, "metricsInstrumented", "status.metricsInstrumented"),
        "log_type": _get_str(spec, "logType", "spec.logType"),
    }

    records: list[InstrumentationRecord] = []
    found_branch = False
    for branch, detected_key in _ENTRY_BRANCHES:
        entries = _entries(spec, branch)
        if entries is None:
            continue
        found_branch = True
        for i, entry in enumerate(entries):
            prefix = f"spec.{branch}[{i}]"
            records.append(
                InstrumentationRecord(
                    **base,
                    container_name=_get_str(entry, "containerName", f"{prefix}.containerName"),
                    service_name=_get_str(entry, "activeServiceName", f"{prefix}.activeServiceName"),
                    **{detected_key: _get_str(entry, detected_key, f"{prefix}.{detected_key}")},
                )
            )

    if not found_branch:
        records.append(InstrumentationRecord(**base))
    return records


def subdocument_changed(old: Mapping[str, Any], new: Mapping[str, Any], key: str) -> bool:
    """Structural comparison of one top-level region (``spec``/``status``).

    A region missing on one side compares equal to an empty mapping.
    """
    return (old.get(key) or {}) != (new.get(key) or {})
