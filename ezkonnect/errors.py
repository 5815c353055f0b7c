"""Error taxonomy for annotate and state requests.

Every error carries the HTTP status it maps to and a fixed message tag that
prefixes the plain-text response body, e.g. ``timeout: my-app``.
"""

from __future__ import annotations


class EzKonnectError(Exception):
    """Base class for errors surfaced to the HTTP caller."""

    status_code: int = 500
    tag: str = "internal error"

    def __init__(self, detail: str = "") -> None:
        super().__init__(f"{self.tag}: {detail}" if detail else self.tag)
        self.detail = detail


class InvalidInputError(EzKonnectError):
    """Unsupported controller kind or malformed request body.

    Raised before anything is read from or written to the cluster.
    """

    status_code = 400
    tag = "invalid input"


class UpstreamReadError(EzKonnectError):
    """A Kubernetes API get/list call failed."""

    tag = "error getting resource"


class UpstreamWriteError(EzKonnectError):
    """A Kubernetes API update call failed, including write conflicts."""

    tag = "error updating resource"


class ConfirmationTimeoutError(EzKonnectError):
    """The deadline elapsed before the reconciler confirmed the change.

    The workload keeps the annotations that were written.
    """

    tag = "timeout"


class MalformedResourceDocumentError(EzKonnectError):
    """A custom resource document does not have the expected shape."""

    tag = "malformed resource document"

    def __init__(self, path: str, expected: str, actual: object) -> None:
        super().__init__(f"{path}: expected {expected}, got {type(actual).__name__}")
        self.path = path
