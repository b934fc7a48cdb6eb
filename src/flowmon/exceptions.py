"""Custom exception hierarchy for flowmon."""

from __future__ import annotations

from collections.abc import Sequence

PERMISSION_DENIED = "PERMISSION_DENIED"
DISCONNECTED = "DISCONNECTED"


class FlowmonError(Exception):
    """Base exception for all flowmon errors."""


class FlowmonConfigError(FlowmonError):
    """Invalid or missing configuration."""


class FlowmonValidationError(FlowmonError):
    """A record failed the mandatory-field admission check."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class FlowmonSourceError(FlowmonError):
    """Subscription-level failure reported by the data source.

    ``code`` carries the source's own classification; the only value the
    pipeline interprets is :data:`PERMISSION_DENIED`.
    """

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        code: str = DISCONNECTED,
    ) -> None:
        self.path = path
        self.code = code
        super().__init__(message)

    @property
    def permission_denied(self) -> bool:
        return self.code == PERMISSION_DENIED


class FlowmonPermissionDeniedError(FlowmonSourceError):
    """The source refused access to a path (security rules, revoked auth)."""

    def __init__(self, message: str, *, path: str = "") -> None:
        super().__init__(message, path=path, code=PERMISSION_DENIED)


class FlowmonExhaustedError(FlowmonError):
    """No candidate path of a stream ever yielded usable data.

    This is terminal for the stream: nothing retries automatically.
    """

    def __init__(
        self,
        message: str,
        *,
        stream: str = "",
        candidates: Sequence[str] = (),
        last_error: FlowmonSourceError | None = None,
    ) -> None:
        self.stream = stream
        self.candidates = tuple(candidates)
        self.last_error = last_error
        super().__init__(message)
