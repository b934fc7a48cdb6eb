"""Multi-path fallback subscription.

A logical stream may live at one of several candidate paths. The resolver
walks the candidates in order with an index cursor, holding exactly one
subscription at a time, until one delivers a usable payload that the
handler accepts. That candidate is then adopted for good.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from enum import StrEnum
from typing import Any

from flowmon.exceptions import FlowmonExhaustedError, FlowmonSourceError
from flowmon.subscriptions import Scope, SubscriptionToken

_logger = logging.getLogger(__name__)


class ResolverState(StrEnum):
    IDLE = "idle"
    TRYING = "trying"
    ADOPTED = "adopted"
    EXHAUSTED = "exhausted"


def is_present(payload: Any) -> bool:
    """Default usability check: anything but null, ``False``, ``0`` or ``""``.

    Containers count as present even when empty; an empty but well-formed
    object is a valid "nothing right now" answer.
    """
    if payload is None or payload is False:
        return False
    if isinstance(payload, (dict, list)):
        return True
    if isinstance(payload, (int, float)) and payload == 0:
        return False
    return payload != ""


class PathResolver:
    """Resolve the authoritative path of one stream and feed its payloads.

    Parameters
    ----------
    scope
        Scope the subscriptions are opened in; closing it stops the
        resolver as well.
    candidates
        Ordered candidate paths (at least one).
    on_data
        ``on_data(path, payload)`` for every payload of the adopted path and
        for the usable payload that leads to adoption. An exception raised
        while trying a candidate moves on to the next one.
    on_exhausted
        Called once if no candidate ever yields usable data.
    on_error
        Called for a subscription error on the adopted path, and for
        handler failures after adoption.
    is_usable
        Decides whether a payload seen while trying counts as data.

    State transitions::

        IDLE -start-> TRYING(0)
        TRYING(i) -unusable/handler error/source error, i+1 < n-> TRYING(i+1)
        TRYING(i) -usable and handled-> ADOPTED
        TRYING(n-1) -unusable/handler error/source error-> EXHAUSTED
    """

    def __init__(
        self,
        scope: Scope,
        candidates: Sequence[str],
        *,
        on_data: Callable[[str, Any], None],
        on_exhausted: Callable[[FlowmonExhaustedError], None] | None = None,
        on_error: Callable[[FlowmonSourceError | Exception], None] | None = None,
        is_usable: Callable[[Any], bool] = is_present,
        name: str = "",
    ) -> None:
        if not candidates:
            raise ValueError("PathResolver needs at least one candidate path")
        self._scope = scope
        self._candidates = tuple(candidates)
        self._on_data = on_data
        self._on_exhausted = on_exhausted
        self._on_error = on_error
        self._is_usable = is_usable
        self.name = name or self._candidates[0]

        self._state = ResolverState.IDLE
        self._index = 0
        self._token: SubscriptionToken | None = None
        self._opening = False
        self._reopen = False
        self._last_error: FlowmonSourceError | None = None

    @property
    def state(self) -> ResolverState:
        return self._state

    @property
    def index(self) -> int:
        return self._index

    @property
    def candidates(self) -> tuple[str, ...]:
        return self._candidates

    @property
    def current_path(self) -> str | None:
        if self._state in (ResolverState.TRYING, ResolverState.ADOPTED):
            return self._candidates[self._index]
        return None

    @property
    def adopted_path(self) -> str | None:
        if self._state == ResolverState.ADOPTED:
            return self._candidates[self._index]
        return None

    def start(self) -> None:
        if self._state != ResolverState.IDLE:
            return
        self._state = ResolverState.TRYING
        self._index = 0
        self._open()

    def stop(self) -> None:
        """Release the current subscription; the resolver goes back to IDLE."""
        self._release()
        self._state = ResolverState.IDLE
        self._reopen = False

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------

    def _release(self) -> None:
        token, self._token = self._token, None
        if token is not None:
            token.revoke()

    def _open(self) -> None:
        # Sources may notify synchronously from inside subscribe(); an
        # advance requested meanwhile is picked up by this loop instead of
        # recursing.
        if self._opening:
            self._reopen = True
            return
        self._opening = True
        try:
            while True:
                self._reopen = False
                if self._state != ResolverState.TRYING or self._scope.closed:
                    return
                index = self._index
                path = self._candidates[index]
                _logger.debug("Resolver %s trying path=%s (%d/%d)", self.name, path, index + 1, len(self._candidates))
                token = self._scope.subscribe(
                    path,
                    self._make_value_handler(index),
                    self._make_error_handler(index),
                )
                if index == self._index and self._state in (ResolverState.TRYING, ResolverState.ADOPTED):
                    self._token = token
                else:
                    # Moved past this candidate before subscribe() returned.
                    token.revoke()
                if not self._reopen:
                    return
        finally:
            self._opening = False

    def _advance(self, reason: str) -> None:
        self._release()
        if self._index + 1 < len(self._candidates):
            _logger.warning(
                "Stream %s: path %s %s, trying fallback %s",
                self.name,
                self._candidates[self._index],
                reason,
                self._candidates[self._index + 1],
            )
            self._index += 1
            self._open()
            return
        self._exhaust(reason)

    def _exhaust(self, reason: str) -> None:
        self._state = ResolverState.EXHAUSTED
        message = f"No usable data for {self.name} at any of: {', '.join(self._candidates)} (last: {reason})"
        _logger.error(message)
        if self._on_exhausted is None:
            return
        error = FlowmonExhaustedError(
            message,
            stream=self.name,
            candidates=self._candidates,
            last_error=self._last_error,
        )
        try:
            self._on_exhausted(error)
        except Exception:
            _logger.warning("Exhaustion handler failed stream=%s", self.name, exc_info=True)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _make_value_handler(self, index: int) -> Callable[[Any], None]:
        def handle(payload: Any) -> None:
            if index != self._index:
                return
            if self._state == ResolverState.ADOPTED:
                self._deliver_adopted(payload)
            elif self._state == ResolverState.TRYING:
                self._try_payload(payload)

        return handle

    def _make_error_handler(self, index: int) -> Callable[[FlowmonSourceError], None]:
        def handle(error: FlowmonSourceError) -> None:
            if index != self._index:
                return
            self._token = None
            self._last_error = error
            if self._state == ResolverState.TRYING:
                self._advance(f"failed ({error})")
            elif self._state == ResolverState.ADOPTED:
                _logger.error("Stream %s lost adopted path %s: %s", self.name, self._candidates[index], error)
                self._report(error)

        return handle

    def _try_payload(self, payload: Any) -> None:
        path = self._candidates[self._index]
        if not self._is_usable(payload):
            self._advance("returned no data")
            return
        try:
            self._on_data(path, payload)
        except Exception as exc:
            _logger.warning("Stream %s: handler rejected payload from %s", self.name, path, exc_info=True)
            self._advance(f"could not be processed ({exc})")
            return
        self._state = ResolverState.ADOPTED
        _logger.debug("Stream %s adopted path=%s", self.name, path)

    def _deliver_adopted(self, payload: Any) -> None:
        path = self._candidates[self._index]
        try:
            self._on_data(path, payload)
        except Exception as exc:
            _logger.warning("Stream %s: handler failed on adopted path %s", self.name, path, exc_info=True)
            self._report(exc)

    def _report(self, error: Exception) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception:
            _logger.warning("Error handler failed stream=%s", self.name, exc_info=True)
