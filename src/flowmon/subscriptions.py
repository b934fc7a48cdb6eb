"""Subscription ownership and teardown.

Every subscription is opened through a :class:`Scope` and represented by a
:class:`SubscriptionToken`. The callbacks handed to the data source are
closures over the token: once the token is revoked they drop every call,
so a notification already in flight when teardown happens is never
observed by the handler.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable
from typing import Any

from flowmon.exceptions import FlowmonSourceError
from flowmon.sources.base import DataSource, ErrorCallback, Unsubscribe, ValueCallback

_logger = logging.getLogger(__name__)


class SubscriptionToken:
    """Capability for one active subscription."""

    def __init__(self, scope: Scope, path: str) -> None:
        self._scope = scope
        self.path = path
        self._active = True
        self._unsubscribe: Unsubscribe | None = None

    @property
    def active(self) -> bool:
        return self._active

    def _attach(self, unsubscribe: Unsubscribe) -> None:
        if self._active:
            self._unsubscribe = unsubscribe
            return
        # Revoked while the source was still inside subscribe().
        unsubscribe()

    def _deactivate(self) -> None:
        self._active = False
        self._scope._forget(self)

    def revoke(self) -> None:
        """Unsubscribe. Idempotent."""
        if not self._active:
            return
        self._deactivate()
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is None:
            return
        try:
            unsubscribe()
        except Exception:
            _logger.warning("Unsubscribe failed path=%s", self.path, exc_info=True)


class Scope:
    """A group of subscriptions torn down together."""

    def __init__(self, source: DataSource, name: str = "") -> None:
        self._source = source
        self.name = name
        self._tokens: list[SubscriptionToken] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_count(self) -> int:
        return len(self._tokens)

    def subscribe(
        self,
        path: str,
        on_value: ValueCallback,
        on_error: ErrorCallback | None = None,
    ) -> SubscriptionToken:
        """Subscribe to *path*; callbacks run only while the token is active.

        Exceptions raised by the callbacks are logged and contained. An error
        notification ends the subscription, so the token is deactivated
        before ``on_error`` runs.
        """
        token = SubscriptionToken(self, path)
        if self._closed:
            token._deactivate()
            _logger.debug("Subscribe on closed scope=%s ignored path=%s", self.name, path)
            return token
        self._tokens.append(token)

        def handle_value(payload: Any) -> None:
            if not token.active:
                return
            try:
                on_value(payload)
            except Exception:
                _logger.warning("Value handler failed scope=%s path=%s", self.name, path, exc_info=True)

        def handle_error(error: FlowmonSourceError) -> None:
            if not token.active:
                return
            token._deactivate()
            if on_error is None:
                _logger.warning("Subscription error scope=%s path=%s: %s", self.name, path, error)
                return
            try:
                on_error(error)
            except Exception:
                _logger.warning("Error handler failed scope=%s path=%s", self.name, path, exc_info=True)

        _logger.debug("Subscribing scope=%s path=%s", self.name, path)
        try:
            unsubscribe = self._source.subscribe(path, handle_value, handle_error)
        except FlowmonSourceError as exc:
            handle_error(exc)
            return token
        token._attach(unsubscribe)
        return token

    def close(self) -> None:
        self._closed = True
        for token in list(self._tokens):
            token.revoke()

    def _forget(self, token: SubscriptionToken) -> None:
        if token in self._tokens:
            self._tokens.remove(token)


class SubscriptionManager:
    """Owns every scope opened against one data source.

    ``bind`` ties a scope to a dependency value: when the value changes the
    old scope is closed before the new one is set up.
    """

    def __init__(self, source: DataSource) -> None:
        self._source = source
        self._scopes: dict[str, Scope] = {}
        self._bound: dict[str, Hashable] = {}
        self._closed = False

    @property
    def source(self) -> DataSource:
        return self._source

    @property
    def active_count(self) -> int:
        return sum(scope.active_count for scope in self._scopes.values())

    def scope(self, name: str) -> Scope:
        """Return the open scope *name*, creating it if needed."""
        existing = self._scopes.get(name)
        if existing is not None and not existing.closed:
            return existing
        scope = Scope(self._source, name)
        if self._closed:
            scope.close()
        self._scopes[name] = scope
        return scope

    def bind(self, name: str, value: Hashable, setup: Callable[[Scope, Any], None]) -> bool:
        """Re-establish scope *name* for *value* if it differs from the bound one.

        Returns ``True`` when the scope was rebuilt.
        """
        if name in self._bound and self._bound[name] == value:
            return False
        self.release(name)
        self._bound[name] = value
        if self._closed:
            return False
        scope = self.scope(name)
        _logger.debug("Binding scope=%s value=%r", name, value)
        setup(scope, value)
        return True

    def release(self, name: str) -> None:
        scope = self._scopes.pop(name, None)
        self._bound.pop(name, None)
        if scope is not None:
            scope.close()

    def close(self) -> None:
        """Release every subscription. The manager accepts no new ones afterwards."""
        self._closed = True
        for name in list(self._scopes):
            self.release(name)
