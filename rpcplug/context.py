"""A request context that carries a mutable, lock-protected table of values."""

from __future__ import annotations

import threading
from collections.abc import Hashable
from typing import Any

from rpcplug.share import CONTEXT_TAGS_LOCK, IS_SHARE_CONTEXT


class _ValueContext:
    """Immutable context node that adds one key to its parent."""

    def __init__(self, parent: Any, key: Any, val: Any) -> None:
        self._parent = parent
        self._key = key
        self._val = val

    def value(self, key: Any) -> Any:
        if key == self._key:
            return self._val
        return None if self._parent is None else self._parent.value(key)

    def __repr__(self) -> str:
        parent = "background" if self._parent is None else repr(self._parent)
        return f"{parent}.WithValue({self._key!r}, {self._val!r})"


def _check_key(key: Any) -> None:
    if key is None:
        raise ValueError("nil key")
    if not isinstance(key, Hashable):
        raise TypeError("key is not comparable")
    try:
        hash(key)
    except TypeError:
        raise TypeError("key is not comparable") from None


class ShareContext:
    """Context whose values can be changed after creation.

    Lookups check the context's own values first, then its parent (any object
    with a ``value(key)`` method, or None). Using it as a context manager holds
    its lock.
    """

    def __init__(self, parent: Any) -> None:
        self._parent = parent
        self._lock = threading.RLock()
        self._tags: dict[Any, Any] = {}

    @property
    def parent(self) -> Any:
        return self._parent

    @property
    def tags(self) -> dict[Any, Any]:
        """A snapshot of the values set directly on this context."""
        with self._lock:
            return dict(self._tags)

    def __enter__(self) -> ShareContext:
        self._lock.acquire()
        return self

    def __exit__(self, *args: Any) -> None:
        self._lock.release()

    def value(self, key: Any) -> Any:
        with self._lock:
            if key in self._tags:
                return self._tags[key]
        return None if self._parent is None else self._parent.value(key)

    def set_value(self, key: Any, val: Any) -> None:
        with self._lock:
            self._tags[key] = val

    def delete_key(self, key: Any) -> None:
        if key is None:
            return
        with self._lock:
            self._tags.pop(key, None)

    def __repr__(self) -> str:
        parent = "background" if self._parent is None else repr(self._parent)
        return f"{parent}.WithValue({self.tags!r})"


def new_context(parent: Any) -> ShareContext:
    """Create a share context on top of ``parent`` (None for an empty root)."""
    lock = threading.RLock()
    ctx = ShareContext(_ValueContext(parent, CONTEXT_TAGS_LOCK, lock))
    ctx._lock = lock
    ctx._tags[IS_SHARE_CONTEXT] = True
    return ctx


def with_value(parent: Any, key: Any, val: Any) -> ShareContext:
    """Create a context holding a single value on top of ``parent``."""
    _check_key(key)
    ctx = ShareContext(parent)
    ctx._tags[key] = val
    return ctx


def with_local_value(ctx: ShareContext, key: Any, val: Any) -> ShareContext:
    """Set a value directly on ``ctx`` and return it."""
    _check_key(key)
    ctx._tags[key] = val
    return ctx


def is_share_context(ctx: Any) -> bool:
    """Whether ``ctx`` is, or descends from, a context made by :func:`new_context`."""
    return ctx.value(IS_SHARE_CONTEXT) is not None