"""Factory/registry contracts.

These are lightweight abstractions intended to make it easy to add or swap
backend implementations without changing callers (Open/Closed Principle).
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any


class Registry[T]:
    """Thread-safe named registry mapping string keys (and aliases) to constructors."""

    def __init__(self, *, label: str | None = None) -> None:
        self._label = label or "registry"
        self._lock = threading.Lock()
        self._ctors: dict[str, Callable[..., T]] = {}
        self._aliases: dict[str, str] = {}

    @property
    def label(self) -> str:
        return self._label

    def register(self, key: str, ctor: Callable[..., T]) -> None:
        with self._lock:
            if key in self._ctors or key in self._aliases:
                raise KeyError(f"{self._label} already has key '{key}'.")
            self._ctors[key] = ctor

    def register_alias(self, alias: str, target: str) -> None:
        with self._lock:
            if alias in self._ctors or alias in self._aliases:
                raise KeyError(f"{self._label} already has key '{alias}'.")
            if target not in self._ctors:
                raise KeyError(f"{self._label} has no target '{target}' for alias '{alias}'.")
            self._aliases[alias] = target

    def unregister(self, key: str) -> None:
        """Remove ``key``; removing a constructor also drops the aliases pointing at it."""

        with self._lock:
            if key in self._aliases:
                del self._aliases[key]
            elif key in self._ctors:
                del self._ctors[key]
                for alias in [a for a, t in self._aliases.items() if t == key]:
                    del self._aliases[alias]
            else:
                raise KeyError(f"{self._label} has no key '{key}'.")

    def resolve(self, key: str) -> Callable[..., T]:
        ctor = self._ctors.get(self._aliases.get(key, key))
        if ctor is None:
            raise KeyError(f"{self._label} has no key '{key}'.")
        return ctor

    def create(self, key: str, *args: Any, **kwargs: Any) -> T:
        return self.resolve(key)(*args, **kwargs)

    def keys(self) -> list[str]:
        return sorted(set(self._ctors) | set(self._aliases))

    def __contains__(self, key: object) -> bool:
        return key in self._ctors or key in self._aliases


__all__ = ["Registry"]
