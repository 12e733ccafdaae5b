"""Backend registry: name -> factory, with entry-point plugins."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from importlib.metadata import entry_points
from typing import Any

from neurobridge.backends.nest import make_nest_backend
from neurobridge.backends.torch_device import make_torch_backend
from neurobridge.contracts.backends import BackendFactory, IBackend
from neurobridge.contracts.factories import Registry
from neurobridge.core.errors import UnknownBackendError

logger = logging.getLogger(__name__)

PLUGIN_GROUP = "neurobridge.backends"

BACKENDS: Registry[IBackend] = Registry(label="backends")
BACKENDS.register("nest", make_nest_backend)
BACKENDS.register("torch", make_torch_backend)
BACKENDS.register_alias("pytorch", "torch")

_PLUGINS_LOCK = threading.Lock()
_PLUGINS_LOADED: set[str] = set()


def register_backend(name: str, factory: BackendFactory) -> None:
    """Make ``factory`` available under ``name``; duplicate names raise ``KeyError``."""

    BACKENDS.register(name, factory)


def load_backend_plugins(group: str = PLUGIN_GROUP) -> list[str]:
    """Register factories advertised under the ``group`` entry point group.

    Each group is scanned once per process. Names that are already registered
    are left alone. Returns the names that were added.
    """

    with _PLUGINS_LOCK:
        if group in _PLUGINS_LOADED:
            return []
        _PLUGINS_LOADED.add(group)
        added: list[str] = []
        for ep in entry_points(group=group):
            if ep.name in BACKENDS:
                logger.debug("Backend plugin '%s' shadows a registered name; skipped", ep.name)
                continue
            BACKENDS.register(ep.name, ep.load())
            added.append(ep.name)
        if added:
            logger.info("Loaded backend plugins: %s", ", ".join(added))
        return added


def available_backends() -> list[str]:
    load_backend_plugins()
    return BACKENDS.keys()


def make_backend(name: str, setup: Mapping[str, Any] | None = None) -> IBackend:
    """Construct the backend registered as ``name`` with an optional setup mapping."""

    key = name.strip().lower()
    if key not in BACKENDS:
        load_backend_plugins()
    if key not in BACKENDS:
        raise UnknownBackendError(
            f"Unknown backend '{name}'. Available backends: {', '.join(BACKENDS.keys())}"
        )
    return BACKENDS.create(key, setup)


__all__ = [
    "BACKENDS",
    "PLUGIN_GROUP",
    "available_backends",
    "load_backend_plugins",
    "make_backend",
    "register_backend",
]
