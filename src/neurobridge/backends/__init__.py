"""Execution backends and their registry."""

from neurobridge.backends.base import BackendBase
from neurobridge.backends.config import NestConfig, TorchConfig
from neurobridge.backends.discovery import EngineDiscovery, EngineInfo, nest_discovery
from neurobridge.backends.nest import NestBackend, RunState
from neurobridge.backends.registry import (
    BACKENDS,
    available_backends,
    load_backend_plugins,
    make_backend,
    register_backend,
)
from neurobridge.backends.torch_device import TorchBackend

__all__ = [
    "BACKENDS",
    "BackendBase",
    "EngineDiscovery",
    "EngineInfo",
    "NestBackend",
    "NestConfig",
    "RunState",
    "TorchBackend",
    "TorchConfig",
    "available_backends",
    "load_backend_plugins",
    "make_backend",
    "nest_discovery",
    "register_backend",
]
