"""Core utilities: error taxonomy and optional torch helpers."""

from neurobridge.core.errors import (
    BackendError,
    ConfigurationError,
    EngineNotFoundError,
    ExecutionError,
    ProtocolParseError,
    SpawnError,
    UnknownBackendError,
    UnsupportedNeuronTypeError,
)

__all__ = [
    "BackendError",
    "ConfigurationError",
    "EngineNotFoundError",
    "ExecutionError",
    "ProtocolParseError",
    "SpawnError",
    "UnknownBackendError",
    "UnsupportedNeuronTypeError",
]
