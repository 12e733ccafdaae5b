"""Public façade (stable API surface).

Only symbols re-exported from here are considered public and semver-stable.
Internal modules may change without notice. Importing this package does not
import torch.
"""

from neurobridge.api import presets
from neurobridge.api.version import __version__
from neurobridge.backends.config import NestConfig, TorchConfig
from neurobridge.backends.nest import NestBackend
from neurobridge.backends.registry import (
    available_backends,
    load_backend_plugins,
    make_backend,
    register_backend,
)
from neurobridge.backends.torch_device import TorchBackend
from neurobridge.contracts.backends import BackendFactory, IBackend, RunReport
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
from neurobridge.network import Connector, Network, Population, Synapse

__all__ = [
    "__version__",
    "presets",
    # network
    "Network",
    "Population",
    "Connector",
    "Synapse",
    # backends
    "IBackend",
    "BackendFactory",
    "RunReport",
    "NestBackend",
    "TorchBackend",
    "NestConfig",
    "TorchConfig",
    "make_backend",
    "register_backend",
    "available_backends",
    "load_backend_plugins",
    # errors
    "BackendError",
    "ConfigurationError",
    "EngineNotFoundError",
    "ExecutionError",
    "ProtocolParseError",
    "SpawnError",
    "UnknownBackendError",
    "UnsupportedNeuronTypeError",
]
