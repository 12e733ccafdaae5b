"""Contracts (interfaces/protocols) for neurobridge.

This package is *not* the public API surface. Only symbols re-exported from
:mod:`neurobridge.api` are considered semver-stable.
"""

from neurobridge.contracts.backends import BackendFactory, IBackend, RunReport
from neurobridge.contracts.factories import Registry

__all__ = [
    # backends
    "IBackend",
    "BackendFactory",
    "RunReport",
    # factories
    "Registry",
]
