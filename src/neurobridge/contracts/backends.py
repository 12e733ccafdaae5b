"""Backend (execution engine) contracts."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias, runtime_checkable

if TYPE_CHECKING:
    from neurobridge.network.network import Network


@dataclass(frozen=True, slots=True)
class RunReport:
    """Summary of a completed run."""

    backend: str
    duration: float
    wall_time_s: float
    records: int = 0
    exit_code: int | None = None
    meta: Mapping[str, Any] | None = None


@runtime_checkable
class IBackend(Protocol):
    """Uniform contract shared by all execution engines."""

    name: str

    def run(self, network: Network, duration: float) -> RunReport:
        """Execute ``network`` for ``duration`` ms and attach recorded results."""
        ...

    def supported_neuron_types(self) -> frozenset[str]:
        ...

    def installed(self) -> bool:
        ...

    def version(self) -> str:
        ...


BackendFactory: TypeAlias = Callable[[Mapping[str, Any] | None], IBackend]

__all__ = ["RunReport", "IBackend", "BackendFactory"]
