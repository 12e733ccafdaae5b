"""Base scaffolding for backend implementations."""

from __future__ import annotations

import logging
from dataclasses import replace
from time import perf_counter

from neurobridge.contracts.backends import IBackend, RunReport
from neurobridge.core.errors import UnsupportedNeuronTypeError
from neurobridge.network.network import Network

logger = logging.getLogger(__name__)


class BackendBase(IBackend):
    """Shared ``run`` template: validate, reset recordings, execute, report.

    Subclasses implement :meth:`_do_run`. Results a failed run may have
    attached are discarded before the error propagates.
    """

    name = "base"

    # ---- Hooks for subclasses -------------------------------------------------
    def _do_run(self, network: Network, duration: float) -> RunReport:
        raise NotImplementedError

    def supported_neuron_types(self) -> frozenset[str]:
        raise NotImplementedError

    def installed(self) -> bool:
        return True

    def version(self) -> str:
        return ""

    # ---- IBackend -------------------------------------------------------------
    def run(self, network: Network, duration: float) -> RunReport:
        duration = float(duration)
        if not duration > 0.0:
            raise ValueError(f"duration must be positive, got {duration}")
        self.validate(network)

        network.init_recordings()
        start = perf_counter()
        try:
            report = self._do_run(network, duration)
        except BaseException:
            network.clear_recordings()
            raise
        elapsed = perf_counter() - start
        logger.debug("%s run of %.1f ms finished in %.3f s", self.name, duration, elapsed)
        return replace(report, wall_time_s=elapsed)

    def validate(self, network: Network) -> None:
        unsupported = sorted(network.neuron_types() - self.supported_neuron_types())
        if unsupported:
            raise UnsupportedNeuronTypeError(
                f"Backend '{self.name}' does not support neuron type(s): {', '.join(unsupported)}"
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


__all__ = ["BackendBase"]
