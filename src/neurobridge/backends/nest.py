"""NEST backend: runs the network in an external ``nest`` process over pipes."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from enum import StrEnum
from typing import IO, Any

from neurobridge.backends.base import BackendBase
from neurobridge.backends.config import NestConfig
from neurobridge.backends.discovery import EngineDiscovery, nest_discovery
from neurobridge.backends.process import ChildProcess, ignore_sigpipe, run_streaming
from neurobridge.backends.sli import ResponseSummary, read_response, write_network
from neurobridge.contracts.backends import RunReport
from neurobridge.core.errors import EngineNotFoundError, ExecutionError
from neurobridge.network.network import Network

logger = logging.getLogger(__name__)

NEST_ARGS = ("--verbosity=DEBUG", "-")

SUPPORTED_NEURON_TYPES = frozenset(
    {
        "spike_source_array",
        "if_cond_exp",
        "eif_cond_exp_isfa_ista",
        "if_curr_exp",
    }
)


class RunState(StrEnum):
    IDLE = "idle"
    CHECKING = "checking"
    SPAWNING = "spawning"
    STREAMING = "streaming"
    WAITING = "waiting"
    DONE = "done"
    NOT_FOUND = "not_found"
    FAILED = "failed"


class NestBackend(BackendBase):
    """Process backend talking SLI to a NEST child process.

    Every :meth:`run` spawns its own child, so one instance may be used from
    several threads at once; :attr:`last_state` is tracked per thread. There is
    no timeout: a hung engine blocks the caller indefinitely.
    """

    name = "nest"

    def __init__(
        self,
        setup: Mapping[str, Any] | None = None,
        *,
        config: NestConfig | None = None,
        discovery: EngineDiscovery | None = None,
    ) -> None:
        self._config = config or NestConfig.from_setup(setup)
        self._discovery = discovery or nest_discovery(self._config.executable)
        self._local = threading.local()
        ignore_sigpipe()

    @property
    def config(self) -> NestConfig:
        return self._config

    @property
    def last_state(self) -> RunState:
        """State reached by the most recent run on the calling thread."""

        return getattr(self._local, "state", RunState.IDLE)

    @property
    def discovery(self) -> EngineDiscovery:
        return self._discovery

    def invocation(self) -> tuple[str, tuple[str, ...]]:
        return self._config.executable, NEST_ARGS

    def installed(self) -> bool:
        return self._discovery.installed()

    def version(self) -> str:
        return self._discovery.version()

    def supported_neuron_types(self) -> frozenset[str]:
        return SUPPORTED_NEURON_TYPES

    def _do_run(self, network: Network, duration: float) -> RunReport:
        self._enter(RunState.CHECKING)
        if not self._discovery.installed():
            self._enter(RunState.NOT_FOUND)
            raise EngineNotFoundError(
                "The NEST simulator is not installed on your system or has an "
                "incompatible version!"
            )

        self._enter(RunState.SPAWNING)
        command, args = self.invocation()
        try:
            proc = ChildProcess.spawn(command, args)
        except BaseException:
            self._enter(RunState.FAILED)
            raise

        self._enter(RunState.STREAMING)
        params = self._config

        def writer(stream: IO[str]) -> None:
            write_network(stream, network, duration, params)

        def reader(stream: IO[str]) -> ResponseSummary:
            return read_response(stream, network)

        try:
            with proc:
                outcome = run_streaming(
                    proc,
                    writer,
                    reader,
                    before_wait=lambda: self._enter(RunState.WAITING),
                )
        except BaseException:
            self._enter(RunState.FAILED)
            raise

        summary = outcome.value
        if outcome.exit_code != 0:
            self._enter(RunState.FAILED)
            diagnostics = "\n".join(line for line in (*summary.errors, outcome.stderr) if line)
            raise ExecutionError(
                "Error while executing the NEST simulation",
                exit_code=outcome.exit_code,
                diagnostics=diagnostics,
            )

        self._enter(RunState.DONE)
        return RunReport(
            backend=self.name,
            duration=duration,
            wall_time_s=0.0,
            records=summary.records,
            exit_code=outcome.exit_code,
            meta={"version": self.version(), "diagnostics": summary.diagnostics},
        )

    def _enter(self, state: RunState) -> None:
        logger.debug("nest backend: %s -> %s", self.last_state, state)
        self._local.state = state


def make_nest_backend(setup: Mapping[str, Any] | None = None) -> NestBackend:
    """Plugin-style constructor for the NEST backend."""

    return NestBackend(setup)


__all__ = [
    "NEST_ARGS",
    "SUPPORTED_NEURON_TYPES",
    "NestBackend",
    "RunState",
    "make_nest_backend",
]
