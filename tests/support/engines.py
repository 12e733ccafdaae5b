from __future__ import annotations

import stat
import sys
import threading
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from neurobridge.backends.base import BackendBase
from neurobridge.contracts.backends import RunReport
from neurobridge.network.network import Network

FAKE_NEST_SCRIPT = Path(__file__).with_name("fake_nest.py")


def write_fake_nest(directory: Path, name: str = "nest") -> Path:
    """Write an executable ``nest`` wrapper that runs the stand-in engine."""

    directory.mkdir(parents=True, exist_ok=True)
    wrapper = directory / name
    wrapper.write_text(
        f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_NEST_SCRIPT}" "$@"\n',
        encoding="utf-8",
    )
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return wrapper


class counting_runner:
    """Discovery runner stub returning a fixed outcome and counting invocations."""

    def __init__(self, exit_code: int = 0, output: str = "NEST version 3.6.0\n") -> None:
        self.exit_code = exit_code
        self.output = output
        self.calls: list[tuple[str, ...]] = []
        self._lock = threading.Lock()

    def __call__(self, argv: Sequence[str]) -> tuple[int, str]:
        with self._lock:
            self.calls.append(tuple(argv))
        return self.exit_code, self.output


class EchoBackend(BackendBase):
    """In-process backend that reports every spike source time back as recorded."""

    name = "echo"

    def __init__(self, setup: Mapping[str, Any] | None = None) -> None:
        self.setup = dict(setup or {})

    def supported_neuron_types(self) -> frozenset[str]:
        return frozenset({"spike_source_array", "if_cond_exp", "if_curr_exp"})

    def _do_run(self, network: Network, duration: float) -> RunReport:
        records = 0
        for pop in network.populations:
            if not (pop.type.is_source and pop.records("spikes")):
                continue
            for idx, params in enumerate(pop.parameters):
                pop.add_spikes(idx, [t for t in params["spike_times"] if t < duration])
                records += 1
        return RunReport(backend=self.name, duration=duration, wall_time_s=0.0, records=records)
