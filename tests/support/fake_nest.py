"""Stand-in for the ``nest`` binary used by the acceptance tests.

``fake_nest -v`` prints a version banner. Otherwise the SLI script is read
from stdin and a result record is printed for every dump call in it: spike
generators report their configured spike times, every other neuron reports
each generator spike shifted by ``LATENCY`` ms.

Behaviour is steered through environment variables:

* ``FAKE_NEST_BANNER``: banner printed for ``-v``
* ``FAKE_NEST_MODE``: ``ok`` (default), ``fail``, ``garbage``, ``flood``,
  ``close_early``
* ``FAKE_NEST_FLOOD``: number of diagnostic lines printed before reading
  stdin in ``flood`` mode
"""

from __future__ import annotations

import os
import re
import sys

LATENCY = 2.0

CREATE_RE = re.compile(r"^/(\w+) (\d+) Create /nb_pop_(\d+) Set$")
TIMES_RE = re.compile(r"^(\d+) << /spike_times \[([^\]]*)\] >> SetStatus$")
DUMP_RE = re.compile(r"^(\S+) (\d+) (\d+) (\d+) nb_dump_(spikes|v)$")


def _banner() -> int:
    print(os.environ.get("FAKE_NEST_BANNER", "NEST version 2.20.0"))
    return 0


def _simulate(script: str, out) -> None:
    generators: set[int] = set()
    times_by_gid: dict[int, list[float]] = {}
    dumps: list[tuple[int, int, int, str]] = []
    for raw in script.splitlines():
        line = raw.strip()
        if m := CREATE_RE.match(line):
            if m.group(1) == "spike_generator":
                generators.add(int(m.group(3)))
        elif m := TIMES_RE.match(line):
            times_by_gid[int(m.group(1))] = [float(t) for t in m.group(2).split()]
        elif m := DUMP_RE.match(line):
            dumps.append((int(m.group(2)), int(m.group(3)), int(m.group(4)), m.group(5)))

    driven = sorted({t + LATENCY for times in times_by_gid.values() for t in times})
    out.write("Jan 01 00:00:00 SimulationManager::run [Info]: \n")
    out.write("    Simulation finished.\n")
    for pid, first, size, signal in dumps:
        for idx in range(size):
            if signal == "spikes":
                times = times_by_gid.get(first + idx, []) if pid in generators else driven
                values = " ".join(repr(t) for t in times)
            else:
                values = " ".join(f"{0.1 * (k + 1)!r} {-65.0 + k!r}" for k in range(3))
            out.write(f"RESULT {signal} {pid} {idx} {values}".rstrip() + "\n")


def main(argv: list[str]) -> int:
    if "-v" in argv:
        return _banner()

    mode = os.environ.get("FAKE_NEST_MODE", "ok")
    if mode == "close_early":
        sys.stdin.close()
        return 0
    if mode == "flood":
        count = int(os.environ.get("FAKE_NEST_FLOOD", "20000"))
        for k in range(count):
            sys.stdout.write(f"Jan 01 00:00:00 Kernel [Debug]: diagnostic line {k}\n")
            sys.stderr.write(f"stderr line {k}\n")
        sys.stdout.flush()
        sys.stderr.flush()

    script = sys.stdin.read()

    if mode == "fail":
        sys.stdout.write("Jan 01 00:00:00 Simulate [Error]: \n")
        sys.stdout.write("    Model iaf_cond_exp exploded.\n")
        sys.stdout.flush()
        sys.stderr.write("fake nest: simulation aborted\n")
        return 1
    if mode == "garbage":
        sys.stdout.write("RESULT spikes 99 0 1.0\n")
        return 0

    _simulate(script, sys.stdout)
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
