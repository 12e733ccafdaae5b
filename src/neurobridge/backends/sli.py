"""SLI control-script writer and NEST response reader.

The writer turns a :class:`Network` into a script for NEST's SLI interpreter
read from stdin. The script ends by calling small dump procedures which print
one result record per recorded neuron::

    RESULT spikes <population> <neuron> <t0> <t1> ...
    RESULT v <population> <neuron> <t0> <v0> <t1> <v1> ...

Any other output line is a diagnostic. NEST log messages carry a severity tag
(``[Info]``, ``[Warning]``, ``[Error]``, ...) which is mapped onto
:mod:`logging` levels.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import IO, Any

from neurobridge.backends.config import NestConfig
from neurobridge.core.errors import ProtocolParseError
from neurobridge.network.network import Connection, Network, Population

logger = logging.getLogger(__name__)

RESULT_TAG = "RESULT"

# PyNN weights (uS, nA) -> NEST weights (nS, pA)
WEIGHT_SCALE = 1000.0

DiagnosticFn = Callable[[int, str], None]

_DUMP_PROCEDURES = """\
/nb_dump_spikes
{
  /nb_n Set /nb_first Set /nb_pid Set
  GetStatus /events get dup /senders get cva /nb_senders Set /times get cva /nb_times Set
  0 1 nb_n 1 sub
  {
    /nb_i Set
    (RESULT spikes ) =only nb_pid =only ( ) =only nb_i =only
    0 1 nb_senders length 1 sub
    {
      /nb_k Set
      nb_senders nb_k get nb_first nb_i add eq
      { ( ) =only nb_times nb_k get =only } if
    } for
    () =
  } for
} def

/nb_dump_v
{
  /nb_n Set /nb_first Set /nb_pid Set
  GetStatus /events get dup dup /senders get cva /nb_senders Set
  /times get cva /nb_times Set /V_m get cva /nb_values Set
  0 1 nb_n 1 sub
  {
    /nb_i Set
    (RESULT v ) =only nb_pid =only ( ) =only nb_i =only
    0 1 nb_senders length 1 sub
    {
      /nb_k Set
      nb_senders nb_k get nb_first nb_i add eq
      { ( ) =only nb_times nb_k get =only ( ) =only nb_values nb_k get =only } if
    } for
    () =
  } for
} def
"""


def _fmt(value: float) -> str:
    return repr(float(value))


def _dict(entries: Mapping[str, Any]) -> str:
    parts: list[str] = []
    for key in sorted(entries):
        value = entries[key]
        if isinstance(value, bool):
            text = "true" if value else "false"
        elif isinstance(value, int):
            text = str(value)
        elif isinstance(value, str):
            text = f"/{value}"
        elif isinstance(value, (tuple, list)):
            text = "[" + " ".join(str(v) if isinstance(v, int) else _fmt(v) for v in value) + "]"
        else:
            text = _fmt(value)
        parts.append(f"/{key} {text}")
    return "<< " + " ".join(parts) + " >>"


def _gid_ranges(network: Network) -> list[tuple[int, int]]:
    # NEST numbers nodes from 1 (0 is the root); populations are created first.
    ranges: list[tuple[int, int]] = []
    next_gid = 1
    for pop in network.populations:
        ranges.append((next_gid, next_gid + pop.size - 1))
        next_gid += pop.size
    return ranges


def _connection_seed(network: Network) -> int | None:
    for conn in network.connections:
        if conn.connector.kind == "fixed_probability" and conn.connector.seed is not None:
            return int(conn.connector.seed)
    return None


def _kernel_status(params: NestConfig, network: Network) -> str:
    status: dict[str, Any] = {"resolution": params.timestep, "overwrite_files": True}
    if params.threads is not None:
        status["local_num_threads"] = int(params.threads)
    seed = _connection_seed(network)
    if seed is not None:
        # NEST seeds its kernel RNGs globally: one global seed plus one per thread.
        status["grng_seed"] = seed
        status["rng_seeds"] = [seed + 1 + vp for vp in range(params.threads or 1)]
    return f"0 {_dict(status)} SetStatus\n"


def _population_lines(pop: Population, first: int, last: int) -> Iterator[str]:
    ntype = pop.type
    yield f"% population {pop.pid} {pop.name!r}: {ntype.tag} x{pop.size}\n"
    yield f"/{ntype.nest_model} {pop.size} Create /nb_pop_{pop.pid} Set\n"
    if ntype.is_source:
        for idx, params in enumerate(pop.parameters):
            times = params.get("spike_times", ())
            if times:
                yield f"{first + idx} {_dict({'spike_times': times})} SetStatus\n"
        return
    if pop.homogeneous():
        nest_params = ntype.to_nest(pop.parameters[0])
        yield f"[{first} {last}] Range {{ {_dict(nest_params)} SetStatus }} forall\n"
        return
    for idx, params in enumerate(pop.parameters):
        yield f"{first + idx} {_dict(ntype.to_nest(params))} SetStatus\n"


def _recorder_lines(pop: Population, first: int, last: int, params: NestConfig) -> Iterator[str]:
    if pop.records("spikes"):
        yield (
            "/spike_detector << /withgid true /withtime true /to_memory true >> "
            f"Create /nb_sd_{pop.pid} Set\n"
        )
        yield f"[{first} {last}] Range [nb_sd_{pop.pid}] /all_to_all Connect\n"
    if pop.records("v"):
        interval = params.record_interval if params.record_interval is not None else params.timestep
        yield (
            f"/multimeter << /interval {_fmt(interval)} /record_from [/V_m] "
            f"/withgid true /withtime true >> Create /nb_mm_{pop.pid} Set\n"
        )
        yield f"[nb_mm_{pop.pid}] [{first} {last}] Range /all_to_all Connect\n"


def _connection_lines(
    conn: Connection,
    ranges: list[tuple[int, int]],
    params: NestConfig,
) -> Iterator[str]:
    connector = conn.connector
    src_first, src_last = ranges[conn.source]
    tgt_first, tgt_last = ranges[conn.target]
    yield f"% connection {conn.source} -> {conn.target}: {connector.kind}\n"

    def delay(value: float) -> float:
        return max(float(value), params.timestep)

    if connector.kind == "from_list":
        for syn in connector.synapses:
            yield (
                f"{src_first + syn.src} {tgt_first + syn.tgt} "
                f"{_fmt(syn.weight * WEIGHT_SCALE)} {_fmt(delay(syn.delay))} Connect\n"
            )
        return

    rule: dict[str, Any]
    if connector.kind == "all_to_all":
        rule = {"rule": "all_to_all"}
    elif connector.kind == "one_to_one":
        rule = {"rule": "one_to_one"}
    else:
        rule = {"rule": "pairwise_bernoulli", "p": float(connector.p or 0.0)}
    if conn.source == conn.target and not connector.allow_self:
        rule["autapses"] = False
    syn_spec = {
        "model": "static_synapse",
        "weight": connector.weight * WEIGHT_SCALE,
        "delay": delay(connector.delay),
    }
    yield (
        f"[{src_first} {src_last}] Range [{tgt_first} {tgt_last}] Range "
        f"{_dict(rule)} {_dict(syn_spec)} Connect\n"
    )


def iter_script(network: Network, duration: float, params: NestConfig) -> Iterator[str]:
    """Yield the SLI script in chunks; the output is deterministic."""

    ranges = _gid_ranges(network)
    yield "% neurobridge SLI control script\n"
    yield "ResetKernel\n"
    yield _kernel_status(params, network)
    yield _DUMP_PROCEDURES
    for pop, (first, last) in zip(network.populations, ranges, strict=True):
        yield from _population_lines(pop, first, last)
    for pop, (first, last) in zip(network.populations, ranges, strict=True):
        yield from _recorder_lines(pop, first, last, params)
    for conn in network.connections:
        yield from _connection_lines(conn, ranges, params)
    yield f"{_fmt(duration)} Simulate\n"
    for pop, (first, _last) in zip(network.populations, ranges, strict=True):
        if pop.records("spikes"):
            yield f"nb_sd_{pop.pid} {pop.pid} {first} {pop.size} nb_dump_spikes\n"
        if pop.records("v"):
            yield f"nb_mm_{pop.pid} {pop.pid} {first} {pop.size} nb_dump_v\n"


def render_script(network: Network, duration: float, params: NestConfig) -> str:
    return "".join(iter_script(network, duration, params))


def write_network(stream: IO[str], network: Network, duration: float, params: NestConfig) -> None:
    """Serialise ``network`` into ``stream``; closing the stream is the caller's job."""

    for chunk in iter_script(network, duration, params):
        stream.write(chunk)
    stream.flush()


_SEVERITY_RE = re.compile(r"\[(Debug|Status|Info|Deprecated|Warning|Error|Fatal)\]", re.IGNORECASE)
_SEVERITY_LEVELS = {
    "debug": logging.DEBUG,
    "status": logging.DEBUG,
    "info": logging.INFO,
    "deprecated": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


@dataclass(slots=True)
class ResponseSummary:
    records: int = 0
    diagnostics: int = 0
    errors: list[str] = field(default_factory=list)


def _log_diagnostic(level: int, text: str) -> None:
    logger.log(level, "[nest] %s", text)


def _parse_values(tokens: Iterable[str], *, line: str, line_no: int) -> list[float]:
    try:
        return [float(tok) for tok in tokens]
    except ValueError:
        raise ProtocolParseError("invalid number in result record", line=line, line_no=line_no) from None


def _parse_index(token: str, what: str, *, line: str, line_no: int) -> int:
    try:
        return int(token)
    except ValueError:
        raise ProtocolParseError(f"invalid {what} index", line=line, line_no=line_no) from None


def _merge_record(network: Network, line: str, line_no: int) -> None:
    tokens = line.split()
    if len(tokens) < 4:
        raise ProtocolParseError("truncated result record", line=line, line_no=line_no)
    _, signal, pid_tok, neuron_tok, *value_toks = tokens
    pid = _parse_index(pid_tok, "population", line=line, line_no=line_no)
    neuron = _parse_index(neuron_tok, "neuron", line=line, line_no=line_no)
    populations = network.populations
    if not 0 <= pid < len(populations):
        raise ProtocolParseError(f"unknown population {pid}", line=line, line_no=line_no)
    pop = populations[pid]
    if not pop.records(signal):
        raise ProtocolParseError(
            f"population '{pop.name}' did not request '{signal}'", line=line, line_no=line_no
        )
    if not 0 <= neuron < pop.size:
        raise ProtocolParseError(
            f"neuron {neuron} out of range for population '{pop.name}'", line=line, line_no=line_no
        )
    values = _parse_values(value_toks, line=line, line_no=line_no)
    if signal not in pop.recordings:
        pop.init_recordings()
    if signal == "spikes":
        pop.add_spikes(neuron, values)
        return
    if len(values) % 2:
        raise ProtocolParseError("odd number of trace values", line=line, line_no=line_no)
    pop.add_samples(signal, neuron, zip(values[0::2], values[1::2], strict=True))


def _is_record(line: str) -> bool:
    if not line.startswith(RESULT_TAG):
        return False
    rest = line[len(RESULT_TAG) :]
    return not rest or rest[0].isspace()


def read_response(
    stream: IO[str],
    network: Network,
    *,
    on_diagnostic: DiagnosticFn | None = None,
) -> ResponseSummary:
    """Read engine output until end-of-file, merging result records into ``network``.

    Records are applied in arrival order and never re-sorted.
    """

    emit = on_diagnostic or _log_diagnostic
    summary = ResponseSummary()
    level = logging.DEBUG
    for line_no, raw in enumerate(stream, start=1):
        line = raw.rstrip("\r\n")
        if _is_record(line):
            _merge_record(network, line, line_no)
            summary.records += 1
            continue
        if not line.strip():
            continue
        match = _SEVERITY_RE.search(line)
        if match is not None:
            level = _SEVERITY_LEVELS[match.group(1).lower()]
        elif not line[:1].isspace():
            level = logging.DEBUG
        summary.diagnostics += 1
        if level >= logging.ERROR:
            summary.errors.append(line.strip())
        emit(level, line)
    return summary


__all__ = [
    "RESULT_TAG",
    "WEIGHT_SCALE",
    "ResponseSummary",
    "iter_script",
    "read_response",
    "render_script",
    "write_network",
]
