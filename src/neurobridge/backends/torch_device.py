"""Torch backend: compiles the network into device tensors and simulates it in-process.

The compiled network (parameter tensors, per-delay weight matrices) and the
device-resident simulation state live on the backend instance between runs.
With ``keep_compiled_artifacts`` an unchanged network reuses the compiled
tensors; state is re-initialised at the start of every run either way.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from time import perf_counter
from typing import Any

from neurobridge.backends.base import BackendBase
from neurobridge.backends.config import TorchConfig
from neurobridge.contracts.backends import RunReport
from neurobridge.core.errors import EngineNotFoundError
from neurobridge.core.torch_utils import (
    cuda_available,
    require_torch,
    resolve_device_dtype,
    torch_available,
)
from neurobridge.network.connectors import Connector
from neurobridge.network.network import Connection, Network, Population

logger = logging.getLogger(__name__)

Tensor = Any

SUPPORTED_NEURON_TYPES = frozenset(
    {
        "spike_source_array",
        "if_cond_exp",
        "if_curr_exp",
        "eif_cond_exp_isfa_ista",
    }
)

_CONDUCTANCE_TYPES = frozenset({"if_cond_exp", "eif_cond_exp_isfa_ista"})
# Exponential term argument is clipped to keep the Euler step finite.
_EXP_CLIP = 20.0


def network_signature(network: Network) -> tuple[Hashable, ...]:
    """Structural fingerprint used to decide whether compiled tensors can be reused."""

    pops = tuple(
        (
            pop.type.tag,
            pop.size,
            tuple(tuple(sorted(params.items())) for params in pop.parameters),
            pop.record,
        )
        for pop in network.populations
    )
    conns = tuple((conn.source, conn.target, conn.connector) for conn in network.connections)
    return (pops, conns)


@dataclass(slots=True)
class _CompiledPopulation:
    pid: int
    tag: str
    size: int
    params: dict[str, Tensor]
    decay_exc: Tensor | None
    decay_inh: Tensor | None
    source_events: dict[int, Tensor]
    record_spikes: bool
    record_v: bool


@dataclass(slots=True)
class _CompiledProjection:
    source: int
    target: int
    delays: tuple[int, ...]
    w_exc: tuple[Tensor, ...]
    w_inh: tuple[Tensor, ...]


@dataclass(slots=True)
class CompiledNetwork:
    signature: tuple[Hashable, ...]
    device: Any
    dtype: Any
    dt: float
    populations: list[_CompiledPopulation]
    projections: list[_CompiledProjection]
    ring_len: int


@dataclass(slots=True)
class _PopulationState:
    v: Tensor
    g_exc: Tensor
    g_inh: Tensor
    w: Tensor
    refrac: Tensor
    ring: Tensor
    spikes: Tensor
    spike_buf: Tensor | None
    v_buf: Tensor | None


@dataclass(slots=True)
class _Storage:
    compiled: CompiledNetwork
    states: list[_PopulationState]


class TorchBackend(BackendBase):
    """Clock-driven simulation on CPU or CUDA using torch.

    Runs on one instance are serialised because they share the persistent
    device storage.
    """

    name = "torch"

    def __init__(
        self,
        setup: Mapping[str, Any] | None = None,
        *,
        config: TorchConfig | None = None,
    ) -> None:
        self._config = config or TorchConfig.from_setup(setup)
        self._lock = threading.Lock()
        self._storage: _Storage | None = None
        self.compile_count = 0

    @property
    def config(self) -> TorchConfig:
        return self._config

    @property
    def compiled(self) -> CompiledNetwork | None:
        return self._storage.compiled if self._storage is not None else None

    def installed(self) -> bool:
        if not torch_available():
            return False
        return cuda_available() if self._config.gpu else True

    def version(self) -> str:
        if not torch_available():
            return ""
        return str(require_torch().__version__)

    def supported_neuron_types(self) -> frozenset[str]:
        return SUPPORTED_NEURON_TYPES

    def _do_run(self, network: Network, duration: float) -> RunReport:
        if not self.installed():
            what = "CUDA-enabled torch" if self._config.gpu else "torch"
            raise EngineNotFoundError(f"The torch backend requires {what}, which is not available")

        with self._lock:
            t0 = perf_counter()
            compiled = self._compiled_for(network)
            states = [self._init_state(cp, compiled) for cp in compiled.populations]
            self._storage = _Storage(compiled=compiled, states=states)
            t1 = perf_counter()
            steps = max(1, int(math.ceil(duration / compiled.dt - 1e-9)))
            records = self._simulate(network, compiled, states, steps)
            t2 = perf_counter()

        if self._config.timing:
            logger.info(
                "torch backend: compile %.3f s, simulate %.3f s (%d steps on %s)",
                t1 - t0,
                t2 - t1,
                steps,
                compiled.device,
            )
        return RunReport(
            backend=self.name,
            duration=duration,
            wall_time_s=0.0,
            records=records,
            meta={
                "device": str(compiled.device),
                "dtype": str(compiled.dtype),
                "steps": steps,
                "compile_s": t1 - t0,
                "simulate_s": t2 - t1,
            },
        )

    # ---- compilation ----------------------------------------------------------
    def _compiled_for(self, network: Network) -> CompiledNetwork:
        signature = network_signature(network)
        storage = self._storage
        if (
            self._config.keep_compiled_artifacts
            and storage is not None
            and storage.compiled.signature == signature
        ):
            logger.debug("torch backend: reusing compiled network")
            return storage.compiled
        compiled = compile_network(network, self._config, signature=signature)
        self.compile_count += 1
        return compiled

    def _init_state(self, cp: _CompiledPopulation, compiled: CompiledNetwork) -> _PopulationState:
        torch = require_torch()
        device, dtype = compiled.device, compiled.dtype
        n = cp.size
        zeros = torch.zeros((n,), device=device, dtype=dtype)
        v = cp.params["v_rest"].clone() if "v_rest" in cp.params else zeros.clone()
        buf_rows = self._config.recording_buffer_size
        spike_buf = (
            torch.zeros((buf_rows, n), device=device, dtype=torch.bool) if cp.record_spikes else None
        )
        v_buf = torch.zeros((buf_rows, n), device=device, dtype=dtype) if cp.record_v else None
        return _PopulationState(
            v=v,
            g_exc=zeros.clone(),
            g_inh=zeros.clone(),
            w=zeros.clone(),
            refrac=zeros.clone(),
            ring=torch.zeros((compiled.ring_len, 2, n), device=device, dtype=dtype),
            spikes=torch.zeros((n,), device=device, dtype=torch.bool),
            spike_buf=spike_buf,
            v_buf=v_buf,
        )

    # ---- simulation -----------------------------------------------------------
    def _simulate(
        self,
        network: Network,
        compiled: CompiledNetwork,
        states: list[_PopulationState],
        steps: int,
    ) -> int:
        torch = require_torch()
        dt = compiled.dt
        ring_len = compiled.ring_len
        buf_rows = self._config.recording_buffer_size
        populations = network.populations
        records = 0
        base = 0
        with torch.no_grad():
            for k in range(steps):
                slot = k % ring_len
                for cp, st in zip(compiled.populations, states, strict=True):
                    if cp.tag == "spike_source_array":
                        st.spikes.zero_()
                        idx = cp.source_events.get(k)
                        if idx is not None:
                            st.spikes[idx] = True
                        continue
                    _step_neurons(torch, cp, st, st.ring[slot], dt)
                    st.ring[slot].zero_()

                for proj in compiled.projections:
                    pre = states[proj.source].spikes.to(compiled.dtype)
                    ring = states[proj.target].ring
                    for delay, w_exc, w_inh in zip(proj.delays, proj.w_exc, proj.w_inh, strict=True):
                        target = ring[(k + delay) % ring_len]
                        target[0] += pre @ w_exc
                        target[1] += pre @ w_inh

                row = k - base
                for cp, st in zip(compiled.populations, states, strict=True):
                    if st.spike_buf is not None:
                        st.spike_buf[row] = st.spikes
                    if st.v_buf is not None:
                        st.v_buf[row] = st.v
                if row + 1 == buf_rows or k + 1 == steps:
                    for cp, st in zip(compiled.populations, states, strict=True):
                        records += _flush(populations[cp.pid], cp, st, rows=row + 1, base=base, dt=dt)
                    base = k + 1
        return records


def _step_neurons(torch: Any, cp: _CompiledPopulation, st: _PopulationState, inputs: Tensor, dt: float) -> None:
    p = cp.params
    st.g_exc += inputs[0]
    st.g_inh += inputs[1]
    v = st.v
    if cp.tag in _CONDUCTANCE_TYPES:
        i_syn = st.g_exc * (p["e_rev_E"] - v) + st.g_inh * (p["e_rev_I"] - v)
    else:
        i_syn = st.g_exc - st.g_inh

    adaptive = cp.tag == "eif_cond_exp_isfa_ista"
    if adaptive:
        g_leak = p["cm"] / p["tau_m"]
        spike_term = torch.exp(torch.clamp((v - p["v_thresh"]) / p["delta_T"], max=_EXP_CLIP))
        i_leak = g_leak * (p["v_rest"] - v) + g_leak * p["delta_T"] * spike_term
        dv = (i_leak + i_syn + p["i_offset"] - st.w) / p["cm"]
        threshold = p["v_spike"]
    else:
        dv = (p["v_rest"] - v) / p["tau_m"] + (i_syn + p["i_offset"]) / p["cm"]
        threshold = p["v_thresh"]

    active = st.refrac <= 0
    v_next = torch.where(active, v + dt * dv, p["v_reset"])
    spikes = active & (v_next >= threshold)
    v_next = torch.where(spikes, p["v_reset"], v_next)
    st.refrac = torch.where(spikes, p["tau_refrac"], torch.clamp(st.refrac - dt, min=0.0))
    if adaptive:
        # a is given in nS; w is a current in nA
        dw = (p["a"] * 1e-3 * (v - p["v_rest"]) - st.w) / p["tau_w"]
        st.w = torch.where(spikes, st.w + dt * dw + p["b"], st.w + dt * dw)
    st.v = v_next
    st.g_exc *= cp.decay_exc
    st.g_inh *= cp.decay_inh
    st.spikes = spikes


def _flush(
    pop: Population,
    cp: _CompiledPopulation,
    st: _PopulationState,
    *,
    rows: int,
    base: int,
    dt: float,
) -> int:
    count = 0
    # Neurons fire at the end of their integration step; sources at its start.
    offset = 0.0 if cp.tag == "spike_source_array" else dt
    if st.spike_buf is not None:
        hits = st.spike_buf[:rows].nonzero().cpu().tolist()
        for row, neuron in hits:
            pop.add_spikes(neuron, (round((base + row) * dt + offset, 9),))
        count += len(hits)
        st.spike_buf[:rows].zero_()
    if st.v_buf is not None:
        values = st.v_buf[:rows].cpu().tolist()
        for neuron in range(cp.size):
            samples = [
                (round((base + row) * dt + dt, 9), float(values[row][neuron])) for row in range(rows)
            ]
            pop.add_samples("v", neuron, samples)
        count += rows * cp.size
    return count


def compile_network(
    network: Network,
    config: TorchConfig,
    *,
    signature: tuple[Hashable, ...] | None = None,
) -> CompiledNetwork:
    """Lower ``network`` into tensors on the configured device and dtype."""

    torch = require_torch()
    device, dtype = resolve_device_dtype(gpu=config.gpu, double_precision=config.double_precision)
    dt = config.timestep

    populations = [_compile_population(torch, pop, device, dtype, dt) for pop in network.populations]
    projections: list[_CompiledProjection] = []
    max_delay = 1
    for conn in network.connections:
        proj = _compile_projection(torch, network, conn, device, dtype, dt)
        if proj.delays:
            max_delay = max(max_delay, *proj.delays)
        projections.append(proj)

    return CompiledNetwork(
        signature=signature if signature is not None else network_signature(network),
        device=device,
        dtype=dtype,
        dt=dt,
        populations=populations,
        projections=projections,
        ring_len=max_delay + 1,
    )


def _compile_population(torch: Any, pop: Population, device: Any, dtype: Any, dt: float) -> _CompiledPopulation:
    source_events: dict[int, Tensor] = {}
    params: dict[str, Tensor] = {}
    decay_exc = decay_inh = None
    if pop.type.is_source:
        by_step: dict[int, list[int]] = {}
        for neuron, values in enumerate(pop.parameters):
            for t in values.get("spike_times", ()):
                by_step.setdefault(int(round(float(t) / dt)), []).append(neuron)
        source_events = {
            step: torch.tensor(sorted(set(neurons)), device=device, dtype=torch.long)
            for step, neurons in by_step.items()
        }
    else:
        for key in pop.type.defaults:
            params[key] = torch.tensor(
                [float(values[key]) for values in pop.parameters], device=device, dtype=dtype
            )
        decay_exc = torch.exp(-dt / params["tau_syn_E"])
        decay_inh = torch.exp(-dt / params["tau_syn_I"])
    return _CompiledPopulation(
        pid=pop.pid,
        tag=pop.type.tag,
        size=pop.size,
        params=params,
        decay_exc=decay_exc,
        decay_inh=decay_inh,
        source_events=source_events,
        record_spikes=pop.records("spikes"),
        record_v=pop.records("v"),
    )


def _delay_steps(delay: float, dt: float) -> int:
    return max(1, int(round(float(delay) / dt)))


def _compile_projection(
    torch: Any,
    network: Network,
    conn: Connection,
    device: Any,
    dtype: Any,
    dt: float,
) -> _CompiledProjection:
    src = network.populations[conn.source]
    tgt = network.populations[conn.target]
    connector = conn.connector
    weights = torch.zeros((src.size, tgt.size), dtype=torch.float64)
    delays = torch.zeros((src.size, tgt.size), dtype=torch.long)
    mask = torch.zeros((src.size, tgt.size), dtype=torch.bool)

    if connector.kind == "fixed_probability":
        mask = _sample_mask(torch, connector, src.size, tgt.size, same=conn.source == conn.target)
        weights[mask] = connector.weight
        delays[mask] = _delay_steps(connector.delay, dt)
    else:
        same = conn.source == conn.target
        for syn in connector.expand(src.size, tgt.size, same_population=same):
            weights[syn.src, syn.tgt] += syn.weight
            delays[syn.src, syn.tgt] = _delay_steps(syn.delay, dt)
            mask[syn.src, syn.tgt] = True

    unique = sorted({int(d) for d in delays[mask].tolist()})
    w_exc: list[Tensor] = []
    w_inh: list[Tensor] = []
    for d in unique:
        sel = mask & (delays == d)
        w_d = torch.where(sel, weights, torch.zeros_like(weights))
        w_exc.append(torch.clamp(w_d, min=0.0).to(device=device, dtype=dtype))
        w_inh.append((-torch.clamp(w_d, max=0.0)).to(device=device, dtype=dtype))
    return _CompiledProjection(
        source=conn.source,
        target=conn.target,
        delays=tuple(unique),
        w_exc=tuple(w_exc),
        w_inh=tuple(w_inh),
    )


def _sample_mask(torch: Any, connector: Connector, n_src: int, n_tgt: int, *, same: bool) -> Tensor:
    generator = torch.Generator()
    if connector.seed is not None:
        generator.manual_seed(int(connector.seed))
    else:
        generator.seed()
    mask = torch.rand((n_src, n_tgt), generator=generator) < float(connector.p or 0.0)
    if same and not connector.allow_self:
        n = min(n_src, n_tgt)
        idx = torch.arange(n)
        mask[idx, idx] = False
    return mask


def make_torch_backend(setup: Mapping[str, Any] | None = None) -> TorchBackend:
    """Plugin-style constructor for the torch backend."""

    return TorchBackend(setup)


__all__ = [
    "SUPPORTED_NEURON_TYPES",
    "CompiledNetwork",
    "TorchBackend",
    "compile_network",
    "make_torch_backend",
    "network_signature",
]
