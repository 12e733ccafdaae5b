"""Network description: populations, connections and recorded results."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from neurobridge.network.connectors import Connector
from neurobridge.network.neurons import NeuronType, neuron_type

if TYPE_CHECKING:
    from neurobridge.contracts.backends import IBackend, RunReport


@dataclass(slots=True, eq=False)
class Population:
    """A group of homogeneous-type neurons with per-neuron parameters.

    ``recordings`` maps a recorded signal to one list per neuron. Spike
    entries are event times; trace entries are ``(t, value)`` samples. It is
    empty until a backend attaches results.
    """

    pid: int
    name: str
    type: NeuronType
    size: int
    parameters: tuple[Mapping[str, Any], ...]
    record: frozenset[str] = frozenset()
    recordings: dict[str, list[list[Any]]] = field(default_factory=dict)

    def records(self, signal: str) -> bool:
        return signal in self.record

    def homogeneous(self) -> bool:
        first = self.parameters[0]
        return all(params == first for params in self.parameters[1:])

    def init_recordings(self) -> None:
        self.recordings = {signal: [[] for _ in range(self.size)] for signal in sorted(self.record)}

    def clear_recordings(self) -> None:
        self.recordings = {}

    def add_spikes(self, neuron: int, times: Iterable[float]) -> None:
        self.recordings["spikes"][neuron].extend(times)

    def add_samples(self, signal: str, neuron: int, samples: Iterable[tuple[float, float]]) -> None:
        self.recordings[signal][neuron].extend(samples)

    def spikes(self, neuron: int) -> list[float]:
        return self._signal("spikes", neuron)

    def trace(self, signal: str, neuron: int) -> list[tuple[float, float]]:
        return self._signal(signal, neuron)

    def _signal(self, signal: str, neuron: int) -> list[Any]:
        if signal not in self.record:
            raise ValueError(f"Population '{self.name}' does not record '{signal}'")
        if not 0 <= neuron < self.size:
            raise IndexError(f"Neuron index {neuron} out of range for population '{self.name}'")
        data = self.recordings.get(signal)
        if data is None:
            return []
        return data[neuron]


@dataclass(frozen=True, slots=True)
class Connection:
    source: int
    target: int
    connector: Connector


class Network:
    """Fluent builder and container for a network description."""

    def __init__(self) -> None:
        self._populations: list[Population] = []
        self._by_name: dict[str, Population] = {}
        self._connections: list[Connection] = []

    @property
    def populations(self) -> tuple[Population, ...]:
        return tuple(self._populations)

    @property
    def connections(self) -> tuple[Connection, ...]:
        return tuple(self._connections)

    def population(
        self,
        name: str,
        size: int,
        *,
        type: str | NeuronType,
        params: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
        record: Iterable[str] = (),
    ) -> Network:
        if name in self._by_name:
            raise ValueError(f"Population '{name}' already exists")
        if int(size) < 1:
            raise ValueError("Population size must be at least 1")
        size = int(size)
        ntype = neuron_type(type)

        if params is None or isinstance(params, Mapping):
            shared = ntype.resolve_parameters(params)
            parameters = tuple(dict(shared) for _ in range(size))
        else:
            if len(params) != size:
                raise ValueError(
                    f"Expected {size} parameter records for '{name}', got {len(params)}"
                )
            parameters = tuple(ntype.resolve_parameters(item) for item in params)

        signals = frozenset(record)
        unsupported = sorted(signals - ntype.signals)
        if unsupported:
            raise ValueError(
                f"Neuron type {ntype.tag} cannot record: {', '.join(unsupported)}"
            )

        pop = Population(
            pid=len(self._populations),
            name=name,
            type=ntype,
            size=size,
            parameters=parameters,
            record=signals,
        )
        self._populations.append(pop)
        self._by_name[name] = pop
        return self

    def connect(self, source: str, target: str, connector: Connector) -> Network:
        src = self._lookup(source, role="source")
        tgt = self._lookup(target, role="target")
        if tgt.type.is_source:
            raise ValueError(f"Population '{target}' is a spike source and cannot receive input")
        connector.validate(src.size, tgt.size)
        self._connections.append(Connection(source=src.pid, target=tgt.pid, connector=connector))
        return self

    def __getitem__(self, name: str) -> Population:
        return self._lookup(name, role="requested")

    def neuron_types(self) -> frozenset[str]:
        return frozenset(pop.type.tag for pop in self._populations)

    def clear_recordings(self) -> None:
        for pop in self._populations:
            pop.clear_recordings()

    def init_recordings(self) -> None:
        for pop in self._populations:
            pop.init_recordings()

    def run(
        self,
        backend: IBackend | str,
        duration: float,
        *,
        setup: Mapping[str, Any] | None = None,
    ) -> RunReport:
        if isinstance(backend, str):
            from neurobridge.backends.registry import make_backend

            backend = make_backend(backend, setup)
        return backend.run(self, duration)

    def _lookup(self, name: str, *, role: str) -> Population:
        try:
            return self._by_name[name]
        except KeyError:
            raise ValueError(f"Unknown {role} population '{name}'") from None


__all__ = ["Population", "Connection", "Network"]
