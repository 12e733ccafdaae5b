"""Connection rules between populations."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Literal, NamedTuple

ConnectorKind = Literal["all_to_all", "one_to_one", "fixed_probability", "from_list"]


class Synapse(NamedTuple):
    src: int
    tgt: int
    weight: float
    delay: float


@dataclass(frozen=True, slots=True)
class Connector:
    """Weight/delay generation rule.

    Weights follow PyNN units (uS for conductance-based targets, nA for
    current-based ones); delays are in ms.
    """

    kind: ConnectorKind
    weight: float = 0.0
    delay: float = 1.0
    p: float | None = None
    seed: int | None = None
    allow_self: bool = True
    synapses: tuple[Synapse, ...] = ()

    @staticmethod
    def all_to_all(weight: float, delay: float = 1.0, *, allow_self: bool = True) -> Connector:
        return Connector(
            kind="all_to_all", weight=float(weight), delay=float(delay), allow_self=allow_self
        )

    @staticmethod
    def one_to_one(weight: float, delay: float = 1.0) -> Connector:
        return Connector(kind="one_to_one", weight=float(weight), delay=float(delay))

    @staticmethod
    def fixed_probability(
        p: float,
        weight: float,
        delay: float = 1.0,
        *,
        seed: int | None = None,
        allow_self: bool = True,
    ) -> Connector:
        """Connect each pair independently with probability ``p``.

        ``seed`` makes the draw repeatable. The torch backend seeds a generator
        per connection; NEST only has kernel-wide generators, so the first
        seeded connection of a network seeds them for the whole run.
        """

        if not 0.0 <= p <= 1.0:
            raise ValueError("p must be within [0, 1]")
        return Connector(
            kind="fixed_probability",
            weight=float(weight),
            delay=float(delay),
            p=float(p),
            seed=seed,
            allow_self=allow_self,
        )

    @staticmethod
    def from_list(synapses: Iterable[tuple[int, int, float, float] | Synapse]) -> Connector:
        items = tuple(
            Synapse(int(src), int(tgt), float(weight), float(delay))
            for src, tgt, weight, delay in synapses
        )
        return Connector(kind="from_list", synapses=items)

    def validate(self, n_src: int, n_tgt: int) -> None:
        if self.kind == "one_to_one" and n_src != n_tgt:
            raise ValueError(
                f"one_to_one requires equal population sizes (got {n_src} and {n_tgt})"
            )
        if self.kind == "from_list":
            for syn in self.synapses:
                if not 0 <= syn.src < n_src:
                    raise ValueError(f"from_list source index {syn.src} out of range")
                if not 0 <= syn.tgt < n_tgt:
                    raise ValueError(f"from_list target index {syn.tgt} out of range")
                if syn.delay < 0:
                    raise ValueError("from_list delays must be non-negative")
        elif self.delay < 0:
            raise ValueError("delay must be non-negative")

    def expand(self, n_src: int, n_tgt: int, *, same_population: bool = False) -> Iterator[Synapse]:
        """Yield explicit synapses for the deterministic rules.

        ``fixed_probability`` is sampled by the executing engine and cannot be
        expanded here.
        """

        if self.kind == "all_to_all":
            for src in range(n_src):
                for tgt in range(n_tgt):
                    if same_population and not self.allow_self and src == tgt:
                        continue
                    yield Synapse(src, tgt, self.weight, self.delay)
        elif self.kind == "one_to_one":
            for idx in range(min(n_src, n_tgt)):
                yield Synapse(idx, idx, self.weight, self.delay)
        elif self.kind == "from_list":
            yield from self.synapses
        else:
            raise ValueError(f"Connector '{self.kind}' is sampled by the engine")


__all__ = ["Connector", "ConnectorKind", "Synapse"]
