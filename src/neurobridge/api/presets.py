"""Ready-made example networks."""

from __future__ import annotations

from neurobridge.network.connectors import Connector
from neurobridge.network.network import Network


def make_simple_network(
    *,
    spike_times: tuple[float, ...] = (100.0, 200.0, 300.0),
    n_target: int = 4,
    weight: float = 0.16,
    delay: float = 1.0,
    record_v: bool = False,
) -> Network:
    """One spike source driving ``n_target`` conductance-based neurons all-to-all.

    With the defaults every target neuron fires shortly after each input spike.
    """

    target_record = ("spikes", "v") if record_v else ("spikes",)
    return (
        Network()
        .population(
            "source",
            1,
            type="spike_source_array",
            params={"spike_times": spike_times},
            record=("spikes",),
        )
        .population(
            "target", n_target, type="if_cond_exp", params={"v_rest": -60.0}, record=target_record
        )
        .connect("source", "target", Connector.all_to_all(weight, delay))
    )


def make_chain_network(
    *, length: int = 3, size: int = 2, weight: float = 5.0, delay: float = 2.0
) -> Network:
    """Source followed by ``length`` current-based populations connected one-to-one.

    ``weight`` is a current in nA; the default makes every layer fire after each
    stimulus spike.
    """

    if length < 1:
        raise ValueError("length must be at least 1")
    net = Network().population(
        "stim", size, type="spike_source_array", params={"spike_times": (10.0,)}, record=("spikes",)
    )
    previous = "stim"
    for idx in range(length):
        name = f"layer{idx}"
        net.population(name, size, type="if_curr_exp", record=("spikes",))
        net.connect(previous, name, Connector.one_to_one(weight, delay))
        previous = name
    return net


__all__ = ["make_simple_network", "make_chain_network"]
