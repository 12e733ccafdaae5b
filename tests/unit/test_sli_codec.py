from __future__ import annotations

import io
import logging

import pytest

pytestmark = pytest.mark.unit

from neurobridge.api.presets import make_simple_network
from neurobridge.backends.config import NestConfig
from neurobridge.backends.sli import read_response, render_script, write_network
from neurobridge.core.errors import ProtocolParseError
from neurobridge.network import Connector, Network


def _network(*, record_v: bool = False) -> Network:
    return make_simple_network(weight=0.5, record_v=record_v)


def test_render_is_deterministic() -> None:
    params = NestConfig()
    assert render_script(_network(), 400.0, params) == render_script(_network(), 400.0, params)


def test_write_network_matches_render() -> None:
    stream = io.StringIO()
    write_network(stream, _network(), 400.0, NestConfig())
    assert stream.getvalue() == render_script(_network(), 400.0, NestConfig())


def test_script_layout() -> None:
    script = render_script(_network(), 400.0, NestConfig())
    lines = script.splitlines()
    assert lines[1] == "ResetKernel"
    assert lines[2] == "0 << /overwrite_files true /resolution 0.1 >> SetStatus"
    assert "/nb_dump_spikes" in script
    assert "/spike_generator 1 Create /nb_pop_0 Set" in lines
    assert "1 << /spike_times [100.0 200.0 300.0] >> SetStatus" in lines
    assert "/iaf_cond_exp 4 Create /nb_pop_1 Set" in lines
    assert "[1 1] Range [nb_sd_0] /all_to_all Connect" in lines
    assert "[2 5] Range [nb_sd_1] /all_to_all Connect" in lines
    assert (
        "[1 1] Range [2 5] Range << /rule /all_to_all >> "
        "<< /delay 1.0 /model /static_synapse /weight 500.0 >> Connect"
    ) in lines
    assert "400.0 Simulate" in lines
    assert lines[-2:] == [
        "nb_sd_0 0 1 1 nb_dump_spikes",
        "nb_sd_1 1 2 4 nb_dump_spikes",
    ]

    order = [
        script.index("Create /nb_pop_1"),
        script.index("/spike_detector"),
        script.index("/rule /all_to_all"),
        script.index("Simulate\n"),
        script.index(" 1 1 nb_dump_spikes\n"),
    ]
    assert order == sorted(order)


def test_homogeneous_parameters_use_one_block() -> None:
    lines = render_script(_network(), 10.0, NestConfig()).splitlines()
    block = next(line for line in lines if line.startswith("[2 5] Range {"))
    assert block.endswith("SetStatus } forall")
    assert "/E_L -60.0" in block
    assert "/C_m 1000.0" in block
    assert "/g_L 50.0" in block


def test_heterogeneous_parameters_are_set_per_neuron() -> None:
    net = Network().population(
        "cells",
        2,
        type="if_curr_exp",
        params=[{"v_thresh": -55.0}, {"v_thresh": -52.0}],
    )
    lines = render_script(net, 10.0, NestConfig()).splitlines()
    assert any(line.startswith("1 << ") and "/V_th -55.0" in line for line in lines)
    assert any(line.startswith("2 << ") and "/V_th -52.0" in line for line in lines)
    assert not any("forall" in line for line in lines)


def test_kernel_threads_and_record_interval() -> None:
    params = NestConfig(threads=4, record_interval=0.5)
    lines = render_script(_network(record_v=True), 10.0, params).splitlines()
    assert "0 << /local_num_threads 4 /overwrite_files true /resolution 0.1 >> SetStatus" in lines
    multimeter = next(line for line in lines if line.startswith("/multimeter"))
    assert "/interval 0.5" in multimeter
    assert "[nb_mm_1] [2 5] Range /all_to_all Connect" in lines
    assert lines[-1] == "nb_mm_1 1 2 4 nb_dump_v"


def _seeded_network(seed: int | None) -> Network:
    return (
        Network()
        .population("a", 3, type="if_curr_exp")
        .connect("a", "a", Connector.fixed_probability(0.2, 0.5, seed=seed))
    )


def test_fixed_probability_seed_reaches_kernel() -> None:
    lines = render_script(_seeded_network(7), 10.0, NestConfig()).splitlines()
    assert "0 << /grng_seed 7 /overwrite_files true /resolution 0.1 /rng_seeds [8] >> SetStatus" in lines


def test_kernel_seeds_cover_every_thread() -> None:
    lines = render_script(_seeded_network(7), 10.0, NestConfig(threads=2)).splitlines()
    assert (
        "0 << /grng_seed 7 /local_num_threads 2 /overwrite_files true /resolution 0.1 /rng_seeds [8 9] >> SetStatus"
        in lines
    )


def test_unseeded_network_leaves_kernel_rngs_alone() -> None:
    script = render_script(_seeded_network(None), 10.0, NestConfig())
    assert "grng_seed" not in script
    assert "rng_seeds" not in script


def test_connection_rules() -> None:
    net = (
        Network()
        .population("a", 3, type="if_curr_exp")
        .population("b", 3, type="if_curr_exp")
        .connect("a", "b", Connector.one_to_one(0.25, 2.0))
        .connect("a", "a", Connector.fixed_probability(0.2, -0.5, allow_self=False))
        .connect("b", "a", Connector.from_list([(0, 2, 0.25, 0.01)]))
    )
    lines = render_script(net, 10.0, NestConfig()).splitlines()
    assert (
        "[1 3] Range [4 6] Range << /rule /one_to_one >> "
        "<< /delay 2.0 /model /static_synapse /weight 250.0 >> Connect"
    ) in lines
    assert (
        "[1 3] Range [1 3] Range << /autapses false /p 0.2 /rule /pairwise_bernoulli >> "
        "<< /delay 1.0 /model /static_synapse /weight -500.0 >> Connect"
    ) in lines
    # delays below the resolution are raised to one timestep
    assert "4 3 250.0 0.1 Connect" in lines


def _recording_network() -> Network:
    net = (
        Network()
        .population("src", 1, type="spike_source_array", params={"spike_times": [1.0]}, record=["spikes"])
        .population("cells", 3, type="if_cond_exp", record=["spikes", "v"])
        .connect("src", "cells", Connector.all_to_all(0.1))
    )
    net.init_recordings()
    return net


def test_read_response_merges_records_in_arrival_order() -> None:
    net = _recording_network()
    text = (
        "RESULT spikes 0 0 1.0\n"
        "RESULT spikes 1 2 5.0 3.0\n"
        "RESULT spikes 1 2 4.0\n"
        "RESULT spikes 1 0\n"
        "RESULT v 1 1 0.1 -65.0 0.2 -64.5\n"
    )
    summary = read_response(io.StringIO(text), net)
    assert summary.records == 5
    assert summary.diagnostics == 0
    assert net["src"].spikes(0) == [1.0]
    assert net["cells"].spikes(2) == [5.0, 3.0, 4.0]
    assert net["cells"].spikes(0) == []
    assert net["cells"].trace("v", 1) == [(0.1, -65.0), (0.2, -64.5)]


def test_read_response_classifies_diagnostics() -> None:
    net = _recording_network()
    seen: list[tuple[int, str]] = []
    text = (
        "Jan 01 00:00:00 NodeManager [Info]: \n"
        "    Created 3 nodes.\n"
        "RESULTS are not records\n"
        "\n"
        "Jan 01 00:00:00 Simulate [Error]: \n"
        "    Something failed.\n"
        "Jan 01 00:00:00 Kernel [Warning]: careful\n"
    )
    summary = read_response(io.StringIO(text), net, on_diagnostic=lambda level, line: seen.append((level, line)))
    assert summary.records == 0
    assert summary.diagnostics == 6
    assert [level for level, _ in seen] == [
        logging.INFO,
        logging.INFO,
        logging.DEBUG,
        logging.ERROR,
        logging.ERROR,
        logging.WARNING,
    ]
    assert summary.errors == ["Jan 01 00:00:00 Simulate [Error]:", "Something failed."]


def test_read_response_logs_through_logging(caplog: pytest.LogCaptureFixture) -> None:
    net = _recording_network()
    with caplog.at_level(logging.DEBUG, logger="neurobridge.backends.sli"):
        read_response(io.StringIO("Jan 01 Kernel [Warning]: careful\n"), net)
    assert any(rec.levelno == logging.WARNING and "careful" in rec.getMessage() for rec in caplog.records)


@pytest.mark.parametrize(
    ("line", "fragment"),
    [
        ("RESULT spikes 1", "truncated"),
        ("RESULT spikes x 0 1.0", "population index"),
        ("RESULT spikes 0 y 1.0", "neuron index"),
        ("RESULT spikes 7 0 1.0", "unknown population"),
        ("RESULT spikes 1 3 1.0", "out of range"),
        ("RESULT spikes 1 0 1.0 nan? ", "invalid number"),
        ("RESULT v 0 0 0.1 -65.0", "did not request"),
        ("RESULT v 1 0 0.1 -65.0 0.2", "odd number"),
    ],
)
def test_malformed_records_raise(line: str, fragment: str) -> None:
    net = _recording_network()
    with pytest.raises(ProtocolParseError) as excinfo:
        read_response(io.StringIO("Jan 01 Kernel [Info]: ok\n" + line + "\n"), net)
    assert fragment in str(excinfo.value)
    assert excinfo.value.line_no == 2
    assert excinfo.value.line == line
