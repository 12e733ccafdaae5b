"""Neuron type catalogue.

Parameters are expressed in PyNN conventions (mV, ms, nF, uS, nA). Each type
knows how to translate its parameters into the names and units NEST expects.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

# PyNN name -> (NEST name, scale)
NestNameMap = Mapping[str, tuple[str, float]]
DerivedFn = Callable[[Mapping[str, Any]], Mapping[str, float]]


def _membrane_leak(params: Mapping[str, Any]) -> Mapping[str, float]:
    # NEST conductance models take the leak conductance instead of tau_m.
    return {"g_L": 1000.0 * float(params["cm"]) / float(params["tau_m"])}


def _no_derived(params: Mapping[str, Any]) -> Mapping[str, float]:
    _ = params
    return {}


@dataclass(frozen=True, slots=True)
class NeuronType:
    tag: str
    nest_model: str
    defaults: Mapping[str, Any]
    nest_names: NestNameMap = field(default_factory=dict)
    derived: DerivedFn = _no_derived
    signals: frozenset[str] = frozenset({"spikes"})
    conductance_based: bool = False
    is_source: bool = False

    def resolve_parameters(self, overrides: Mapping[str, Any] | None) -> dict[str, Any]:
        """Merge ``overrides`` into the defaults, rejecting unknown names."""

        params = dict(self.defaults)
        if not overrides:
            return params
        unknown = sorted(set(overrides) - set(self.defaults))
        if unknown:
            raise ValueError(f"Unknown parameter(s) for {self.tag}: {', '.join(unknown)}")
        for key, value in overrides.items():
            if key == "spike_times":
                params[key] = _spike_times(value)
            else:
                params[key] = float(value)
        return params

    def to_nest(self, params: Mapping[str, Any]) -> dict[str, float]:
        out: dict[str, float] = {}
        for key, (nest_name, scale) in self.nest_names.items():
            out[nest_name] = float(params[key]) * scale
        out.update(self.derived(params))
        return out


def _spike_times(value: Any) -> tuple[float, ...]:
    times = tuple(float(t) for t in value)
    for prev, cur in zip(times, times[1:], strict=False):
        if cur < prev:
            raise ValueError("spike_times must be non-decreasing")
    return times


SPIKE_SOURCE_ARRAY = NeuronType(
    tag="spike_source_array",
    nest_model="spike_generator",
    defaults=MappingProxyType({"spike_times": ()}),
    is_source=True,
)

IF_COND_EXP = NeuronType(
    tag="if_cond_exp",
    nest_model="iaf_cond_exp",
    defaults=MappingProxyType(
        {
            "cm": 1.0,
            "tau_m": 20.0,
            "tau_syn_E": 5.0,
            "tau_syn_I": 5.0,
            "tau_refrac": 0.1,
            "v_rest": -65.0,
            "v_thresh": -50.0,
            "v_reset": -65.0,
            "e_rev_E": 0.0,
            "e_rev_I": -70.0,
            "i_offset": 0.0,
        }
    ),
    nest_names=MappingProxyType(
        {
            "cm": ("C_m", 1000.0),
            "tau_syn_E": ("tau_syn_ex", 1.0),
            "tau_syn_I": ("tau_syn_in", 1.0),
            "tau_refrac": ("t_ref", 1.0),
            "v_rest": ("E_L", 1.0),
            "v_thresh": ("V_th", 1.0),
            "v_reset": ("V_reset", 1.0),
            "e_rev_E": ("E_ex", 1.0),
            "e_rev_I": ("E_in", 1.0),
            "i_offset": ("I_e", 1000.0),
        }
    ),
    derived=_membrane_leak,
    signals=frozenset({"spikes", "v"}),
    conductance_based=True,
)

IF_CURR_EXP = NeuronType(
    tag="if_curr_exp",
    nest_model="iaf_psc_exp",
    defaults=MappingProxyType(
        {
            "cm": 1.0,
            "tau_m": 20.0,
            "tau_syn_E": 5.0,
            "tau_syn_I": 5.0,
            "tau_refrac": 0.1,
            "v_rest": -65.0,
            "v_thresh": -50.0,
            "v_reset": -65.0,
            "i_offset": 0.0,
        }
    ),
    nest_names=MappingProxyType(
        {
            "cm": ("C_m", 1000.0),
            "tau_m": ("tau_m", 1.0),
            "tau_syn_E": ("tau_syn_ex", 1.0),
            "tau_syn_I": ("tau_syn_in", 1.0),
            "tau_refrac": ("t_ref", 1.0),
            "v_rest": ("E_L", 1.0),
            "v_thresh": ("V_th", 1.0),
            "v_reset": ("V_reset", 1.0),
            "i_offset": ("I_e", 1000.0),
        }
    ),
    signals=frozenset({"spikes", "v"}),
)

EIF_COND_EXP_ISFA_ISTA = NeuronType(
    tag="eif_cond_exp_isfa_ista",
    nest_model="aeif_cond_exp",
    defaults=MappingProxyType(
        {
            "cm": 0.281,
            "tau_m": 9.3667,
            "tau_syn_E": 5.0,
            "tau_syn_I": 5.0,
            "tau_refrac": 0.1,
            "tau_w": 144.0,
            "v_rest": -70.6,
            "v_thresh": -50.4,
            "v_reset": -70.6,
            "v_spike": -40.0,
            "e_rev_E": 0.0,
            "e_rev_I": -80.0,
            "a": 4.0,
            "b": 0.0805,
            "delta_T": 2.0,
            "i_offset": 0.0,
        }
    ),
    nest_names=MappingProxyType(
        {
            "cm": ("C_m", 1000.0),
            "tau_syn_E": ("tau_syn_ex", 1.0),
            "tau_syn_I": ("tau_syn_in", 1.0),
            "tau_refrac": ("t_ref", 1.0),
            "tau_w": ("tau_w", 1.0),
            "v_rest": ("E_L", 1.0),
            "v_thresh": ("V_th", 1.0),
            "v_reset": ("V_reset", 1.0),
            "v_spike": ("V_peak", 1.0),
            "e_rev_E": ("E_ex", 1.0),
            "e_rev_I": ("E_in", 1.0),
            "a": ("a", 1.0),
            "b": ("b", 1000.0),
            "delta_T": ("Delta_T", 1.0),
            "i_offset": ("I_e", 1000.0),
        }
    ),
    derived=_membrane_leak,
    signals=frozenset({"spikes", "v"}),
    conductance_based=True,
)

NEURON_TYPES: Mapping[str, NeuronType] = MappingProxyType(
    {
        nt.tag: nt
        for nt in (SPIKE_SOURCE_ARRAY, IF_COND_EXP, IF_CURR_EXP, EIF_COND_EXP_ISFA_ISTA)
    }
)


def neuron_type(key: str | NeuronType) -> NeuronType:
    if isinstance(key, NeuronType):
        return key
    try:
        return NEURON_TYPES[key]
    except KeyError:
        known = ", ".join(sorted(NEURON_TYPES))
        raise KeyError(f"Unknown neuron type '{key}'. Known types: {known}") from None


__all__ = [
    "NeuronType",
    "SPIKE_SOURCE_ARRAY",
    "IF_COND_EXP",
    "IF_CURR_EXP",
    "EIF_COND_EXP_ISFA_ISTA",
    "NEURON_TYPES",
    "neuron_type",
]
