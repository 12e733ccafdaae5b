"""Network description types."""

from neurobridge.network.connectors import Connector, Synapse
from neurobridge.network.network import Connection, Network, Population
from neurobridge.network.neurons import (
    EIF_COND_EXP_ISFA_ISTA,
    IF_COND_EXP,
    IF_CURR_EXP,
    NEURON_TYPES,
    SPIKE_SOURCE_ARRAY,
    NeuronType,
    neuron_type,
)

__all__ = [
    "Connector",
    "Synapse",
    "Connection",
    "Network",
    "Population",
    "NeuronType",
    "NEURON_TYPES",
    "SPIKE_SOURCE_ARRAY",
    "IF_COND_EXP",
    "IF_CURR_EXP",
    "EIF_COND_EXP_ISFA_ISTA",
    "neuron_type",
]
