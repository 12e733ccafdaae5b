"""Backend setup objects.

Each backend is configured from a plain mapping. Unknown keys are ignored so a
single setup dictionary can be shared between backends; recognized keys are
coerced and validated, and a bad value raises :class:`ConfigurationError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Self

from neurobridge.core.errors import ConfigurationError

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def _coerce_positive_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"'{key}' must be a number, got a boolean")
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}") from None
    if not parsed > 0.0:
        raise ConfigurationError(f"'{key}' must be positive, got {parsed}")
    return parsed


def _coerce_positive_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"'{key}' must be an integer, got a boolean")
    if isinstance(value, float) and not value.is_integer():
        raise ConfigurationError(f"'{key}' must be an integer, got {value}")
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be an integer, got {value!r}") from None
    if parsed < 1:
        raise ConfigurationError(f"'{key}' must be at least 1, got {parsed}")
    return parsed


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    raise ConfigurationError(f"'{key}' must be a boolean, got {value!r}")


def _coerce_name(key: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"'{key}' must be a non-empty string, got {value!r}")
    return value.strip()


def _pick(setup: Mapping[str, Any], key: str, *aliases: str) -> Any:
    for name in (key, *aliases):
        if name in setup:
            return setup[name]
    return None


@dataclass(frozen=True, slots=True)
class NestConfig:
    """Setup of the NEST process backend (times in ms)."""

    timestep: float = 0.1
    record_interval: float | None = None
    threads: int | None = None
    executable: str = "nest"

    @classmethod
    def from_setup(cls, setup: Mapping[str, Any] | None = None) -> Self:
        setup = setup or {}
        kwargs: dict[str, Any] = {}
        if (value := _pick(setup, "timestep")) is not None:
            kwargs["timestep"] = _coerce_positive_float("timestep", value)
        if (value := _pick(setup, "record_interval")) is not None:
            kwargs["record_interval"] = _coerce_positive_float("record_interval", value)
        if (value := _pick(setup, "threads")) is not None:
            kwargs["threads"] = _coerce_positive_int("threads", value)
        if (value := _pick(setup, "executable")) is not None:
            kwargs["executable"] = _coerce_name("executable", value)
        return cls(**kwargs)


@dataclass(frozen=True, slots=True)
class TorchConfig:
    """Setup of the compiled torch device backend (times in ms)."""

    timestep: float = 0.1
    gpu: bool = False
    double_precision: bool = False
    timing: bool = False
    keep_compiled_artifacts: bool = False
    recording_buffer_size: int = 10000

    @classmethod
    def from_setup(cls, setup: Mapping[str, Any] | None = None) -> Self:
        setup = setup or {}
        kwargs: dict[str, Any] = {}
        if (value := _pick(setup, "timestep")) is not None:
            kwargs["timestep"] = _coerce_positive_float("timestep", value)
        if (value := _pick(setup, "gpu")) is not None:
            kwargs["gpu"] = _coerce_bool("gpu", value)
        if (value := _pick(setup, "double_precision", "double")) is not None:
            kwargs["double_precision"] = _coerce_bool("double_precision", value)
        if (value := _pick(setup, "timing")) is not None:
            kwargs["timing"] = _coerce_bool("timing", value)
        if (value := _pick(setup, "keep_compiled_artifacts", "keep_compile")) is not None:
            kwargs["keep_compiled_artifacts"] = _coerce_bool("keep_compiled_artifacts", value)
        if (value := _pick(setup, "recording_buffer_size")) is not None:
            kwargs["recording_buffer_size"] = _coerce_positive_int("recording_buffer_size", value)
        return cls(**kwargs)


__all__ = ["NestConfig", "TorchConfig"]
