"""Torch utilities shared across the codebase."""

from __future__ import annotations

import importlib
from typing import Any


def require_torch() -> Any:
    try:
        return importlib.import_module("torch")
    except Exception as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("Torch is required to use the neurobridge torch backend.") from exc


def torch_available() -> bool:
    try:
        require_torch()
    except RuntimeError:
        return False
    return True


def cuda_available() -> bool:
    if not torch_available():
        return False
    return bool(require_torch().cuda.is_available())


def resolve_device_dtype(*, gpu: bool, double_precision: bool) -> tuple[Any, Any]:
    t = require_torch()
    device = t.device("cuda" if gpu else "cpu")
    dtype = _resolve_dtype(t, "float64" if double_precision else "float32")
    return device, dtype


def _resolve_dtype(t: Any, dtype_str: str | None) -> Any:
    if dtype_str is None:
        return t.get_default_dtype()
    name = dtype_str
    if name.startswith("torch."):
        name = name.split(".", 1)[1]
    if not hasattr(t, name):
        raise ValueError(f"Unknown torch dtype: {dtype_str}")
    return getattr(t, name)


__all__ = [
    "require_torch",
    "torch_available",
    "cuda_available",
    "resolve_device_dtype",
    "_resolve_dtype",
]
