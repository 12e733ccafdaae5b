"""Pytest configuration."""

from __future__ import annotations

import os
import tempfile
import uuid
from pathlib import Path

import pytest

from neurobridge.backends.discovery import reset_shared_discoveries


def _pytest_base_dir() -> Path:
    root = os.environ.get("PYTEST_BASEDIR")
    repo_root = Path(__file__).resolve().parents[1]
    base = Path(root) if root else repo_root / ".pytest_tmp"
    base = _ensure_writable_base(base, fallback=repo_root / ".pytest_tmp")
    return base


def _ensure_writable_base(base: Path, *, fallback: Path) -> Path:
    try:
        base.mkdir(parents=True, exist_ok=True)
        marker = base / "__write_check__"
        marker.mkdir(parents=True, exist_ok=True)
        marker.rmdir()
        return base
    except OSError:
        fallback.mkdir(parents=True, exist_ok=True)
        return fallback


def pytest_configure(config) -> None:
    """Ensure pytest uses a writable base temp directory outside the repo."""
    if config.option.basetemp is None:
        base = _pytest_base_dir() / "tmp" / uuid.uuid4().hex
        try:
            base.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            base = Path(tempfile.gettempdir()) / "neurobridge_pytest" / "tmp"
            base.mkdir(parents=True, exist_ok=True)
        config.option.basetemp = str(base)


@pytest.fixture
def tmp_path() -> Path:
    base = _ensure_writable_base(_pytest_base_dir() / "tmp_path", fallback=_pytest_base_dir())
    run_dir = base / uuid.uuid4().hex
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


@pytest.fixture(autouse=True)
def _fresh_discoveries():
    reset_shared_discoveries()
    yield
    reset_shared_discoveries()


@pytest.fixture
def fake_nest(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Path to an executable stand-in for the ``nest`` binary."""

    from tests.support.engines import write_fake_nest

    monkeypatch.delenv("FAKE_NEST_MODE", raising=False)
    monkeypatch.delenv("FAKE_NEST_BANNER", raising=False)
    return write_fake_nest(tmp_path / "bin")


@pytest.fixture
def nest_setup(fake_nest: Path) -> dict[str, str]:
    return {"executable": str(fake_nest)}
