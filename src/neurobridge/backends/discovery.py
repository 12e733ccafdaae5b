"""Cached detection of external simulator engines.

Detection shells out to the engine's own version command, which is slow, so
the outcome is computed at most once per :class:`EngineDiscovery` instance and
cached for the lifetime of the process. A negative result is cached as well:
installing the engine while the process runs is not picked up until restart.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

Runner = Callable[[Sequence[str]], tuple[int, str]]

NEST_BANNER_PREFIX = "NEST version "


@dataclass(frozen=True, slots=True)
class EngineInfo:
    """Detection outcome; ``installed`` is ``None`` until detection ran."""

    installed: bool | None = None
    version: str = ""

    @property
    def resolved(self) -> bool:
        return self.installed is not None


def run_shell(argv: Sequence[str]) -> tuple[int, str]:
    """Run ``argv`` and return its exit code and captured stdout."""

    try:
        completed = subprocess.run(
            list(argv),
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except OSError as exc:
        logger.debug("Could not run %s: %s", argv[0] if argv else "<empty>", exc)
        return 127, ""
    return completed.returncode, completed.stdout


def parse_banner(output: str, prefix: str) -> str | None:
    """Return the version following ``prefix`` or ``None`` if the banner is invalid."""

    lines = output.strip().splitlines()
    text = lines[0].strip() if lines else ""
    if len(text) <= len(prefix) or not text.startswith(prefix):
        return None
    return text[len(prefix) :]


class EngineDiscovery:
    """Lazily detects whether an engine is installed and which version it is."""

    def __init__(
        self,
        shell_command: str,
        banner_prefix: str,
        *,
        runner: Runner | None = None,
        shell: str = "sh",
    ) -> None:
        self._shell_command = shell_command
        self._banner_prefix = banner_prefix
        self._runner = runner or run_shell
        self._shell = shell
        self._lock = threading.Lock()
        self._info = EngineInfo()

    @property
    def shell_command(self) -> str:
        return self._shell_command

    def installed(self) -> bool:
        return bool(self.info().installed)

    def version(self) -> str:
        return self.info().version

    def info(self) -> EngineInfo:
        info = self._info
        if info.resolved:
            return info
        with self._lock:
            if not self._info.resolved:
                self._info = self._probe()
            return self._info

    def reset(self) -> None:
        """Forget the cached outcome. Intended for test harnesses only."""

        with self._lock:
            self._info = EngineInfo()

    def _probe(self) -> EngineInfo:
        exit_code, output = self._runner([self._shell, "-c", self._shell_command])
        if exit_code != 0:
            logger.debug(
                "Engine probe %r exited with code %s; treating engine as absent",
                self._shell_command,
                exit_code,
            )
            return EngineInfo(installed=False)
        version = parse_banner(output, self._banner_prefix)
        if version is None:
            logger.debug("Engine probe %r printed no valid banner: %r", self._shell_command, output)
            return EngineInfo(installed=False)
        logger.debug("Engine probe %r found version %s", self._shell_command, version)
        return EngineInfo(installed=True, version=version)


_SHARED_LOCK = threading.Lock()
_SHARED: dict[tuple[str, str], EngineDiscovery] = {}


def shared_discovery(shell_command: str, banner_prefix: str) -> EngineDiscovery:
    """Return the process-wide discovery object for ``shell_command``."""

    key = (shell_command, banner_prefix)
    with _SHARED_LOCK:
        discovery = _SHARED.get(key)
        if discovery is None:
            discovery = EngineDiscovery(shell_command, banner_prefix)
            _SHARED[key] = discovery
        return discovery


def reset_shared_discoveries() -> None:
    """Drop every process-wide discovery object. Intended for test harnesses only."""

    with _SHARED_LOCK:
        _SHARED.clear()


def nest_version_command(executable: str = "nest") -> str:
    return f"{shlex.quote(executable)} -v | grep -o 'NEST version [0-9.]*'"


def nest_discovery(executable: str = "nest") -> EngineDiscovery:
    return shared_discovery(nest_version_command(executable), NEST_BANNER_PREFIX)


__all__ = [
    "EngineInfo",
    "EngineDiscovery",
    "NEST_BANNER_PREFIX",
    "Runner",
    "nest_discovery",
    "nest_version_command",
    "parse_banner",
    "reset_shared_discoveries",
    "run_shell",
    "shared_discovery",
]
