"""Backend error taxonomy.

Every failure a backend can surface derives from :class:`BackendError`, so
callers may catch the whole family or a single kind.
"""

from __future__ import annotations


class BackendError(RuntimeError):
    """Base class for all backend failures."""


class EngineNotFoundError(BackendError):
    """The external engine is not installed or reported an unparsable version."""


class SpawnError(BackendError):
    """The operating system could not create the engine child process."""


class ExecutionError(BackendError):
    """The engine exited with a non-zero status."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None = None,
        diagnostics: str = "",
    ) -> None:
        self.exit_code = exit_code
        self.diagnostics = diagnostics
        text = message
        if exit_code is not None:
            text = f"{text} (exit code {exit_code})"
        if diagnostics:
            text = f"{text}:\n{diagnostics}"
        super().__init__(text)


class ProtocolParseError(BackendError):
    """The engine output contained a result record that could not be interpreted."""

    def __init__(self, message: str, *, line: str | None = None, line_no: int | None = None) -> None:
        self.line = line
        self.line_no = line_no
        text = message
        if line_no is not None:
            text = f"line {line_no}: {text}"
        if line is not None:
            text = f"{text}: {line!r}"
        super().__init__(text)


class ConfigurationError(BackendError, ValueError):
    """A backend setup field failed validation."""


class UnknownBackendError(BackendError, KeyError):
    """No backend is registered under the requested name."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class UnsupportedNeuronTypeError(BackendError):
    """The network uses a neuron type the selected backend cannot simulate."""


__all__ = [
    "BackendError",
    "EngineNotFoundError",
    "SpawnError",
    "ExecutionError",
    "ProtocolParseError",
    "ConfigurationError",
    "UnknownBackendError",
    "UnsupportedNeuronTypeError",
]
