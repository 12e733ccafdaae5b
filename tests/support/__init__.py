from __future__ import annotations

from .engines import EchoBackend, counting_runner, write_fake_nest

__all__ = ["EchoBackend", "counting_runner", "write_fake_nest"]
