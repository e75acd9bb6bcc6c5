"""
Pytest configuration and shared fixtures.
"""

import os
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from etcdemo.config import get_settings
from etcdemo.history.models import NEMESIS, Op, OpFunction, OpType
from etcdemo.history.store import History


@pytest.fixture(scope="session")
def temp_data_dir() -> Generator[Path, None, None]:
    """Create a temporary data directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Ensure no local ETCDEMO_ settings leak into tests."""
    for var in list(os.environ):
        if var.startswith("ETCDEMO_"):
            monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class HistoryBuilder:
    """
    Builds stamped histories by hand.

    Every call appends one record; `time` advances by one millisecond per
    record so latencies are deterministic.
    """

    def __init__(self) -> None:
        self._now = 0
        self.history = History(clock=self._clock)

    def _clock(self) -> int:
        value = self._now
        self._now += 1_000_000
        return value

    def invoke(self, process: int | str, f: OpFunction, value=None, key: int | None = 0) -> Op:
        if process == NEMESIS:
            key = None
        return self.history.append(Op(process=process, type=OpType.INVOKE, f=f, key=key, value=value))

    def ok(self, invocation: Op, value=None) -> Op:
        return self._complete(invocation, OpType.OK, value)

    def fail(self, invocation: Op, error: str | None = None) -> Op:
        return self.history.append(invocation.complete(OpType.FAIL, error=error))

    def info(self, invocation: Op, value=None, error: str | None = None) -> Op:
        return self.history.append(invocation.complete(OpType.INFO, value=value, error=error))

    def _complete(self, invocation: Op, type: OpType, value) -> Op:
        if invocation.f == OpFunction.READ:
            return self.history.append(invocation.complete(type, value=value, keep_value=False))
        return self.history.append(invocation.complete(type, value=value))

    @property
    def ops(self) -> list[Op]:
        return self.history.ops


@pytest.fixture
def builder() -> Callable[[], HistoryBuilder]:
    """Factory for hand-built histories."""
    return HistoryBuilder
