"""
Deterministic in-memory register store for runner tests.

Satisfies the Client interface without any HTTP. All clients opened from one
FakeRegisterClient share one FakeRegisterStore, so histories produced
against it are linearizable unless a test injects anomalies.
"""

from dataclasses import dataclass, field

from etcdemo.client.base import Client, ClientState, classify_timeout
from etcdemo.errors import ClientStateError, EtcdClientError
from etcdemo.history.models import ErrorKind, Op, OpFunction, OpType


@dataclass
class FakeRegisterStore:
    """Shared state and failure injection."""

    values: dict[int, int] = field(default_factory=dict)
    calls: int = 0
    timeout_calls: set[int] = field(default_factory=set)  # 1-based call numbers
    fatal_calls: set[int] = field(default_factory=set)
    stale_reads: bool = False  # Reads return the value before the last write
    previous: dict[int, int | None] = field(default_factory=dict)


class FakeRegisterClient(Client):
    """
    Fake etcd client for integration tests.

    Timed-out writes and cas are still applied, as a real request that timed
    out on the client may have been.
    """

    def __init__(self, store: FakeRegisterStore | None = None) -> None:
        self.store = store or FakeRegisterStore()
        self.node: str | None = None
        self.state = ClientState.UNOPENED
        self.opened: list["FakeRegisterClient"] = []

    # -- Client interface --

    def open(self, node: str) -> "FakeRegisterClient":
        bound = FakeRegisterClient(self.store)
        bound.node = node
        bound.state = ClientState.OPEN
        self.opened.append(bound)
        return bound

    async def close(self) -> None:
        if self.state == ClientState.OPEN:
            self.state = ClientState.CLOSED

    async def invoke(self, op: Op) -> Op:
        if self.state != ClientState.OPEN:
            raise ClientStateError(f"Client is {self.state.value}, not open")

        self.store.calls += 1
        call = self.store.calls
        if call in self.store.fatal_calls:
            raise EtcdClientError(f"{self.node}: injected failure", status_code=500)

        completion = self._apply(op)
        if call in self.store.timeout_calls:
            return op.complete(classify_timeout(op.f), error=ErrorKind.TIMEOUT)
        return completion

    def _apply(self, op: Op) -> Op:
        values = self.store.values
        current = values.get(op.key)

        if op.f == OpFunction.READ:
            if self.store.stale_reads and op.key in self.store.previous:
                current = self.store.previous[op.key]
            return op.complete(OpType.OK, value=current, keep_value=False)

        if op.f == OpFunction.WRITE:
            self.store.previous[op.key] = current
            values[op.key] = op.value
            return op.complete(OpType.OK)

        old, new = op.value
        if op.key not in values:
            return op.complete(OpType.FAIL, error=ErrorKind.NOT_FOUND)
        if current != old:
            return op.complete(OpType.FAIL)
        self.store.previous[op.key] = current
        values[op.key] = new
        return op.complete(OpType.OK)

    @property
    def closed_count(self) -> int:
        return sum(1 for c in self.opened if c.state == ClientState.CLOSED)
