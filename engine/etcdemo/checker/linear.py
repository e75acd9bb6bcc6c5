"""
Linearizability checking for a single-object history.

Uses just-in-time linearization: walk the history's call/return events in
real-time order, tentatively linearizing operations at their call events and
backtracking whenever a return event is reached for an operation that has
not been linearized yet. Explored (linearized set, model state)
configurations are memoized, so each configuration is visited at most once.

Completion types map onto the search as follows:
- ok: must be linearized somewhere between its call and its return
- fail: removed; the operation provably did not happen
- info: has a call but no return; may be linearized any time after its
  call, or never
"""

import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from etcdemo.checker.model import CASRegister, Model
from etcdemo.checker.models import LinearResult, Validity
from etcdemo.history.models import Op, OpFunction, OpType
from etcdemo.logging import get_logger

logger = get_logger(__name__)

# How many search steps run between deadline checks
DEADLINE_CHECK_INTERVAL = 256


@dataclass(eq=False)
class Entry:
    """One operation as the search sees it."""

    id: int
    f: OpFunction
    value: Any
    invoke: Op
    completion: Op | None
    call: int  # Position of the invocation
    done: int | None  # Position of the completion, if any
    ret: int | None  # Position of the return event; None when indeterminate


class _Node:
    __slots__ = ("entry", "is_call", "prev", "next", "match")

    def __init__(self, entry: Entry | None, is_call: bool) -> None:
        self.entry = entry
        self.is_call = is_call
        self.prev: _Node | None = None
        self.next: _Node | None = None
        self.match: _Node | None = None


@dataclass
class _Outcome:
    valid: Validity
    configs: int
    blocking: Entry | None = None


def prepare(ops: Sequence[Op]) -> list[Entry]:
    """
    Turn a single-key history into search entries.

    Nemesis operations, fail completions and indeterminate reads are dropped.
    Invocations that never completed are treated as info.
    """
    pending: dict[int | str, int] = {}
    slots: list[list[Any]] = []

    for pos, op in enumerate(ops):
        if not op.is_client:
            continue
        if op.is_invoke:
            pending[op.process] = len(slots)
            slots.append([pos, op, None, None])
            continue
        slot = pending.pop(op.process, None)
        if slot is not None:
            slots[slot][2] = pos
            slots[slot][3] = op

    entries: list[Entry] = []
    for call, invoke, done, completion in slots:
        if completion is not None and completion.type == OpType.FAIL:
            continue

        indeterminate = completion is None or completion.type == OpType.INFO
        if indeterminate and invoke.f == OpFunction.READ:
            continue

        value = completion.value if invoke.f == OpFunction.READ else invoke.value
        entries.append(
            Entry(
                id=len(entries),
                f=invoke.f,
                value=value,
                invoke=invoke,
                completion=completion,
                call=call,
                done=done,
                ret=None if indeterminate else done,
            )
        )
    return entries


def _lift(node: _Node) -> None:
    """Unlink a call node and its return node."""
    node.prev.next = node.next
    if node.next is not None:
        node.next.prev = node.prev
    match = node.match
    if match is not None:
        match.prev.next = match.next
        if match.next is not None:
            match.next.prev = match.prev


def _unlift(node: _Node) -> None:
    """Relink a lifted call node and its return node, in reverse order."""
    match = node.match
    if match is not None:
        match.prev.next = match
        if match.next is not None:
            match.next.prev = match
    node.prev.next = node
    if node.next is not None:
        node.next.prev = node


def _build_list(entries: Sequence[Entry]) -> _Node:
    events: list[tuple[int, bool, Entry]] = []
    for entry in entries:
        events.append((entry.call, True, entry))
        if entry.ret is not None:
            events.append((entry.ret, False, entry))
    events.sort(key=lambda event: event[0])

    head = _Node(None, False)
    calls: dict[int, _Node] = {}
    prev = head
    for _, is_call, entry in events:
        node = _Node(entry, is_call)
        node.prev = prev
        prev.next = node
        prev = node
        if is_call:
            calls[entry.id] = node
        else:
            calls[entry.id].match = node
    return head


def _search(entries: Sequence[Entry], model: Model, deadline: float | None) -> _Outcome:
    head = _build_list(entries)
    remaining = sum(1 for entry in entries if entry.ret is not None)

    state = model.init()
    linearized = 0
    cache: set[tuple[int, Any]] = {(linearized, state)}
    stack: list[tuple[_Node, Any]] = []
    deepest = -1
    blocking: Entry | None = None

    node = head.next
    steps = 0
    while remaining > 0:
        steps += 1
        if (
            deadline is not None
            and steps % DEADLINE_CHECK_INTERVAL == 0
            and time.monotonic() > deadline
        ):
            return _Outcome(Validity.UNKNOWN, len(cache), blocking)

        if node is not None and node.is_call:
            entry = node.entry
            legal, next_state = model.step(state, entry.f, entry.value)
            if legal:
                config = (linearized | (1 << entry.id), next_state)
                if config not in cache:
                    cache.add(config)
                    stack.append((node, state))
                    linearized, state = config
                    _lift(node)
                    if entry.ret is not None:
                        remaining -= 1
                    node = head.next
                    continue
            node = node.next
            continue

        # A return event for an op we have not linearized: backtrack
        if node is not None and len(stack) >= deepest:
            deepest = len(stack)
            blocking = node.entry
        if not stack:
            return _Outcome(Validity.INVALID, len(cache), blocking)

        call_node, state = stack.pop()
        entry = call_node.entry
        linearized &= ~(1 << entry.id)
        _unlift(call_node)
        if entry.ret is not None:
            remaining += 1
        node = call_node.next

    return _Outcome(Validity.VALID, len(cache))


def _shrink(entries: list[Entry], model: Model, deadline: float | None) -> list[Entry]:
    """
    Greedily drop entries while the remainder stays non-linearizable.

    An entry is only dropped when no remaining entry reads or compares
    against a value it produces. Under that restriction any linearization of
    the full history restricted to the remainder is still legal, so a
    non-linearizable remainder proves the full history non-linearizable.
    """
    core = list(entries)
    for entry in sorted(entries, key=lambda e: e.call, reverse=True):
        if deadline is not None and time.monotonic() > deadline:
            break

        rest = [e for e in core if e is not entry]
        produced = model.produces(entry.f, entry.value)
        if produced is not None and any(
            model.consumes(e.f, e.value) == produced for e in rest
        ):
            continue

        if _search(rest, model, deadline).valid == Validity.INVALID:
            core = rest
    return core


def _with_context(core: list[Entry], entries: list[Entry]) -> list[Op]:
    """
    Add, for each witness entry, the latest ok operation that completed
    before it was invoked, then flatten to history records.
    """
    chosen = {entry.id: entry for entry in core}
    completed = [entry for entry in entries if entry.ret is not None]

    for entry in core:
        prior = [other for other in completed if other.ret < entry.call]
        if prior:
            previous_ok = max(prior, key=lambda other: other.ret)
            chosen.setdefault(previous_ok.id, previous_ok)

    records: list[tuple[int, Op]] = []
    for entry in chosen.values():
        records.append((entry.call, entry.invoke))
        if entry.completion is not None and entry.done is not None:
            records.append((entry.done, entry.completion))
    records.sort(key=lambda record: record[0])
    return [op for _, op in records]


def check_linearizable(
    ops: Sequence[Op],
    model: Model | None = None,
    time_limit_s: float | None = None,
) -> LinearResult:
    """
    Check one object's history for linearizability.

    Args:
        ops: History of a single key, in real-time order
        model: Sequential model (default: CAS register)
        time_limit_s: Search budget; exceeding it yields UNKNOWN

    Returns:
        LinearResult with a witness when invalid
    """
    model = model or CASRegister()
    started = time.monotonic()
    deadline = started + time_limit_s if time_limit_s is not None else None

    entries = prepare(ops)
    outcome = _search(entries, model, deadline)

    result = LinearResult(
        valid=outcome.valid,
        op_count=len(entries),
        configs_explored=outcome.configs,
    )

    if outcome.valid == Validity.INVALID:
        core = _shrink(entries, model, deadline)
        result.witness = _with_context(core, entries)
        if outcome.blocking is not None:
            result.failed_op = outcome.blocking.completion
            result.message = (
                f"{outcome.blocking.completion.describe()} could not be linearized"
            )
    elif outcome.valid == Validity.UNKNOWN:
        result.message = f"Search exceeded {time_limit_s}s after {outcome.configs} configurations"

    result.elapsed_s = round(time.monotonic() - started, 6)
    logger.debug(
        "Linearizability %s: %d ops, %d configs, %.3fs",
        result.valid.value,
        result.op_count,
        result.configs_explored,
        result.elapsed_s,
    )
    return result
