"""
Test runner.

Wires one run together: installs the store on every node, runs the client
workers and the fault scheduler against a shared history until the workload
is exhausted or the time limit expires, tears everything down, then checks
the history and writes the run's artefacts.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from etcdemo.checker import RunAnalysis, Validity, analyze
from etcdemo.client.base import Client
from etcdemo.client.etcd import EtcdClient
from etcdemo.cluster.db import ClusterDB, EtcdDB
from etcdemo.cluster.remote import CommandRemote
from etcdemo.config import Settings
from etcdemo.errors import EtcdemoError, RunAborted
from etcdemo.history.models import ErrorKind, Op, OpType
from etcdemo.history.store import History, read_jsonl
from etcdemo.logging import clear_run_id, get_logger, set_run_id
from etcdemo.nemesis.net import IptablesNet
from etcdemo.nemesis.partition import ClusterState, Nemesis, PartitionRandomHalves
from etcdemo.nemesis.schedule import FaultScheduler
from etcdemo.runtime.artefacts import ArtefactManager
from etcdemo.runtime.run_context import RunContext
from etcdemo.workload.generator import Stagger
from etcdemo.workload.independent import IndependentWorkload

logger = get_logger(__name__)


@dataclass
class RunOutcome:
    """What a finished run or check produced."""

    context: RunContext
    ops: list[Op]
    analysis: RunAnalysis
    run_dir: Path
    aborted: str | None = None

    @property
    def valid(self) -> Validity:
        """
        Overall verdict. An aborted run can still be shown invalid, but a
        clean check of a truncated history proves nothing.
        """
        if self.aborted and self.analysis.valid != Validity.INVALID:
            return Validity.UNKNOWN
        return self.analysis.valid


class HarnessRunner:
    """
    Runs the workload and nemesis for one test.

    All workers and the scheduler run as tasks on one event loop and share
    one History.
    """

    def __init__(
        self,
        settings: Settings,
        client: Client,
        db: ClusterDB | None = None,
        nemesis: Nemesis | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize runner.

        Args:
            settings: Run settings
            client: Unopened client template; each worker opens its own
            db: Store lifecycle (None when the cluster is managed elsewhere)
            nemesis: Fault injector (None runs without faults)
            rng: Seeds the workload, stagger and nemesis
            clock: Seconds clock (default: loop time)
            sleep: Sleep coroutine
        """
        self._settings = settings
        self._client = client
        self._db = db
        self._nemesis = nemesis
        self._rng = rng or random.Random(settings.seed)
        self._clock = clock
        self._sleep = sleep

        self.history = History()
        self.workload = IndependentWorkload(
            key_count=settings.key_count,
            threads_per_key=settings.threads_per_key,
            ops_per_key=settings.ops_per_key,
            rng=random.Random(self._rng.getrandbits(64)),
        )
        self.scheduler: FaultScheduler | None = None
        if nemesis is not None:
            self.scheduler = FaultScheduler(
                nemesis,
                self.history,
                interval_s=settings.nemesis_interval_s,
                clock=clock,
                sleep=sleep,
            )

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    async def run(self, log_dir: Path | None = None) -> None:
        """
        Execute the test.

        Teardown (heal, close clients, collect node logs into `log_dir`, tear
        down the store) runs on every exit path.

        Raises:
            RunAborted: A worker hit a fatal client error, or the store could
                not be set up on every node
        """
        nodes = self._settings.nodes
        try:
            if self._db is not None:
                logger.info("Setting up %s on %d nodes", type(self._db).__name__, len(nodes))
                await self._setup_db()
            if self._nemesis is not None:
                await self._nemesis.setup()

            deadline = self._now() + self._settings.time_limit_s
            logger.info(
                "Starting %d workers on %d keys for up to %.1fs",
                self._settings.concurrency,
                self._settings.key_count,
                self._settings.time_limit_s,
            )

            tasks = [
                asyncio.create_task(self._worker(thread, deadline), name=f"worker-{thread}")
                for thread in range(self._settings.concurrency)
            ]
            if self.scheduler is not None:
                tasks.append(asyncio.create_task(self.scheduler.run(deadline), name="nemesis"))
            await self._await_all(tasks)

            logger.info(
                "Workload finished: %d invocations, %d fault events",
                self.workload.emitted,
                self.scheduler.events_emitted if self.scheduler else 0,
            )
        finally:
            await self._teardown(log_dir)

    async def _setup_db(self) -> None:
        """Set up every node; the first failure cancels the setups still running."""
        tasks = [
            asyncio.create_task(self._db.setup(node), name=f"setup-{node}")
            for node in self._settings.nodes
        ]
        try:
            await self._await_all(tasks)
        except (EtcdemoError, OSError) as e:
            logger.error("Setup failed: %s", e)
            raise RunAborted(f"Setup failed: {e}") from e

    async def _await_all(self, tasks: list[asyncio.Task]) -> None:
        """Wait for every task; on the first failure cancel the rest and re-raise."""
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            await self._cancel(tasks)
            raise

        failed = [task for task in done if not task.cancelled() and task.exception() is not None]
        if failed:
            await self._cancel(list(pending))
            raise failed[0].exception()

    @staticmethod
    async def _cancel(tasks: list[asyncio.Task]) -> None:
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for task, result in zip(tasks, results, strict=True):
            if isinstance(result, Exception):
                logger.warning("%s ended with %s while cancelling", task.get_name(), result)

    async def _worker(self, thread: int, deadline: float) -> None:
        """
        One worker thread.

        Starts as process `thread`. After an indeterminate completion the
        process is considered crashed, and the worker continues as process
        `process + concurrency` with a fresh client.
        """
        nodes = self._settings.nodes
        node = nodes[thread % len(nodes)]
        process = thread
        stagger = Stagger(self._settings.stagger_s, random.Random(self._rng.getrandbits(64)))
        client = self._client.open(node)

        try:
            while True:
                delay = stagger.delay()
                if delay > 0:
                    await self._sleep(min(delay, max(deadline - self._now(), 0.0)))
                if self._now() >= deadline:
                    return

                next_op = self.workload.next_invocation(thread)
                if next_op is None:
                    return
                key, invocation = next_op

                op = self.history.append(
                    Op(
                        process=process,
                        type=OpType.INVOKE,
                        f=invocation.f,
                        key=key,
                        value=invocation.value,
                    )
                )
                try:
                    completion = await client.invoke(op)
                except asyncio.CancelledError:
                    self.history.append(op.complete(OpType.INFO, error=ErrorKind.INTERRUPTED))
                    raise
                except Exception as e:
                    self.history.append(op.complete(OpType.INFO, error=ErrorKind.FATAL))
                    logger.error("Process %d fatal error on %s: %s", process, node, e)
                    raise RunAborted(str(e), process) from e

                self.history.append(completion)
                if completion.type == OpType.INFO:
                    await client.close()
                    process += self._settings.concurrency
                    client = self._client.open(node)
                    logger.debug("Worker %d continues as process %d", thread, process)

                # Yield even when stagger is disabled
                if delay <= 0:
                    await self._sleep(0)
        finally:
            await client.close()

    async def _teardown(self, log_dir: Path | None = None) -> None:
        try:
            if self.scheduler is not None:
                await self.scheduler.teardown()
            elif self._nemesis is not None:
                await self._nemesis.teardown()
        finally:
            if self._db is not None:
                try:
                    if log_dir is not None:
                        await self._collect_logs(log_dir)
                finally:
                    await self._teardown_db()

    async def _collect_logs(self, log_dir: Path) -> None:
        """Copy every node's log files to `log_dir/{node}/` before they are wiped."""
        await asyncio.gather(
            *(self._collect_node_logs(node, log_dir) for node in self._settings.nodes)
        )

    async def _collect_node_logs(self, node: str, log_dir: Path) -> None:
        for path in self._db.log_files(node):
            target = log_dir / node / Path(path).name
            try:
                text = await self._db.read_log(node, path)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(text)
            except (EtcdemoError, OSError) as e:
                logger.warning("Could not collect %s from %s: %s", path, node, e)

    async def _teardown_db(self) -> None:
        nodes = self._settings.nodes
        results = await asyncio.gather(
            *(self._db.teardown(node) for node in nodes), return_exceptions=True
        )
        for node, result in zip(nodes, results, strict=True):
            if isinstance(result, Exception):
                logger.error("Teardown failed on %s: %s", node, result)
            elif isinstance(result, BaseException):
                raise result


def build_runner(settings: Settings) -> HarnessRunner:
    """Build a runner against a real cluster reached through `remote_prefix`."""
    rng = random.Random(settings.seed)
    remote = CommandRemote(settings.remote_prefix)
    db = EtcdDB(
        remote,
        settings.nodes,
        version=settings.etcd_version,
        settle_s=settings.db_settle_s,
        peer_port=settings.peer_port,
        client_port=settings.client_port,
    )
    nemesis = PartitionRandomHalves(
        IptablesNet(remote),
        ClusterState(settings.nodes),
        rng=random.Random(rng.getrandbits(64)),
    )
    client = EtcdClient(timeout_s=settings.client_timeout_s, client_port=settings.client_port)
    return HarnessRunner(settings, client, db=db, nemesis=nemesis, rng=rng)


async def run_test(settings: Settings, runner: HarnessRunner | None = None) -> RunOutcome:
    """
    Run a test end to end and write its artefacts.

    A fatal client error or a failed store setup aborts the run, but the
    partial history is still checked and saved, with verdict unknown unless
    it is already invalid.
    """
    runner = runner or build_runner(settings)
    artefacts = ArtefactManager(settings.data_dir)
    context = RunContext.create_test(settings.get_redacted_config())
    run_dir = artefacts.create_run_directory(context)
    set_run_id(context.run_id)

    aborted: str | None = None
    try:
        logger.info("Run %s writing to %s", context.run_id, run_dir)
        try:
            await runner.run(log_dir=run_dir / "logs")
        except RunAborted as e:
            aborted = str(e)
            logger.error("Run aborted: %s", e)
        finally:
            ops = runner.history.ops
            artefacts.save_history(ops, run_dir)

        analysis = analyze(
            ops,
            time_limit_s=settings.check_time_limit_s,
            workers=settings.check_workers,
        )
        artefacts.save_analysis(ops, analysis, run_dir)

        outcome = RunOutcome(context, ops, analysis, run_dir, aborted=aborted)
        context.mark_completed(valid=outcome.valid.value, error=aborted)
        artefacts.save_config(context, run_dir)
        logger.info("Run %s: %s", context.run_id, outcome.valid.value)
        return outcome
    finally:
        clear_run_id()


def check_history(settings: Settings, history_path: Path) -> RunOutcome:
    """Re-check a stored history.jsonl and write fresh artefacts."""
    artefacts = ArtefactManager(settings.data_dir)
    context = RunContext.create_check(history_path, settings.get_redacted_config())
    run_dir = artefacts.create_run_directory(context)
    set_run_id(context.run_id)

    try:
        ops = read_jsonl(history_path)
        logger.info("Checking %d records from %s", len(ops), history_path)
        artefacts.save_history(ops, run_dir)
        analysis = analyze(
            ops,
            time_limit_s=settings.check_time_limit_s,
            workers=settings.check_workers,
        )
        artefacts.save_analysis(ops, analysis, run_dir)

        outcome = RunOutcome(context, ops, analysis, run_dir)
        context.mark_completed(valid=outcome.valid.value)
        artefacts.save_config(context, run_dir)
        logger.info("Check %s: %s", context.run_id, outcome.valid.value)
        return outcome
    finally:
        clear_run_id()
