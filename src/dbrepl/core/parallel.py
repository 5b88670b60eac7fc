"""Parallel execution strategy: a fixed pool of workers, one connection each."""

import logging
import queue
import threading
import time
from typing import Dict, List, Sequence

from dbrepl.core.context import ExportContext
from dbrepl.core.executor import (
    ConnectionFactory,
    ExecutionResult,
    ExecutionStrategy,
    execute_work_item,
)
from dbrepl.core.work_items import WorkItem
from dbrepl.strategies.error_handling import (
    ParallelExecutionError,
    WorkerSetupError,
    describe_error,
)

logger = logging.getLogger(__name__)

MAX_WORKERS = 20


class ProgressCounter:
    """Thread-safe count of finished work items."""

    def __init__(self):
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> int:
        """Add one and return the new count."""
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        """Current count."""
        with self._lock:
            return self._value


class ParallelExecutor(ExecutionStrategy):
    """
    Runs work items on a pool of worker threads.

    Items go onto one shared inbound queue and results come back on one
    outbound queue. Each worker opens its own connection, drains the
    inbound queue with non-blocking gets and exits when it is empty. The
    coordinator only reports progress and joins the workers.
    """

    def __init__(
        self,
        context: ExportContext,
        workers: int = 5,
        progress_interval: float = 2.0,
    ):
        """
        Initialize parallel executor.

        Args:
            context: Export context
            workers: Worker count (capped at MAX_WORKERS)
            progress_interval: Seconds between progress reports
        """
        super().__init__(context)
        self.workers = max(1, min(workers, MAX_WORKERS))
        self.progress_interval = progress_interval

    @classmethod
    def from_settings(cls, context: ExportContext) -> "ParallelExecutor":
        """Create an executor from the context's parallel settings."""
        parallel = context.settings.parallel
        return cls(
            context,
            workers=parallel.workers,
            progress_interval=parallel.progress_interval,
        )

    def execute(
        self, items: Sequence[WorkItem], connection_factory: ConnectionFactory
    ) -> List[ExecutionResult]:
        """
        Execute items on the worker pool.

        Returns:
            One result per item in input order, then one per failed worker

        Raises:
            ParallelExecutionError: If the pool itself fails; carries the
                results gathered before the failure
        """
        if not items:
            return []

        inbound: "queue.Queue[WorkItem]" = queue.Queue()
        for item in items:
            inbound.put(item)
        outbound: "queue.Queue[ExecutionResult]" = queue.Queue()
        counter = ProgressCounter()

        worker_count = min(self.workers, len(items))
        logger.info(f"Starting {worker_count} worker(s) for {len(items)} work item(s)")

        threads: List[threading.Thread] = []
        started = time.monotonic()
        try:
            for worker_id in range(1, worker_count + 1):
                thread = threading.Thread(
                    target=self._worker,
                    args=(worker_id, inbound, outbound, counter, connection_factory),
                    name=f"dbrepl-worker-{worker_id}",
                    daemon=True,
                )
                thread.start()
                threads.append(thread)

            self._wait_for_workers(threads, counter, len(items), started)
        except Exception as e:
            for thread in threads:
                thread.join()
            partial = self._drain(outbound)
            raise ParallelExecutionError(
                f"Parallel execution failed after {len(partial)} result(s): {e}",
                partial_results=partial,
            ) from e

        results = self._drain(outbound)
        results.extend(self._starved_results(inbound))
        return self._ordered(items, results)

    def _worker(
        self,
        worker_id: int,
        inbound: "queue.Queue[WorkItem]",
        outbound: "queue.Queue[ExecutionResult]",
        counter: ProgressCounter,
        connection_factory: ConnectionFactory,
    ) -> None:
        """Worker body: open a connection, then drain the queue."""
        try:
            connection = connection_factory()
            try:
                scripter = connection.create_scripter()
            except Exception:
                connection.close()
                raise
        except Exception as e:
            error = WorkerSetupError(
                f"Worker {worker_id} could not connect: {describe_error(e)}", worker_id
            )
            logger.error(f"✗ {error}")
            outbound.put(
                ExecutionResult(
                    work_item_id=f"worker-{worker_id}",
                    object_count=0,
                    succeeded=False,
                    error=str(error),
                )
            )
            return

        processed = 0
        with connection:
            while True:
                try:
                    item = inbound.get_nowait()
                except queue.Empty:
                    break
                outbound.put(execute_work_item(self.context, scripter, item))
                counter.increment()
                processed += 1

        logger.debug(f"Worker {worker_id} finished after {processed} item(s)")

    def _wait_for_workers(
        self,
        threads: List[threading.Thread],
        counter: ProgressCounter,
        total: int,
        started: float,
    ) -> None:
        """Report progress every interval until every worker has exited."""
        while True:
            alive = [t for t in threads if t.is_alive()]
            if not alive:
                break
            alive[0].join(self.progress_interval)
            done = counter.value
            elapsed = time.monotonic() - started
            rate = done / elapsed if elapsed > 0 else 0.0
            logger.info(f"Progress: {done}/{total} ({rate:.1f} items/s)")

        for thread in threads:
            thread.join()

    @staticmethod
    def _drain(outbound: "queue.Queue[ExecutionResult]") -> List[ExecutionResult]:
        results = []
        while True:
            try:
                results.append(outbound.get_nowait())
            except queue.Empty:
                return results

    @staticmethod
    def _starved_results(inbound: "queue.Queue[WorkItem]") -> List[ExecutionResult]:
        """Fail every item left in the queue after all workers exited."""
        starved = []
        while True:
            try:
                item = inbound.get_nowait()
            except queue.Empty:
                break
            logger.error(f"✗ {item.kind.value} {item.output_path}: no worker available")
            starved.append(
                ExecutionResult(
                    work_item_id=item.id,
                    object_count=item.object_count,
                    succeeded=False,
                    error="No worker available: every worker failed setup",
                    output_path=item.output_path,
                )
            )
        return starved

    @staticmethod
    def _ordered(
        items: Sequence[WorkItem], results: List[ExecutionResult]
    ) -> List[ExecutionResult]:
        """Sort results into item order, worker failures last."""
        position: Dict[str, int] = {item.id: n for n, item in enumerate(items)}
        return sorted(
            results, key=lambda r: position.get(r.work_item_id, len(position))
        )
