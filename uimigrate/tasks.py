"""Cancellation tokens and batched task execution."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import groupby
from typing import Callable, Generic, Hashable, List, Optional, Sequence, TypeVar

from .errors import CancelledError, ErrorContext, ErrorHandler, PhaseTimeoutError, PipelineError, RecoveryResult

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class CancellationToken:
    """Cooperative cancellation flag shared between a run and its workers.

    The token also carries the current phase deadline, so every place that
    checks for cancellation between units enforces the phase timeout too.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._event = threading.Event()
        self._clock = clock
        self.reason: Optional[str] = None
        self._deadline: Optional[float] = None
        self._deadline_phase = ""
        self._timeout = 0.0

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def set_deadline(self, seconds: Optional[float], phase: str = "") -> None:
        if seconds is None or seconds <= 0:
            self.clear_deadline()
            return
        self._deadline = self._clock() + seconds
        self._deadline_phase = phase
        self._timeout = seconds

    def clear_deadline(self) -> None:
        self._deadline = None
        self._deadline_phase = ""

    def raise_if_cancelled(self, context: Optional[ErrorContext] = None) -> None:
        if self._event.is_set():
            raise CancelledError(self.reason or "cancelled", context)
        if self._deadline is not None and self._clock() > self._deadline:
            raise PhaseTimeoutError(
                f"Phase '{self._deadline_phase}' exceeded its {self._timeout:g}s timeout",
                context,
                recoverable=False,
            )


@dataclass
class TaskResult(Generic[R]):
    key: str
    value: Optional[R] = None
    error: Optional[PipelineError] = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchRunner:
    """Runs a unit-level function over items, sequentially or in parallel batches.

    Parallel mode splits the items into fixed-size batches; every item of a
    batch runs on a thread pool and the runner waits for the whole batch
    before starting the next.  ``checkpoint`` runs before every unit and
    before every batch and is where cancellation and timeouts surface.
    """

    def __init__(
        self,
        error_handler: ErrorHandler,
        parallel: bool = False,
        max_concurrency: int = 4,
        batch_size: int = 8,
        checkpoint: Optional[Callable[[], None]] = None,
    ) -> None:
        self.error_handler = error_handler
        self.parallel = parallel
        self.max_concurrency = max(1, max_concurrency)
        self.batch_size = max(1, batch_size)
        self._checkpoint = checkpoint or (lambda: None)

    @staticmethod
    def make_batches(
        items: Sequence[T],
        batch_size: int,
        sort_key: Optional[Callable[[T], Hashable]] = None,
        group_key: Optional[Callable[[T], Hashable]] = None,
    ) -> List[List[T]]:
        """Order *items* and cut them into batches of at most *batch_size*.

        With *group_key*, similar items are kept together and batches never
        straddle two groups.
        """
        ordered = list(items)
        if sort_key is not None:
            ordered.sort(key=sort_key)
        if group_key is None:
            return [ordered[i:i + batch_size] for i in range(0, len(ordered), batch_size)]

        batches: List[List[T]] = []
        grouped = sorted(ordered, key=lambda item: str(group_key(item)))
        for _, members in groupby(grouped, key=lambda item: str(group_key(item))):
            chunk = list(members)
            batches.extend(chunk[i:i + batch_size] for i in range(0, len(chunk), batch_size))
        return batches

    def run(
        self,
        items: Sequence[T],
        fn: Callable[[T], R],
        key: Callable[[T], str],
        sort_key: Optional[Callable[[T], Hashable]] = None,
        group_key: Optional[Callable[[T], Hashable]] = None,
        on_result: Optional[Callable[[TaskResult[R]], None]] = None,
    ) -> List[TaskResult[R]]:
        results: List[TaskResult[R]] = []

        def _emit(result: TaskResult[R]) -> None:
            results.append(result)
            if on_result is not None:
                on_result(result)

        if not self.parallel:
            ordered = list(items)
            if sort_key is not None:
                ordered.sort(key=sort_key)
            for item in ordered:
                self._checkpoint()
                _emit(self._execute(item, fn, key))
            return results

        for batch in self.make_batches(items, self.batch_size, sort_key, group_key):
            self._checkpoint()
            with ThreadPoolExecutor(max_workers=min(self.max_concurrency, len(batch))) as pool:
                futures = []
                for item in batch:
                    self._checkpoint()
                    futures.append(pool.submit(self._execute, item, fn, key))
                batch_results = [f.result() for f in futures]
            for result in batch_results:
                _emit(result)
            logger.debug("Completed batch of %d units", len(batch))
        return results

    def _execute(self, item: T, fn: Callable[[T], R], key: Callable[[T], str]) -> TaskResult[R]:
        """Run one unit through the recovery strategies; failures are recorded once."""
        started = time.perf_counter()
        item_key = key(item)

        def _run() -> TaskResult[R]:
            return TaskResult(item_key, value=fn(item), duration=time.perf_counter() - started)

        def _absorbed(error: PipelineError, recovery: RecoveryResult) -> TaskResult[R]:
            return TaskResult(item_key, error=error, duration=time.perf_counter() - started)

        try:
            return self.error_handler.run_with_recovery(_run, ErrorContext(unit=item_key), fallback=_absorbed)
        except (CancelledError, PhaseTimeoutError):
            raise
        except PipelineError as error:
            return TaskResult(item_key, error=error, duration=time.perf_counter() - started)
