#!/usr/bin/env python3
# Fixed-size worker pool with a cooperative pause gate and polled completion
from __future__ import annotations
import logging, threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, List, Optional
from .constants import default_thread_count

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class TaskHandler:
    """
    Runs independent tasks on `thread_count` threads.

    pause() closes a gate that every task passes before it starts, so running
    tasks finish normally and idle workers wait; resume() reopens it.
    """

    def __init__(self, thread_count: Optional[int] = None, pause_support: bool = False):
        self.thread_count = max(1, thread_count or default_thread_count())
        self.pause_support = pause_support
        self._executor: Optional[ThreadPoolExecutor] = None
        self._futures: List[Future] = []
        self._gate = threading.Event()
        self._gate.set()
        self._lock = threading.Lock()
        self._completed = 0
        self.errors = 0

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    @property
    def total(self) -> int:
        return len(self._futures)

    @property
    def paused(self) -> bool:
        return not self._gate.is_set()

    def _run(self, task: Callable[[], object]) -> None:
        self._gate.wait()
        try:
            task()
        except Exception:
            log.exception("task failed")
            with self._lock:
                self.errors += 1
        finally:
            with self._lock:
                self._completed += 1

    def dispatch(self, task: Callable[[], object]) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.thread_count,
                                                thread_name_prefix="dexplore-worker")
        self._futures.append(self._executor.submit(self._run, task))

    def has_task(self) -> bool:
        return bool(self._futures)

    def pause(self) -> None:
        if self.pause_support:
            self._gate.clear()

    def resume(self) -> None:
        self._gate.set()

    def await_completion(self, interval_ms: int, on_progress: Optional[ProgressCallback] = None) -> None:
        """Block until every dispatched task ran, reporting (completed, total) every interval."""
        pending = set(self._futures)
        total = len(self._futures)
        try:
            while pending:
                _, pending = wait(pending, timeout=interval_ms / 1000)
                if on_progress and pending:
                    on_progress(self.completed, total)
            if on_progress:
                on_progress(self.completed, total)
        finally:
            self._reset()

    def _reset(self) -> None:
        self._futures = []
        with self._lock:
            self._completed = 0

    def shutdown(self) -> None:
        self._gate.set()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self._futures = []
