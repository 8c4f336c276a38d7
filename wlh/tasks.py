from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock, Thread
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskResult:
    name: str
    error: BaseException | None = None

    @property
    def crashed(self) -> bool:
        return self.error is not None


class TaskGroup:
    """A set of background threads that are joined together.

    A task that raises does not take the others down with it; the exception is
    logged and kept in its TaskResult for whoever joins the group.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = Lock()
        self._threads: list[Thread] = []
        self._results: dict[str, TaskResult] = {}

    def spawn(self, name: str, fn: Callable[[], None]) -> None:
        thr = Thread(target=self._run, args=(name, fn), name=f"{self.name}-{name}", daemon=True)
        with self._lock:
            self._threads.append(thr)
        thr.start()

    def _run(self, name: str, fn: Callable[[], None]) -> None:
        error: BaseException | None = None
        try:
            fn()
        except BaseException as e:  # thread boundary: report through the result
            logger.exception("Task %s/%s crashed", self.name, name)
            error = e
        with self._lock:
            self._results[name] = TaskResult(name=name, error=error)

    def join(self, timeout: float | None = None) -> bool:
        """Wait for every task; False if some are still running at `timeout`."""
        with self._lock:
            threads = list(self._threads)
        deadline = None if timeout is None else time.monotonic() + timeout
        for thr in threads:
            thr.join(None if deadline is None else max(0.0, deadline - time.monotonic()))
        return not any(thr.is_alive() for thr in threads)

    def results(self) -> dict[str, TaskResult]:
        with self._lock:
            return dict(self._results)
