"""Progress reporting by message passing.

Download jobs never touch the terminal.  Each job gets a :class:`QueueProgress`
that posts :class:`ProgressEvent` messages with ``put_nowait``; a single
:class:`ProgressRenderer` thread drains the queue and owns the
:class:`rich.progress.Progress` display, so there is no shared mutable UI
state between workers.
"""

from __future__ import annotations

import itertools
import queue
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

__all__ = [
    "ProgressEvent",
    "ProgressReporter",
    "NullProgress",
    "QueueProgress",
    "ProgressRenderer",
]

_STOP = object()


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    """One progress message from a download job.

    ``kind`` is ``start``, ``total``, ``advance`` or ``finish``.
    """

    job_id: int
    kind: str
    description: str = ""
    total: Optional[int] = None
    amount: int = 0


class ProgressReporter(Protocol):
    """Sink the fetch engine reports bytes to."""

    def set_total(self, total: Optional[int]) -> None:
        ...

    def advance(self, amount: int) -> None:
        ...

    def finish(self) -> None:
        ...


class NullProgress:
    """Reporter that discards every update."""

    def set_total(self, total: Optional[int]) -> None:
        return None

    def advance(self, amount: int) -> None:
        return None

    def finish(self) -> None:
        return None


class QueueProgress:
    """Reporter posting :class:`ProgressEvent` messages onto a queue."""

    def __init__(self, events: "queue.Queue[object]", job_id: int, description: str) -> None:
        self._events = events
        self.job_id = job_id
        self.description = description
        self.put_nowait(ProgressEvent(job_id, "start", description=description))

    def put_nowait(self, event: ProgressEvent) -> None:
        self._events.put_nowait(event)

    def set_total(self, total: Optional[int]) -> None:
        self.put_nowait(ProgressEvent(self.job_id, "total", total=total))

    def advance(self, amount: int) -> None:
        if amount:
            self.put_nowait(ProgressEvent(self.job_id, "advance", amount=amount))

    def finish(self) -> None:
        self.put_nowait(ProgressEvent(self.job_id, "finish"))


class ProgressRenderer:
    """Thread that drains progress events into a rich display.

    Use as a context manager; :meth:`reporter` hands out per-job reporters.

    Example:
        >>> with ProgressRenderer(enabled=False) as renderer:
        ...     reporter = renderer.reporter("luckperms.jar")
        ...     reporter.advance(10)
        ...     reporter.finish()
    """

    def __init__(self, console: Optional[Console] = None, *, enabled: bool = True) -> None:
        self.events: "queue.Queue[object]" = queue.Queue()
        self.enabled = enabled
        self._ids = itertools.count(1)
        self._ids_lock = threading.Lock()
        self._tasks: Dict[int, TaskID] = {}
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=False,
            disable=not enabled,
        )
        self._thread = threading.Thread(target=self._run, name="mcpk-progress", daemon=True)

    def reporter(self, description: str) -> QueueProgress:
        with self._ids_lock:
            job_id = next(self._ids)
        return QueueProgress(self.events, job_id, description)

    def __enter__(self) -> "ProgressRenderer":
        self._progress.start()
        self._thread.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.events.put(_STOP)
        self._thread.join()
        self._progress.stop()

    def _run(self) -> None:
        while True:
            item = self.events.get()
            if item is _STOP:
                return
            if isinstance(item, ProgressEvent):
                self._apply(item)

    def _apply(self, event: ProgressEvent) -> None:
        if event.kind == "start":
            self._tasks[event.job_id] = self._progress.add_task(event.description, total=None)
            return
        task_id = self._tasks.get(event.job_id)
        if task_id is None:
            return
        if event.kind == "total":
            self._progress.update(task_id, total=event.total)
        elif event.kind == "advance":
            self._progress.advance(task_id, advance=event.amount)
        elif event.kind == "finish":
            task = self._progress.tasks[self._progress.task_ids.index(task_id)]
            if task.total is None:
                self._progress.update(task_id, total=task.completed)
            self._progress.stop_task(task_id)
