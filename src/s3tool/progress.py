import asyncio
import sys
import threading
import time
from dataclasses import dataclass
from typing import Optional, TextIO


@dataclass(frozen=True)
class ProgressReport:
    bytes: int


class ProgressSink:
    """Thread-safe byte counter with a single updating progress line.

    Writes to stderr to avoid interfering with stdout. The counter is only
    touched under the lock; rendering happens after it is released.
    """

    def __init__(self, total_bytes: int = 0, stream: Optional[TextIO] = None, enabled: bool = True) -> None:
        self.total_bytes = max(0, int(total_bytes))
        self.stream = stream if stream is not None else sys.stderr
        self.enabled = enabled
        self._transferred = 0
        self._start = time.perf_counter()
        self._last_render = 0.0
        self._lock = threading.Lock()

    @property
    def transferred(self) -> int:
        with self._lock:
            return self._transferred

    def set_total(self, n: int) -> None:
        with self._lock:
            self.total_bytes = max(0, int(n))
        self._render(force=True)

    def add(self, n: int) -> None:
        if n <= 0:
            return
        with self._lock:
            self._transferred += n
        self._render()

    def on_report(self, report: ProgressReport) -> None:
        self.add(report.bytes)

    def _format_bytes(self, b: float) -> str:
        for unit in ["B", "KB", "MB", "GB", "TB"]:
            if b < 1024 or unit == "TB":
                return f"{b:.0f}{unit}" if unit == "B" else f"{b:.1f}{unit}"
            b /= 1024
        return f"{b:.1f}TB"

    def _render(self, force: bool = False) -> None:
        if not self.enabled:
            return
        now = time.perf_counter()
        if not force and (now - self._last_render) < 0.1:
            return
        self._last_render = now
        with self._lock:
            done, total = self._transferred, self.total_bytes
        elapsed = max(1e-6, now - self._start)
        shown = min(done, total) if total else done
        pct = (shown / total) if total else 0.0
        bar_width = 30
        filled = int(pct * bar_width)
        bar = "#" * filled + "-" * (bar_width - filled)
        rate = self._format_bytes(done / elapsed)
        msg = (
            f"\r[{bar}] {pct*100:6.2f}%  "
            f"{self._format_bytes(shown)}/{self._format_bytes(total)}  "
            f"{rate}/s"
        )
        try:
            self.stream.write(msg)
            self.stream.flush()
        except (OSError, ValueError):
            # closed or broken terminal; accounting continues
            self.enabled = False

    def finish(self) -> None:
        self._render(force=True)
        if self.enabled:
            self.stream.write("\n")
            self.stream.flush()


class ProgressChannel:
    """Carries progress reports from worker threads to a sink.

    Workers call `report(n)` from any thread; a single consumer task running
    on the event loop owns delivery to the sink. Leaving the context drains
    every pending report.
    """

    _CLOSE = object()

    def __init__(self, sink: ProgressSink) -> None:
        self.sink = sink
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "ProgressChannel":
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._queue.put_nowait(self._CLOSE)
        await self._consumer

    async def _consume(self) -> None:
        while True:
            item = await self._queue.get()
            if item is self._CLOSE:
                return
            self.sink.on_report(item)

    def report(self, n: int) -> None:
        if n <= 0:
            return
        report = ProgressReport(bytes=n)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(report)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, report)

    __call__ = report
