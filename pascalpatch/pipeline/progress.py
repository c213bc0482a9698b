"""Background progress line driven by the pipeline counters."""

from __future__ import annotations

import threading

from rich.console import Console
from rich.live import Live
from rich.text import Text

from pascalpatch.types import CounterSnapshot, PipelineCounters


def format_progress(snapshot: CounterSnapshot) -> str | None:
    """Status line for ``snapshot``, or None while nothing has been discovered."""
    percent = snapshot.percent_done
    if percent is None:
        return None
    return (
        f"processed {snapshot.parsed} of {snapshot.discovered} annotations "
        f"({snapshot.objects} objects) ({percent}% done)"
    )


class ProgressReporter:
    """Cancellable thread that polls the counters and redraws one status line.

    The thread waits while nothing has been discovered, stops on its own once
    everything discovered has been processed, and stops at the next poll
    when ``cancel()`` is called. ``close()`` must be called on every exit
    path; it joins the thread and terminates the status line.
    """

    def __init__(
        self,
        counters: PipelineCounters,
        console: Console | None = None,
        interval: float = 0.5,
    ) -> None:
        self.counters = counters
        self.console = console or Console(stderr=True)
        self.interval = interval
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._live: Live | None = None
        self._thread: threading.Thread | None = None
        self.last_line: str | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("ProgressReporter already started")
        self._thread = threading.Thread(target=self._poll, name="progress", daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        self._stop.set()

    def close(self) -> None:
        """Stop polling, wait for the thread and end the status line."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
        line = format_progress(self.counters.snapshot())
        if line is not None:
            self._render(line)
        with self._lock:
            if self._live is not None:
                self._live.stop()
                self._live = None

    def __enter__(self) -> ProgressReporter:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _poll(self) -> None:
        while not self._stop.is_set():
            snapshot = self.counters.snapshot()
            line = format_progress(snapshot)
            if line is not None:
                self._render(line)
                if snapshot.percent_done >= 100:
                    return
            self._stop.wait(self.interval)

    def _render(self, line: str) -> None:
        with self._lock:
            if line == self.last_line and self._live is not None:
                return
            if self._live is None:
                self._live = Live(
                    Text(line),
                    console=self.console,
                    auto_refresh=False,
                    transient=False,
                    redirect_stdout=False,
                    redirect_stderr=False,
                )
                self._live.start(refresh=True)
            else:
                self._live.update(Text(line), refresh=True)
            self.last_line = line
