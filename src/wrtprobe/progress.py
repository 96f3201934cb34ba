"""Status line drawn on stderr while a router is being queried."""

import sys
import threading
import time
from contextlib import contextmanager
from typing import IO, Iterator, Optional, Sequence

FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")


class Spinner:
    """
    Animated status line.

    A background thread redraws ``label`` every ``interval`` seconds. When
    ``total`` is set, ``step()`` advances an ``n/total`` counter, which the
    services scan uses while probing one init script after another.
    """

    def __init__(
        self,
        label: str,
        total: Optional[int] = None,
        stream: Optional[IO[str]] = None,
        enabled: bool = True,
        interval: float = 0.1,
        frames: Sequence[str] = FRAMES,
    ) -> None:
        self.label = label
        self.total = total
        self.done = 0
        self.detail = ""
        self.stream = stream or sys.stderr
        self.enabled = enabled
        self.interval = interval
        self.frames = frames
        self._started = 0.0
        self._halt = threading.Event()
        self._worker: Optional[threading.Thread] = None

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._started if self._started else 0.0

    def line(self, frame: str) -> str:
        text = f"{frame} {self.label}"
        if self.total:
            text += f" ({self.done}/{self.total})"
        if self.detail:
            text += f": {self.detail}"
        return text

    def _draw(self) -> None:
        tick = 0
        while not self._halt.wait(self.interval if tick else 0):
            self.stream.write("\r\033[K" + self.line(self.frames[tick % len(self.frames)]))
            self.stream.flush()
            tick += 1

    def start(self) -> "Spinner":
        self._started = time.monotonic()
        if self.enabled and self._worker is None:
            self._halt.clear()
            self._worker = threading.Thread(target=self._draw, daemon=True)
            self._worker.start()
        return self

    def step(self, detail: str = "") -> None:
        """Count one finished item and show what is being worked on."""
        self.done += 1
        self.detail = detail

    def finish(self, mark: str, note: str = "") -> None:
        """Stop drawing and leave one summary line behind."""
        self._halt.set()
        if self._worker is not None:
            self._worker.join(timeout=1.0)
            self._worker = None
        if not self.enabled:
            return
        summary = f"{mark} {self.label} ({self.elapsed:.1f}s)"
        if note:
            summary += f" - {note}"
        self.stream.write(f"\r\033[K{summary}\n")
        self.stream.flush()


@contextmanager
def spinner(label: str, total: Optional[int] = None, enabled: bool = True) -> Iterator[Spinner]:
    """
    Show a status line for the duration of a block.

    Example:
        with spinner("Reading services", enabled=sys.stderr.isatty()) as s:
            facts.get_services(on_service=lambda name, _: s.step(name))
    """
    status = Spinner(label, total=total, enabled=enabled).start()
    try:
        yield status
    except BaseException:
        status.finish("✗", "failed")
        raise
    status.finish("✓")
