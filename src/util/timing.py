"""
Wall-clock timing for pipeline stages.
"""

import time
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Iterator, Optional

from util.logging import get_logger

logger = get_logger(__name__)

LogFunc = Callable[[str], None]


class Timer:
    """
    Stopwatch based on ``time.perf_counter``.

    A labelled timer reports its duration through ``log`` when stopped;
    unlabelled timers only measure.
    """

    def __init__(self, label: Optional[str] = None, log: Optional[LogFunc] = None):
        self.label = label
        self.log = log or logger.debug
        self.elapsed: Optional[float] = None
        self._started: Optional[float] = None

    def start(self) -> 'Timer':
        self._started = time.perf_counter()
        self.elapsed = None
        return self

    def stop(self) -> float:
        """Freeze the timer and return the elapsed seconds."""
        if self._started is None:
            raise RuntimeError("stop() called before start()")

        self.elapsed = time.perf_counter() - self._started
        if self.label:
            self.log(f"{self.label} took {self.elapsed * 1000:.1f} ms")
        return self.elapsed

    @property
    def elapsed_ms(self) -> int:
        """Milliseconds measured so far (frozen once stopped)."""
        if self.elapsed is not None:
            return int(self.elapsed * 1000)
        if self._started is None:
            return 0
        return int((time.perf_counter() - self._started) * 1000)

    def __enter__(self) -> 'Timer':
        return self.start()

    def __exit__(self, *exc_info):
        self.stop()


@contextmanager
def timed_operation(label: str, log: Optional[LogFunc] = None) -> Iterator[Timer]:
    """
    Time a ``with`` block; the duration is logged even when the block raises.

    Example:
        with timed_operation("Formula pipeline", logger.info):
            results = recognize_all(regions)
    """
    with Timer(label, log) as timer:
        yield timer


def timeit(func: Optional[Callable] = None, *, name: Optional[str] = None):
    """
    Log the duration of every call to the decorated function.

    Works bare (``@timeit``) or with a label (``@timeit(name="Encoder pass")``).
    """

    def wrap(f: Callable) -> Callable:
        label = name or f.__qualname__

        @wraps(f)
        def timed(*args, **kwargs):
            with Timer(label):
                return f(*args, **kwargs)

        return timed

    return wrap if func is None else wrap(func)
