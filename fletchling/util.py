"""Small helpers shared across the package."""

from __future__ import annotations

import threading
import time


class SleepInterrupted(Exception):
    """A sleep was cut short because a stop was requested."""


def sleep_context(stop_event: threading.Event | None, seconds: float) -> None:
    """Sleep for ``seconds`` unless ``stop_event`` is set first.

    Raises SleepInterrupted if the event is set before the time is up.
    """
    if stop_event is None:
        time.sleep(max(0.0, seconds))
        return
    if stop_event.wait(max(0.0, seconds)):
        raise SleepInterrupted("stop requested during sleep")