"""Domain Guardrails - Pacing and Cancellation for Bulk Operations.

This module protects the downstream store from bursts during bulk imports and
lets a long-running import be stopped cleanly between rows.

Architecture:
    - Pure domain logic with no infrastructure dependencies
    - The sleep function is injectable so tests never wait
    - Thread-safe: the cancellation flag may be set from another thread
"""

import logging
import time
from dataclasses import dataclass
from threading import Event, Lock
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class PacingConfig:
    """Configuration for RequestPacer behavior.

    Attributes:
        batch_size: Number of operations between pauses
        pause_seconds: Length of each pause
    """
    batch_size: int = 100
    pause_seconds: float = 1.0

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.pause_seconds < 0:
            raise ValueError("pause_seconds must not be negative")


class RequestPacer:
    """Fixed-size pacing: pause after every ``batch_size`` operations.

    Example Usage:
        ```python
        pacer = RequestPacer(PacingConfig(batch_size=100, pause_seconds=1.0))
        for index, row in enumerate(rows):
            process(row)
            pacer.tick(remaining=len(rows) - index - 1)
        ```
    """

    def __init__(self, config: Optional[PacingConfig] = None, sleep: Callable[[float], None] = time.sleep):
        self.config = config or PacingConfig()
        self._sleep = sleep
        self._count = 0
        self._pauses = 0
        self._lock = Lock()

    def tick(self, remaining: int = 1) -> bool:
        """Record one completed operation and pause if a batch boundary was hit.

        Parameters:
            remaining: Operations still to come; no pause is taken after the last one

        Returns:
            True if a pause was taken
        """
        with self._lock:
            self._count += 1
            should_pause = (
                remaining > 0
                and self.config.pause_seconds > 0
                and self._count % self.config.batch_size == 0
            )
            if should_pause:
                self._pauses += 1

        if should_pause:
            logger.debug(f"Pausing {self.config.pause_seconds}s after {self._count} operations")
            self._sleep(self.config.pause_seconds)
        return should_pause

    @property
    def count(self) -> int:
        return self._count

    @property
    def pauses(self) -> int:
        return self._pauses


class CancellationToken:
    """Cooperative cancellation flag checked at row boundaries."""

    def __init__(self):
        self._event = Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
