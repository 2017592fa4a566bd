"""Backoff helpers for stage retries and the export polling loop."""
from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff between automatic retries of a failed stage."""
    base_delay: float = 5.0
    max_delay: float = 300.0
    factor: float = 2.0

    def delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        if attempt < 1:
            return 0.0
        return min(self.max_delay, self.base_delay * (self.factor ** (attempt - 1)))


def poll_schedule(interval: float, max_interval: float, timeout: float, factor: float = 1.5) -> Iterator[float]:
    """Yield sleep durations whose sum never exceeds ``timeout``.

    Intervals grow geometrically up to ``max_interval``; the last one is
    clipped so the caller stops exactly at the ceiling.
    """
    elapsed = 0.0
    current = interval
    while elapsed < timeout:
        step = min(current, max_interval, timeout - elapsed)
        yield step
        elapsed += step
        current = current * factor
