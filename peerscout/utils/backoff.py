"""Response timeout schedule for tracker requests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from peerscout.models import TrackerConfig


@dataclass(frozen=True)
class RetrySchedule:
    """Doubling response timeouts with a bounded number of retries.

    Attempt ``n`` (0-based) waits ``base_timeout * multiplier ** n`` seconds,
    which with the defaults is the BEP 15 ``15 * 2 ** n``. The schedule is
    exhausted once ``max_retries`` retries have also timed out.
    """

    base_timeout: float = 15.0
    max_retries: int = 8
    multiplier: float = 2.0

    @classmethod
    def from_config(cls, config: TrackerConfig) -> RetrySchedule:
        """Build the schedule from the tracker settings."""
        return cls(base_timeout=config.base_timeout, max_retries=config.max_retries)

    def timeout(self, attempt: int) -> float:
        """Seconds to wait for the response to ``attempt``."""
        return self.base_timeout * (self.multiplier ** max(0, attempt))

    def exhausted(self, attempt: int) -> bool:
        """Whether ``attempt`` lies past the last allowed retry."""
        return attempt > self.max_retries

    def total_wait(self) -> float:
        """Seconds a tracker can stay silent before it is declared unreachable."""
        return sum(self.timeout(n) for n in range(self.max_retries + 1))
