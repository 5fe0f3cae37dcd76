"""
backend/oddsline/client/backoff.py

Purpose:
    Reconnect delays for the live odds notifier. Each failed attempt grows
    the delay by ``factor`` up to ``max_delay``, with proportional jitter so
    many clients dropped at once do not reconnect in lockstep. A successful
    open resets the attempt counter.

Dependencies:
    - random
"""

import random
from typing import Optional


class ReconnectBackoff:
    """Capped exponential backoff with proportional jitter.

    ``factor=1`` and ``jitter=0`` give a fixed delay of ``base_delay``.
    """

    def __init__(
        self,
        base_delay: float = 5.0,
        max_delay: float = 60.0,
        factor: float = 2.0,
        jitter: float = 0.2,
        rng: Optional[random.Random] = None,
    ):
        self.base_delay = max(0.0, float(base_delay))
        self.max_delay = max(self.base_delay, float(max_delay))
        self.factor = max(1.0, float(factor))
        self.jitter = min(1.0, max(0.0, float(jitter)))
        self.attempt = 0
        self._rng = rng or random.Random()

    def next_delay(self) -> float:
        raw = min(self.max_delay, self.base_delay * (self.factor ** self.attempt))
        # Stop growing once capped; retries are unbounded.
        if 0 < raw < self.max_delay:
            self.attempt += 1
        if self.jitter:
            raw *= 1.0 + self._rng.uniform(-self.jitter, self.jitter)
        return min(self.max_delay, max(0.0, raw))

    def reset(self) -> None:
        self.attempt = 0
