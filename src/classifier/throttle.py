"""Fixed inter-call delay for classifier requests.

No token bucket and no adaptive backoff: every call waits until at least
``delay_ms`` has passed since the previous one.
"""

import time
from typing import Callable

MAX_CALL_DELAY_MS = 5000


class CallThrottle:
    """Spaces consecutive calls by a fixed delay.

    ``sleep`` and ``monotonic`` are injectable so tests never really wait.
    """

    def __init__(
        self,
        delay_ms: int,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if delay_ms < 0 or delay_ms > MAX_CALL_DELAY_MS:
            msg = f"delay_ms must be between 0 and {MAX_CALL_DELAY_MS}, got {delay_ms}"
            raise ValueError(msg)
        self._delay = delay_ms / 1000
        self._sleep = sleep
        self._monotonic = monotonic
        self._last_call: float | None = None

    def wait(self) -> float:
        """Block until the next call is allowed. Returns the seconds slept."""
        slept = 0.0
        if self._last_call is not None and self._delay > 0:
            remaining = self._delay - (self._monotonic() - self._last_call)
            if remaining > 0:
                self._sleep(remaining)
                slept = remaining
        self._last_call = self._monotonic()
        return slept
