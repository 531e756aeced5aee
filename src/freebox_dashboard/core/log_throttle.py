"""
Log throttling for the relay.

The relay has several loops that can fail in lockstep with a timer: the
native bridge retries every 5 seconds while the box is unreachable, and the
fast poll ticks every second. Without throttling, a box that goes offline
for an hour writes thousands of identical lines.

The throttler keys messages by (source, normalized message) and only lets
one through per interval. Repeats are counted, and the count is reported
with the next message that does get through.
"""

import hashlib
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

# Digits, hex ids and bracketed counters vary between otherwise identical lines
_VARIABLE_PARTS = [re.compile(p) for p in (r"[a-f0-9]{8,}", r"\d+")]

# Severities that are never throttled
_ALWAYS_LOG = {"error", "critical"}


@dataclass
class ThrottleState:
    """Throttling state for one source/message combination."""
    last_logged: float
    suppressed_count: int = 0
    backoff_multiplier: float = 1.0


class LogThrottler:
    """
    Rate limit repeated log messages per source.

    - One message per ``min_interval`` seconds for each source/message pair
    - Backoff grows while a source keeps repeating itself
    - The suppressed count is attached to the next message that gets through
    """

    def __init__(
        self,
        min_interval_seconds: float = 60.0,
        max_backoff_multiplier: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = min_interval_seconds
        self.max_backoff = max_backoff_multiplier
        self._clock = clock
        self._states: Dict[str, ThrottleState] = {}
        self.total_suppressed = 0

    @staticmethod
    def _message_key(source: str, message: str) -> str:
        normalized = message.lower()
        for pattern in _VARIABLE_PARTS:
            normalized = pattern.sub("X", normalized)
        digest = hashlib.md5(normalized.encode()).hexdigest()[:8]
        return f"{source}:{digest}"

    def should_log(
        self,
        source: str,
        message: str,
        severity: str = "info",
    ) -> Tuple[bool, Optional[str]]:
        """
        Decide whether a message gets logged.

        Returns:
            (should_log, note) where note, when set, reports how many similar
            messages from ``source`` were suppressed since the last one.
        """
        if severity.lower() in _ALWAYS_LOG:
            return True, None

        now = self._clock()
        key = self._message_key(source, message)
        state = self._states.get(key)

        if state is None:
            self._states[key] = ThrottleState(last_logged=now)
            return True, None

        required = self.min_interval * state.backoff_multiplier
        if now - state.last_logged < required:
            state.suppressed_count += 1
            self.total_suppressed += 1
            if state.suppressed_count % 10 == 0:
                state.backoff_multiplier = min(state.backoff_multiplier * 1.5, self.max_backoff)
            return False, None

        note = None
        if state.suppressed_count > 0:
            note = f"[suppressed {state.suppressed_count} similar messages from {source}]"
        state.last_logged = now
        state.suppressed_count = 0
        if state.backoff_multiplier > 1.0:
            state.backoff_multiplier = max(1.0, state.backoff_multiplier * 0.9)
        return True, note

    def reset_source(self, source: str) -> None:
        """Forget throttling state for one source (e.g. after it recovers)."""
        for key in [k for k in self._states if k.startswith(f"{source}:")]:
            del self._states[key]


_log_throttler: Optional[LogThrottler] = None


def get_log_throttler() -> LogThrottler:
    """Get global log throttler (singleton pattern)."""
    global _log_throttler
    if _log_throttler is None:
        _log_throttler = LogThrottler()
    return _log_throttler
