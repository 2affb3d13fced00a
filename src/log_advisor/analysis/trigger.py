"""Decide when buffered log lines justify one analysis call.

Policy: every ``line_threshold`` buffered lines propose a trigger.  A proposal
is suppressed while the cooldown since the last fired trigger is running, or
when too little new text has arrived.  The line counter only resets when a
trigger actually fires, so a suppressed proposal is retried on the next line
and fires as soon as the cooldown has lapsed.
"""

import logging
import time
from collections import deque
from typing import Callable, Iterable, Iterator, Optional

from log_advisor.schemas.analysis import AnalysisMeta, AnalysisRequest

logger = logging.getLogger(__name__)


class LineBuffer:
    """Fixed-capacity FIFO ring of redacted log lines."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._lines: deque[str] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._lines.maxlen

    def append(self, line: str) -> Optional[str]:
        """Add a line; return the evicted oldest line when the ring was full."""
        evicted = self._lines[0] if len(self._lines) == self._lines.maxlen else None
        self._lines.append(line)
        return evicted

    def tail(self, count: int) -> list[str]:
        if count <= 0:
            return []
        return list(self._lines)[-count:]

    def clear(self) -> None:
        self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(self._lines)


class AnalysisTrigger:
    def __init__(
        self,
        meta: AnalysisMeta,
        on_trigger: Callable[[AnalysisRequest], None],
        capacity: int = 1000,
        line_threshold: int = 10,
        cooldown_secs: float = 5.0,
        min_new_chars: int = 80,
        tail_lines: int = 50,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.meta = meta
        self.buffer = LineBuffer(capacity)
        self._on_trigger = on_trigger
        self._line_threshold = line_threshold
        self._cooldown_secs = cooldown_secs
        self._min_new_chars = min_new_chars
        self._tail_lines = tail_lines
        self._clock = clock
        self._lines_since_trigger = 0
        self._chars_since_trigger = 0
        self._last_fired: Optional[float] = None
        self.fired_count = 0

    def feed(self, lines: Iterable[str]) -> int:
        """Buffer redacted lines and fire at most one trigger per proposal.

        Returns how many triggers fired.  Never waits on the analysis itself.
        """
        fired = 0
        for line in lines:
            if not line.strip():
                continue
            self.buffer.append(line)
            self._lines_since_trigger += 1
            self._chars_since_trigger += len(line)
            if self._lines_since_trigger >= self._line_threshold and self._propose():
                fired += 1
        return fired

    def _propose(self) -> bool:
        now = self._clock()
        if self._last_fired is not None and now - self._last_fired < self._cooldown_secs:
            return False
        if self._chars_since_trigger < self._min_new_chars:
            return False
        request = self.build_request()
        self._last_fired = now
        self._lines_since_trigger = 0
        self._chars_since_trigger = 0
        self.fired_count += 1
        logger.debug(
            "[trigger] Firing analysis #%d for %s/%s/%s (%d buffered lines)",
            self.fired_count, self.meta.namespace, self.meta.pod, self.meta.container,
            len(self.buffer),
        )
        self._on_trigger(request)
        return True

    def build_request(self, question: Optional[str] = None) -> AnalysisRequest:
        """Build a request from the most recent tail window of the buffer."""
        return AnalysisRequest(
            meta=self.meta,
            recent_log_chunk="\n".join(self.buffer.tail(self._tail_lines)),
            question=question,
        )

    def clear(self) -> None:
        self.buffer.clear()
        self._lines_since_trigger = 0
        self._chars_since_trigger = 0
