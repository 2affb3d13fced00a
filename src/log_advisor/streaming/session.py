import asyncio
import enum
import logging
from typing import Any, Callable, Optional, Protocol

from log_advisor.analysis.trigger import AnalysisTrigger
from log_advisor.errors import SourceError
from log_advisor.redact import redact
from log_advisor.streaming.line_filter import compile_line_filter, filter_lines
from log_advisor.streaming.options import SessionKey, StreamOptions
from log_advisor.streaming.sources import LogSource

logger = logging.getLogger(__name__)

STREAM_ENDED_EVENT = {"event": "stream_ended"}


class SessionState(str, enum.Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    ENDED = "ended"
    ERRORED = "errored"
    STOPPED = "stopped"


class ChunkSink(Protocol):
    async def send_text(self, text: str) -> Any: ...

    async def send_json(self, payload: dict) -> Any: ...


class LogSession:
    """One live, uniquely keyed log stream.

    ``IDLE -> STREAMING -> {ENDED | ERRORED}`` driven by the upstream source;
    an explicit :meth:`stop` moves to ``STOPPED`` without a terminal event.
    Every chunk is redacted, then line-filtered, then forwarded to the sink;
    only the forwarded (redacted) lines reach the analysis trigger.
    """

    def __init__(
        self,
        options: StreamOptions,
        source: LogSource,
        sink: ChunkSink,
        trigger: Optional[AnalysisTrigger] = None,
        on_finished: Optional[Callable[["LogSession"], None]] = None,
        on_stopped: Optional[Callable[[], None]] = None,
    ) -> None:
        self.options = options
        self.key: SessionKey = options.key
        self.state = SessionState.IDLE
        self.source = source
        self.error: Optional[str] = None
        self.chunks_forwarded = 0
        self._sink = sink
        self._trigger = trigger
        self._predicate = compile_line_filter(options.regex)
        self._on_finished = on_finished
        self._on_stopped = on_stopped
        self._task: Optional[asyncio.Task] = None

    @property
    def alive(self) -> bool:
        return self.state is SessionState.STREAMING

    def start(self) -> asyncio.Task:
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"Session {self.key} already {self.state.value}")
        self.state = SessionState.STREAMING
        self._task = asyncio.create_task(self._run(), name=f"log-session:{self.key}")
        return self._task

    async def wait(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self) -> None:
        logger.info("[stream] Session %s streaming", self.key)
        try:
            async for chunk in self.source.chunks():
                if not self.alive:
                    break
                await self._forward(chunk)
        except SourceError as exc:
            await self._finish(SessionState.ERRORED, str(exc))
        except Exception as exc:
            logger.exception("[stream] Unexpected failure in session %s", self.key)
            await self._finish(SessionState.ERRORED, f"Log stream failed: {exc}")
        else:
            if self.alive:
                await self._finish(SessionState.ENDED)
        finally:
            await self.source.aclose()

    async def _forward(self, chunk: str) -> None:
        sanitized = filter_lines(redact(chunk), self._predicate)
        if not sanitized:
            return
        await self._sink.send_text(sanitized)
        self.chunks_forwarded += 1
        if self._trigger is not None:
            self._trigger.feed(sanitized.splitlines())

    async def _finish(self, state: SessionState, error: Optional[str] = None) -> None:
        if not self.alive:
            return
        self.state = state
        if self._on_finished is not None:
            self._on_finished(self)
        if error is None:
            logger.info("[stream] Session %s ended after %d chunk(s)", self.key, self.chunks_forwarded)
            await self._sink.send_json(STREAM_ENDED_EVENT)
        else:
            self.error = redact(error)
            logger.warning("[stream] Session %s errored: %s", self.key, self.error)
            await self._sink.send_json({"error": self.error})

    async def stop(self) -> None:
        """Tear down: cancel the reader, close the upstream handle and drop
        the buffered lines and pending analysis tied to this key.

        Returns only once the handle is closed.  Safe to call repeatedly.
        """
        if self.state in (SessionState.IDLE, SessionState.STREAMING):
            self.state = SessionState.STOPPED
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self.source.aclose()
        # Buffered lines and in-flight analysis belong to this key only.
        if self._trigger is not None:
            self._trigger.clear()
        if self._on_stopped is not None:
            self._on_stopped()
        logger.info("[stream] Session %s stopped", self.key)
