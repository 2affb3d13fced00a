import asyncio
import logging
from typing import Callable, Optional

from log_advisor.analysis.trigger import AnalysisTrigger
from log_advisor.streaming.options import SessionKey, StreamOptions
from log_advisor.streaming.session import ChunkSink, LogSession
from log_advisor.streaming.sources import LogSource, open_source

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Single source of truth for which log streams are open.

    Holds at most one :class:`LogSession` per ``(namespace, pod, container)``.
    ``start`` replaces an existing session for the same key, closing the old
    upstream handle before the new one is registered.  Sessions that end or
    fail on their own remove themselves through ``_discard``.
    """

    def __init__(self, source_factory: Callable[[StreamOptions], LogSource] = open_source) -> None:
        self._sessions: dict[SessionKey, LogSession] = {}
        self._lock = asyncio.Lock()
        self._source_factory = source_factory

    async def start(
        self,
        options: StreamOptions,
        sink: ChunkSink,
        trigger: Optional[AnalysisTrigger] = None,
        on_stopped: Optional[Callable[[], None]] = None,
    ) -> LogSession:
        # Both raise ConfigurationError before any session is touched.
        options.validate()
        source = self._source_factory(options)

        try:
            async with self._lock:
                existing = self._sessions.pop(options.key, None)
                if existing is not None:
                    logger.info("[registry] Replacing existing session %s", options.key)
                    await existing.stop()
                session = LogSession(
                    options, source, sink, trigger, on_finished=self._discard, on_stopped=on_stopped
                )
                self._sessions[options.key] = session
                session.start()
        except BaseException:
            # Cancelled while waiting for the lock: the source never got an owner.
            await source.aclose()
            raise
        logger.info("[registry] Started %s (%d active)", options.key, len(self._sessions))
        return session

    async def stop(self, key: SessionKey, session: Optional[LogSession] = None) -> bool:
        """Stop the session for *key*. No-op when nothing is registered.

        When *session* is given, only that exact session is removed, so a
        stale caller cannot tear down the session that replaced its own.
        """
        async with self._lock:
            current = self._sessions.get(key)
            if current is None or (session is not None and current is not session):
                return False
            del self._sessions[key]
            await current.stop()
        logger.info("[registry] Stopped %s (%d active)", key, len(self._sessions))
        return True

    async def stop_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            for session in sessions:
                await session.stop()
        if sessions:
            logger.info("[registry] Stopped all %d session(s)", len(sessions))

    def _discard(self, session: LogSession) -> None:
        if self._sessions.get(session.key) is session:
            del self._sessions[session.key]
            logger.info("[registry] Session %s left the registry (%s)", session.key, session.state.value)

    def get(self, key: SessionKey) -> Optional[LogSession]:
        return self._sessions.get(key)

    def active_keys(self) -> list[SessionKey]:
        return list(self._sessions)

    def __contains__(self, key: object) -> bool:
        return key in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
