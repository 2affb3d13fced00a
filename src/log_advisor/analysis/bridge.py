"""Stream log diagnoses from Claude and supervise them per viewer connection."""

import asyncio
import logging
import re
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import anthropic

from log_advisor.analysis.prompts import SYSTEM_PROMPT, build_user_prompt
from log_advisor.redact import redact
from log_advisor.schemas.analysis import AnalysisRequest

logger = logging.getLogger(__name__)

ERROR_PREFIX = "❌"

# Canned diagnoses for MOCK_ANALYSIS=true, keyed by a signature in the excerpt.
_MOCK_DIAGNOSES = (
    (
        re.compile(r"ImagePullBackOff|ErrImagePull|Failed to pull image", re.IGNORECASE),
        "**Image pull failure.** The kubelet cannot fetch the image. "
        "Probable causes: wrong image name/tag (70%), registry auth (25%). "
        "Next: `kubectl describe pod <pod>` and check the Events section.",
    ),
    (
        re.compile(r"OutOfMemory|OOM|exit(?:ed)? with code 137", re.IGNORECASE),
        "**OOMKilled.** The container exceeded its memory limit (exit 137). "
        "Probable causes: heap larger than the limit (65%), memory leak (25%). "
        "Next: `kubectl logs <pod> --previous` and compare -Xmx with resources.limits.memory.",
    ),
    (
        re.compile(r"Readiness probe failed|Liveness probe failed", re.IGNORECASE),
        "**Probe failures during startup.** The app was not listening when the probe ran. "
        "Probable causes: initialDelaySeconds too short (60%), wrong port/path (30%). "
        "Next: compare containerPort with the probe port and review probe timing.",
    ),
)
_MOCK_HEALTHY = "**Healthy startup.** No failure signatures in the recent lines."


class AnalysisBridge:
    """Turns an :class:`AnalysisRequest` into an ordered stream of text fragments.

    Failures are reported in-band: the stream ends with a single fragment
    starting with ``❌``.  Cancellation (task cancel or ``aclose`` on the
    generator) stops consuming the upstream response immediately.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "claude-haiku-4-5-20251001",
        max_tokens: int = 400,
        max_excerpt_chars: int = 12000,
        mock: bool = False,
        client: Any = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._max_tokens = max_tokens
        self._max_excerpt_chars = max_excerpt_chars
        self._mock = mock
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._mock or self._client is not None or bool(self._api_key)

    def _get_client(self):
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key, max_retries=3)
        return self._client

    def _excerpt(self, request: AnalysisRequest) -> str:
        # Callers pass redacted text already; redact again at the process boundary.
        excerpt = redact(request.recent_log_chunk)
        if len(excerpt) > self._max_excerpt_chars:
            excerpt = excerpt[-self._max_excerpt_chars:]
        return excerpt

    async def analyze(self, request: AnalysisRequest) -> AsyncIterator[str]:
        excerpt = self._excerpt(request)
        meta = request.meta
        logger.info(
            "[analysis] Analyzing %s/%s/%s (%d chars, question=%s)",
            meta.namespace, meta.pod, meta.container, len(excerpt), bool(request.question),
        )

        if self._mock:
            async for fragment in self._mock_stream(excerpt):
                yield fragment
            return

        prompt = build_user_prompt(
            meta.namespace, meta.pod, meta.container, excerpt, redact(request.question or "") or None
        )
        try:
            async with self._get_client().messages.stream(
                model=self._model,
                max_tokens=self._max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            ) as stream:
                async for text_chunk in stream.text_stream:
                    yield text_chunk
        except Exception as exc:
            logger.exception("[analysis] Streaming analysis failed")
            yield f"\n{ERROR_PREFIX} Analysis failed: {redact(str(exc))}"

    async def _mock_stream(self, excerpt: str) -> AsyncIterator[str]:
        text = _MOCK_HEALTHY
        for signature, diagnosis in _MOCK_DIAGNOSES:
            if signature.search(excerpt):
                text = diagnosis
                break
        for word in text.split(" "):
            await asyncio.sleep(0)
            yield word + " "


AnalysisEmitter = Callable[[dict], Awaitable[None]]


class AnalysisChannel:
    """At most one in-flight analysis for one viewer connection.

    ``start`` supersedes whatever is running; ``cancel`` is fire-and-forget
    and guarantees that no fragment of the cancelled analysis is emitted
    after it returns.  Aborted analyses are dropped silently.
    """

    def __init__(self, bridge: AnalysisBridge, emit: AnalysisEmitter) -> None:
        self._bridge = bridge
        self._emit = emit
        self._task: Optional[asyncio.Task] = None
        self._active_id: Optional[int] = None
        self._seq = 0

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, request: AnalysisRequest) -> int:
        self.cancel()
        self._seq += 1
        analysis_id = self._seq
        self._active_id = analysis_id
        self._task = asyncio.create_task(self._run(analysis_id, request))
        return analysis_id

    def cancel(self) -> None:
        if self._active_id is not None:
            logger.debug("[analysis] Cancelling analysis #%d", self._active_id)
        self._active_id = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Wait for the current analysis, if any, to finish."""
        task = self._task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self, analysis_id: int, request: AnalysisRequest) -> None:
        status = "complete"
        stream = self._bridge.analyze(request)
        try:
            async for fragment in stream:
                if self._active_id != analysis_id:
                    return
                if fragment.lstrip().startswith(ERROR_PREFIX):
                    status = "failed"
                await self._emit({"analysis": {"id": analysis_id, "fragment": fragment}})
        finally:
            await stream.aclose()
        if self._active_id == analysis_id:
            self._active_id = None
            await self._emit({"analysis": {"id": analysis_id, "status": status}})
