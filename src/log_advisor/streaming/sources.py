"""Upstream chunk sources a log session can consume.

A source is an async iterator of text chunks with three outcomes: a chunk,
:class:`SourceError`, or exhaustion (natural end of stream).  Sessions only
see this interface, so real cluster streams and scripted demo replays go
through identical session/registry code.
"""

import abc
import asyncio
import logging
import random
from typing import AsyncIterator, Awaitable, Callable, Optional

import httpx

from log_advisor.config import settings
from log_advisor.errors import ConfigurationError, SourceError
from log_advisor.streaming.options import StreamOptions

logger = logging.getLogger(__name__)


class LogSource(abc.ABC):
    """One open upstream handle. ``aclose`` is idempotent."""

    def __init__(self) -> None:
        self.closed = False

    @abc.abstractmethod
    def chunks(self) -> AsyncIterator[str]:
        """Yield text chunks in upstream order until the stream ends."""

    async def aclose(self) -> None:
        self.closed = True


class KubeLogSource(LogSource):
    """Follow a container's logs through the Kubernetes pod log endpoint."""

    def __init__(
        self,
        options: StreamOptions,
        api_server: str,
        token: str = "",
        ca_cert: str = "",
        verify_ssl: bool = True,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__()
        self._options = options
        self._url = (
            f"{api_server.rstrip('/')}/api/v1/namespaces/{options.namespace}"
            f"/pods/{options.pod}/log"
        )
        self._token = token
        self._owns_client = client is None
        if client is None:
            verify: bool | str = (ca_cert or True) if verify_ssl else False
            # Followed streams stay idle for long stretches: no read timeout.
            client = httpx.AsyncClient(verify=verify, timeout=httpx.Timeout(timeout, read=None))
        self._client = client

    def _params(self) -> dict[str, str]:
        opts = self._options
        tail_lines = opts.tail_lines if opts.tail_lines is not None else settings.kube_default_tail_lines
        params = {
            "container": opts.container,
            "follow": "true" if opts.follow else "false",
            "timestamps": "true",
            "tailLines": str(tail_lines),
        }
        since_seconds = opts.since_seconds
        if since_seconds is not None:
            params["sinceSeconds"] = str(since_seconds)
        return params

    async def chunks(self) -> AsyncIterator[str]:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            async with self._client.stream(
                "GET", self._url, params=self._params(), headers=headers
            ) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise SourceError(
                        f"Kubernetes API returned HTTP {response.status_code}: {body[:300]}"
                    )
                async for line in response.aiter_lines():
                    yield line + "\n"
        except httpx.HTTPError as exc:
            if self.closed:
                return
            raise SourceError(f"Log stream failed: {exc}") from exc

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._owns_client:
            await self._client.aclose()


DEMO_SCENARIOS: dict[str, list[str]] = {
    "image-pull-backoff": [
        '2024-01-20T10:15:30.123Z kubelet Failed to pull image "nginx:nonexistent": rpc error: '
        'code = NotFound desc = failed to resolve reference "docker.io/library/nginx:nonexistent": not found',
        "2024-01-20T10:15:31.456Z kubelet Error: ErrImagePull",
        '2024-01-20T10:15:32.789Z kubelet Back-off pulling image "nginx:nonexistent"',
        "2024-01-20T10:15:33.012Z kubelet Error: ImagePullBackOff",
    ],
    "oom-killed": [
        "2024-01-20T10:20:15.123Z java -Xmx512m -jar app.jar",
        "2024-01-20T10:20:16.456Z Loading application context...",
        "2024-01-20T10:20:20.789Z OutOfMemoryError: Java heap space",
        "2024-01-20T10:20:21.012Z Process exited with code 137",
        "2024-01-20T10:20:22.345Z kubelet Container killed by OOM killer",
    ],
    "readiness-probe-fail": [
        "2024-01-20T10:25:10.123Z Starting HTTP server on port 8080",
        "2024-01-20T10:25:11.456Z Loading configuration...",
        '2024-01-20T10:25:15.789Z kubelet Readiness probe failed: Get "http://10.0.1.45:8080/health": '
        "dial tcp 10.0.1.45:8080: connect: connection refused",
        '2024-01-20T10:25:20.012Z kubelet Readiness probe failed: Get "http://10.0.1.45:8080/health": '
        "context deadline exceeded",
        "2024-01-20T10:25:25.345Z Application started successfully on port 8080",
        "2024-01-20T10:25:26.678Z kubelet Readiness probe succeeded",
    ],
    "normal-startup": [
        "2024-01-20T10:30:00.123Z Starting application...",
        "2024-01-20T10:30:01.456Z Loading configuration from /etc/config",
        "2024-01-20T10:30:02.789Z Connecting to database with user=app password=s3cr3t-demo",
        "2024-01-20T10:30:03.012Z Database connection established",
        "2024-01-20T10:30:04.345Z Starting HTTP server on port 8080",
        "2024-01-20T10:30:05.678Z Application ready to serve requests",
    ],
}


class DemoLogSource(LogSource):
    """Replay a named scenario line by line on jittered delays."""

    def __init__(
        self,
        scenario: str,
        initial_delay: float = 0.5,
        min_delay: float = 1.0,
        max_delay: float = 3.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__()
        if scenario not in DEMO_SCENARIOS:
            raise ConfigurationError(
                f"Unknown demo scenario {scenario!r}; choose one of {', '.join(DEMO_SCENARIOS)}"
            )
        self.scenario = scenario
        self._lines = DEMO_SCENARIOS[scenario]
        self._initial_delay = initial_delay
        self._min_delay = min_delay
        self._max_delay = max_delay
        self._sleep = sleep

    async def chunks(self) -> AsyncIterator[str]:
        await self._sleep(self._initial_delay)
        for index, line in enumerate(self._lines):
            if self.closed:
                return
            if index:
                await self._sleep(random.uniform(self._min_delay, self._max_delay))
            yield line + "\n"


def open_source(options: StreamOptions) -> LogSource:
    """Build the source for *options*; raises ConfigurationError up front."""
    if options.demo:
        return DemoLogSource(
            options.scenario,
            initial_delay=settings.demo_initial_delay_secs,
            min_delay=settings.demo_min_delay_secs,
            max_delay=settings.demo_max_delay_secs,
        )
    if not settings.kube_api_server:
        raise ConfigurationError("Kubernetes API server not configured (set KUBE_API_SERVER)")
    logger.info("[stream] Opening pod log stream for %s/%s/%s", *options.key)
    return KubeLogSource(
        options,
        api_server=settings.kube_api_server,
        token=settings.kube_token,
        ca_cert=settings.kube_ca_cert,
        verify_ssl=settings.kube_verify_ssl,
        timeout=settings.kube_request_timeout_secs,
    )
