import asyncio

import pytest

from log_advisor.config import settings
from log_advisor.streaming.sources import LogSource


class FakeSource(LogSource):
    """Scripted upstream: yields chunks, then raises, ends, or stays open."""

    def __init__(self, chunks=(), error=None, hold_open=False):
        super().__init__()
        self._chunks = list(chunks)
        self._error = error
        self._hold_open = hold_open
        self.close_calls = 0

    async def chunks(self):
        for chunk in self._chunks:
            await asyncio.sleep(0)
            yield chunk
        if self._error is not None:
            raise self._error
        if self._hold_open:
            await asyncio.Event().wait()

    async def aclose(self):
        self.close_calls += 1
        await super().aclose()


class FakeSink:
    """Records everything a session or analysis channel sends to the viewer."""

    def __init__(self):
        self.frames = []

    async def send_text(self, text):
        self.frames.append(text)
        return True

    async def send_json(self, payload):
        self.frames.append(payload)
        return True

    @property
    def texts(self):
        return [f for f in self.frames if isinstance(f, str)]

    @property
    def events(self):
        return [f for f in self.frames if isinstance(f, dict)]


class FakeTextStream:
    """Stands in for the context manager returned by ``messages.stream``."""

    def __init__(self, fragments, error=None, gate=None):
        self._fragments = fragments
        self._error = error
        self._gate = gate
        self.exited = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.exited = True
        return False

    @property
    def text_stream(self):
        return self._generate()

    async def _generate(self):
        for index, fragment in enumerate(self._fragments):
            if index and self._gate is not None:
                await self._gate.wait()
            await asyncio.sleep(0)
            yield fragment
        if self._error is not None:
            raise self._error


class FakeMessages:
    def __init__(self, streams):
        self._streams = list(streams)
        self.calls = []

    def stream(self, **kwargs):
        self.calls.append(kwargs)
        return self._streams.pop(0)


class FakeAnthropic:
    def __init__(self, *streams):
        self.messages = FakeMessages(streams)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fast_demo(monkeypatch):
    """Replay demo scenarios without delays and with analysis disabled."""
    monkeypatch.setattr(settings, "demo_initial_delay_secs", 0.0)
    monkeypatch.setattr(settings, "demo_min_delay_secs", 0.0)
    monkeypatch.setattr(settings, "demo_max_delay_secs", 0.0)
    monkeypatch.setattr(settings, "anthropic_api_key", "")
    monkeypatch.setattr(settings, "mock_analysis", False)
    monkeypatch.setattr(settings, "kube_api_server", "")
    return settings
