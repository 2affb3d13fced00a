import asyncio

import pytest

from conftest import FakeAnthropic, FakeSink, FakeTextStream
from log_advisor.analysis.bridge import AnalysisBridge, AnalysisChannel
from log_advisor.schemas.analysis import AnalysisMeta, AnalysisRequest


def make_request(chunk="OutOfMemoryError: Java heap space", question=None):
    return AnalysisRequest(
        meta=AnalysisMeta(namespace="shop", pod="api-7d9f", container="api"),
        recent_log_chunk=chunk,
        question=question,
    )


async def collect(iterator):
    return [fragment async for fragment in iterator]


class TestAnalysisBridge:
    @pytest.mark.asyncio
    async def test_fragments_in_arrival_order(self):
        client = FakeAnthropic(FakeTextStream(["Probable ", "cause: ", "OOM"]))
        bridge = AnalysisBridge(client=client)

        assert await collect(bridge.analyze(make_request())) == ["Probable ", "cause: ", "OOM"]

    @pytest.mark.asyncio
    async def test_excerpt_and_question_redacted_before_sending(self):
        client = FakeAnthropic(FakeTextStream(["ok"]))
        bridge = AnalysisBridge(client=client)

        await collect(bridge.analyze(make_request("login password=hunter2", question="is api_key=zz9 valid?")))

        prompt = client.messages.calls[0]["messages"][0]["content"]
        assert "hunter2" not in prompt
        assert "zz9" not in prompt
        assert "shop/api-7d9f/api" in prompt

    @pytest.mark.asyncio
    async def test_excerpt_bounded_to_most_recent_text(self):
        client = FakeAnthropic(FakeTextStream(["ok"]))
        bridge = AnalysisBridge(client=client, max_excerpt_chars=20)

        await collect(bridge.analyze(make_request("old line\n" * 10 + "newest line")))

        prompt = client.messages.calls[0]["messages"][0]["content"]
        assert "newest line" in prompt
        assert prompt.count("old line") <= 2

    @pytest.mark.asyncio
    async def test_failure_mid_stream_ends_with_single_error_fragment(self):
        client = FakeAnthropic(FakeTextStream(["partial "], error=RuntimeError("overloaded")))
        bridge = AnalysisBridge(client=client)

        fragments = await collect(bridge.analyze(make_request()))

        assert fragments[0] == "partial "
        assert len(fragments) == 2
        assert fragments[-1].lstrip().startswith("❌")
        assert "overloaded" in fragments[-1]

    @pytest.mark.asyncio
    async def test_mock_mode_recognises_signature(self):
        bridge = AnalysisBridge(mock=True)
        assert bridge.enabled

        text = "".join(await collect(bridge.analyze(make_request())))

        assert "OOMKilled" in text

    def test_disabled_without_key_or_mock(self):
        assert not AnalysisBridge().enabled
        assert AnalysisBridge(api_key="sk-test").enabled


class TestAnalysisChannel:
    @pytest.mark.asyncio
    async def test_completed_analysis_emits_fragments_then_status(self):
        sink = FakeSink()
        channel = AnalysisChannel(AnalysisBridge(client=FakeAnthropic(FakeTextStream(["a", "b"]))), sink.send_json)

        analysis_id = channel.start(make_request())
        await channel.wait()

        assert sink.frames == [
            {"analysis": {"id": analysis_id, "fragment": "a"}},
            {"analysis": {"id": analysis_id, "fragment": "b"}},
            {"analysis": {"id": analysis_id, "status": "complete"}},
        ]

    @pytest.mark.asyncio
    async def test_failed_analysis_reports_failed_status(self):
        sink = FakeSink()
        stream = FakeTextStream(["a"], error=RuntimeError("boom"))
        channel = AnalysisChannel(AnalysisBridge(client=FakeAnthropic(stream)), sink.send_json)

        channel.start(make_request())
        await channel.wait()

        assert sink.frames[-1] == {"analysis": {"id": 1, "status": "failed"}}

    @pytest.mark.asyncio
    async def test_cancelled_analysis_never_emits_after_cancel(self):
        sink = FakeSink()
        gate = asyncio.Event()
        stream = FakeTextStream(["first", "second", "third"], gate=gate)
        channel = AnalysisChannel(AnalysisBridge(client=FakeAnthropic(stream)), sink.send_json)

        channel.start(make_request())
        for _ in range(10):
            await asyncio.sleep(0)
        assert sink.frames == [{"analysis": {"id": 1, "fragment": "first"}}]

        channel.cancel()
        gate.set()
        await asyncio.sleep(0.01)

        assert sink.frames == [{"analysis": {"id": 1, "fragment": "first"}}]
        assert not channel.in_flight
        assert stream.exited

    @pytest.mark.asyncio
    async def test_new_request_supersedes_in_flight_one(self):
        sink = FakeSink()
        gate = asyncio.Event()
        slow = FakeTextStream(["old-1", "old-2"], gate=gate)
        fast = FakeTextStream(["new"])
        channel = AnalysisChannel(AnalysisBridge(client=FakeAnthropic(slow, fast)), sink.send_json)

        first_id = channel.start(make_request())
        for _ in range(10):
            await asyncio.sleep(0)
        second_id = channel.start(make_request(question="and now?"))
        gate.set()
        await channel.wait()
        await asyncio.sleep(0.01)

        ids = [frame["analysis"]["id"] for frame in sink.frames]
        assert ids == [first_id, second_id, second_id]
        assert sink.frames[-1] == {"analysis": {"id": second_id, "status": "complete"}}
