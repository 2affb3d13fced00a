import pytest

from log_advisor.analysis.trigger import AnalysisTrigger, LineBuffer
from log_advisor.schemas.analysis import AnalysisMeta

META = AnalysisMeta(namespace="shop", pod="api-7d9f", container="api")


def make_lines(count, start=0):
    return [f"2024-01-20T10:30:{i % 60:02d}Z request handled in {i} ms by worker" for i in range(start, start + count)]


@pytest.fixture
def fired():
    return []


@pytest.fixture
def trigger(fired, clock):
    return AnalysisTrigger(
        META,
        on_trigger=fired.append,
        capacity=100,
        line_threshold=10,
        cooldown_secs=5.0,
        min_new_chars=80,
        tail_lines=50,
        clock=clock,
    )


class TestLineBuffer:
    def test_never_exceeds_capacity(self):
        buf = LineBuffer(3)
        for i in range(10):
            buf.append(f"line {i}")
            assert len(buf) <= 3
        assert list(buf) == ["line 7", "line 8", "line 9"]

    def test_oldest_evicted_first(self):
        buf = LineBuffer(2)
        assert buf.append("a") is None
        assert buf.append("b") is None
        assert buf.append("c") == "a"
        assert buf.append("d") == "b"

    def test_tail_and_clear(self):
        buf = LineBuffer(5)
        for line in "abcde":
            buf.append(line)
        assert buf.tail(2) == ["d", "e"]
        assert buf.tail(0) == []
        buf.clear()
        assert len(buf) == 0

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            LineBuffer(0)


class TestAnalysisTrigger:
    def test_fires_on_tenth_line(self, trigger, fired):
        assert trigger.feed(make_lines(9)) == 0
        assert fired == []
        assert trigger.feed(make_lines(1, start=9)) == 1
        assert len(fired) == 1
        assert fired[0].meta == META

    def test_twelve_lines_fire_once(self, trigger, fired):
        for line in make_lines(12):
            trigger.feed([line])
        assert len(fired) == 1

    def test_second_proposal_within_cooldown_suppressed(self, trigger, fired, clock):
        trigger.feed(make_lines(10))
        clock.now += 1.0
        trigger.feed(make_lines(10, start=10))
        assert len(fired) == 1

    def test_suppressed_proposal_fires_after_cooldown(self, trigger, fired, clock):
        trigger.feed(make_lines(10))
        clock.now += 1.0
        trigger.feed(make_lines(10, start=10))
        clock.now += 5.0
        # Counter was not reset by the suppressed proposal.
        assert trigger.feed(make_lines(1, start=20)) == 1
        assert len(fired) == 2

    def test_too_little_new_text_suppressed(self, fired, clock):
        trigger = AnalysisTrigger(META, fired.append, line_threshold=10, min_new_chars=500, clock=clock)
        trigger.feed(["short"] * 10)
        assert fired == []

    def test_request_uses_tail_window(self, fired, clock):
        trigger = AnalysisTrigger(META, fired.append, line_threshold=60, tail_lines=50, clock=clock)
        lines = make_lines(60)
        trigger.feed(lines)
        assert fired[0].recent_log_chunk.splitlines() == lines[-50:]

    def test_blank_lines_not_buffered(self, trigger):
        trigger.feed(["", "   ", "real line"])
        assert list(trigger.buffer) == ["real line"]

    def test_clear_resets_buffer_and_counter(self, trigger, fired):
        trigger.feed(make_lines(9))
        trigger.clear()
        trigger.feed(make_lines(9))
        assert fired == []
        assert len(trigger.buffer) == 9

    def test_build_request_carries_question(self, trigger):
        trigger.feed(make_lines(3))
        request = trigger.build_request("why is it slow?")
        assert request.question == "why is it slow?"
        assert request.recent_log_chunk.count("\n") == 2
