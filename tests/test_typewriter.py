"""
Tests for the typewriter scheduler
"""

import asyncio

import pytest

from services.chat_service.typewriter import (
    TextUnit,
    TypewriterScheduler,
    TypewriterState,
    segment_text,
)


class TestSegmentText:
    """Test splitting text into visual units"""

    def test_plain_text_is_one_unit_per_character(self):
        assert segment_text("abc") == [TextUnit("a"), TextUnit("b"), TextUnit("c")]

    def test_tags_are_atomic(self):
        units = segment_text("a<b>c</b>")

        assert [unit.text for unit in units] == ["a", "<b>", "c", "</b>"]
        assert [unit.is_tag for unit in units] == [False, True, False, True]

    def test_tag_with_attributes(self):
        units = segment_text('<span class="x">hi</span>')

        assert units[0] == TextUnit('<span class="x">', is_tag=True)
        assert units[-1] == TextUnit("</span>", is_tag=True)

    def test_unclosed_angle_bracket_is_plain_text(self):
        assert [unit.text for unit in segment_text("1 < 2")] == ["1", " ", "<", " ", "2"]

    def test_empty_text(self):
        assert segment_text("") == []


class TestTypewriterScheduler:
    """Test incremental reveal and control operations"""

    async def test_reveals_every_prefix_in_order(self):
        updates = []
        typewriter = TypewriterScheduler("Hello", updates.append, interval_ms=0)

        typewriter.start()
        state = await typewriter.wait()

        assert state is TypewriterState.COMPLETE
        assert updates == ["H", "He", "Hel", "Hell", "Hello"]
        assert typewriter.is_complete()

    async def test_start_emits_first_unit_synchronously(self):
        updates = []
        typewriter = TypewriterScheduler("ab", updates.append, interval_ms=1000)

        typewriter.start()

        assert updates == ["a"]
        typewriter.stop()

    async def test_never_exposes_partial_tag(self):
        text = "Hi <b>there</b>!"
        updates = []
        typewriter = TypewriterScheduler(text, updates.append, interval_ms=0)

        typewriter.start()
        await typewriter.wait()

        assert updates[-1] == text
        for partial in updates:
            assert text.startswith(partial)
            assert partial.count("<") == partial.count(">")

    async def test_empty_text_emits_once_and_completes(self):
        updates = []
        typewriter = TypewriterScheduler("", updates.append)

        typewriter.start()

        assert updates == [""]
        assert typewriter.is_complete()
        assert await typewriter.wait() is TypewriterState.COMPLETE

    async def test_stop_prevents_further_updates(self):
        updates = []
        typewriter = TypewriterScheduler("abcdef", updates.append, interval_ms=5)

        typewriter.start()
        await asyncio.sleep(0.012)
        typewriter.stop()
        seen = list(updates)
        await asyncio.sleep(0.03)

        assert updates == seen
        assert typewriter.state is TypewriterState.STOPPED
        assert not typewriter.is_complete()
        assert await typewriter.wait() is TypewriterState.STOPPED

    async def test_stop_is_idempotent_and_start_after_stop_is_noop(self):
        updates = []
        typewriter = TypewriterScheduler("abc", updates.append, interval_ms=1000)

        typewriter.start()
        typewriter.stop()
        typewriter.stop()
        typewriter.start()

        assert updates == ["a"]
        assert typewriter.state is TypewriterState.STOPPED

    async def test_pause_and_resume(self):
        updates = []
        typewriter = TypewriterScheduler("abcdef", updates.append, interval_ms=5)

        typewriter.start()
        typewriter.pause()
        assert typewriter.state is TypewriterState.PAUSED

        await asyncio.sleep(0.03)
        assert updates == ["a"]

        typewriter.start()
        await typewriter.wait()

        assert updates == ["a", "ab", "abc", "abcd", "abcde", "abcdef"]

    async def test_complete_publishes_full_text_once(self):
        updates = []
        typewriter = TypewriterScheduler("abcdef", updates.append, interval_ms=1000)

        typewriter.start()
        typewriter.complete()
        await asyncio.sleep(0)

        assert updates == ["a", "abcdef"]
        assert typewriter.is_complete()
        assert typewriter.revealed_text == "abcdef"

        typewriter.complete()
        assert updates == ["a", "abcdef"]

    async def test_complete_before_start(self):
        updates = []
        typewriter = TypewriterScheduler("abc", updates.append)

        typewriter.complete()

        assert updates == ["abc"]
        assert await typewriter.wait() is TypewriterState.COMPLETE

    async def test_sink_error_stops_and_is_reraised(self):
        calls = []

        def failing_sink(text):
            calls.append(text)
            if len(calls) == 2:
                raise RuntimeError("render failed")

        typewriter = TypewriterScheduler("abcd", failing_sink, interval_ms=0)
        typewriter.start()

        with pytest.raises(RuntimeError, match="render failed"):
            await typewriter.wait()
        assert typewriter.state is TypewriterState.STOPPED
        assert calls == ["a", "ab"]

    def test_negative_interval_rejected(self):
        with pytest.raises(ValueError):
            TypewriterScheduler("abc", lambda text: None, interval_ms=-1)


class ScriptInterrupted(BaseException):
    """Stands in for control-flow signals such as a UI rerun"""


class RecordingLoop:
    """Delegates to the running loop and records every scheduled delay"""

    def __init__(self, loop):
        self.loop = loop
        self.delays = []

    def call_soon(self, callback):
        self.delays.append(0)
        return self.loop.call_soon(callback)

    def call_later(self, delay, callback):
        self.delays.append(delay)
        return self.loop.call_later(delay, callback)

    def create_future(self):
        return self.loop.create_future()


class TestTypewriterInterruption:
    """Test sinks that raise non-Exception signals"""

    async def test_base_exception_from_sink_reaches_wait(self):
        calls = []

        def interrupting_sink(text):
            calls.append(text)
            if len(calls) == 2:
                raise ScriptInterrupted()

        typewriter = TypewriterScheduler("abcd", interrupting_sink, interval_ms=0)
        typewriter.start()

        with pytest.raises(ScriptInterrupted):
            await asyncio.wait_for(typewriter.wait(), 1.0)
        assert typewriter.state is TypewriterState.STOPPED
        assert calls == ["a", "ab"]

    def test_base_exception_on_first_unit_is_kept_for_wait(self):
        loop = asyncio.new_event_loop()
        try:
            def interrupting_sink(text):
                raise ScriptInterrupted()

            typewriter = TypewriterScheduler("ab", interrupting_sink, interval_ms=0, loop=loop)
            typewriter.start()

            assert typewriter.state is TypewriterState.STOPPED
            with pytest.raises(ScriptInterrupted):
                loop.run_until_complete(typewriter.wait())
        finally:
            loop.close()


class TestTypewriterCadence:
    """Test that tags are revealed without a delay"""

    async def test_tags_schedule_no_delay(self):
        loop = RecordingLoop(asyncio.get_running_loop())
        updates = []
        typewriter = TypewriterScheduler("a<b><i>c", updates.append, interval_ms=50, loop=loop)

        typewriter.start()
        await typewriter.wait()

        assert updates == ["a", "a<b>", "a<b><i>", "a<b><i>c"]
        assert loop.delays == [0.05, 0, 0]

    async def test_reveal_timestamps(self):
        loop = asyncio.get_running_loop()
        stamps = []
        typewriter = TypewriterScheduler(
            "a<b><i>c", lambda text: stamps.append((text, loop.time())), interval_ms=50
        )

        started = loop.time()
        typewriter.start()
        await typewriter.wait()

        texts = [text for text, _ in stamps]
        offsets = [stamp - started for _, stamp in stamps]
        assert texts == ["a", "a<b>", "a<b><i>", "a<b><i>c"]
        assert offsets[0] == pytest.approx(0.0, abs=0.01)
        assert offsets[1] >= 0.04
        assert offsets[2] - offsets[1] < 0.02
        assert offsets[3] - offsets[1] < 0.02
