"""
Tests for pre-dispatch actions.

Covers order (beep → speak → auto-scroll), best-effort isolation, the
scroll repetition schedule, missing host capabilities, and tone generation.
"""
import struct
import pytest
from unittest.mock import AsyncMock, MagicMock

from config.settings import QueueConfig
from prompt_queue.actions import (
    NEXT_ITEM_PHRASE, SAMPLE_RATE, SCROLL_DELAY_S, SCROLL_FINAL_SETTLE_S,
    SCROLL_REPETITIONS, PreDispatchActions, generate_tone, mix_tones,
)


def all_on() -> QueueConfig:
    return QueueConfig(feature_enabled=True, beep=True, speak=True, auto_scroll=True)


class TestPreDispatchActions:
    @pytest.mark.asyncio
    async def test_order(self):
        calls = []
        actions = PreDispatchActions(
            audio_sink=lambda pcm, rate: calls.append("beep"),
            announcer=lambda phrase: calls.append(("speak", phrase)),
            scroller=lambda: calls.append("scroll"),
            sleep=AsyncMock(),
        )
        attempted = await actions.run(all_on())
        assert attempted == ["beep", "speak", "auto_scroll"]
        assert calls == ["beep", ("speak", NEXT_ITEM_PHRASE), "scroll", "scroll", "scroll"]

    @pytest.mark.asyncio
    async def test_disabled_actions_skipped(self):
        sink = MagicMock()
        actions = PreDispatchActions(audio_sink=sink, sleep=AsyncMock())
        attempted = await actions.run(QueueConfig(feature_enabled=True))
        assert attempted == []
        sink.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_isolated(self):
        announcer = AsyncMock()
        scroller = MagicMock(return_value=2)

        def broken_sink(pcm, rate):
            raise RuntimeError("audio device busy")

        actions = PreDispatchActions(audio_sink=broken_sink, announcer=announcer,
                                     scroller=scroller, sleep=AsyncMock())
        attempted = await actions.run(all_on())
        assert attempted == ["beep", "speak", "auto_scroll"]
        announcer.assert_awaited_once_with(NEXT_ITEM_PHRASE)
        assert scroller.call_count == SCROLL_REPETITIONS

    @pytest.mark.asyncio
    async def test_scroll_schedule(self):
        sleep = AsyncMock()
        scroller = MagicMock(return_value=1)
        actions = PreDispatchActions(scroller=scroller, sleep=sleep)
        await actions.auto_scroll()
        assert scroller.call_count == 3
        delays = [c.args[0] for c in sleep.await_args_list]
        assert delays == [SCROLL_DELAY_S] * 3 + [SCROLL_FINAL_SETTLE_S]

    @pytest.mark.asyncio
    async def test_missing_capabilities_are_noops(self):
        actions = PreDispatchActions(sleep=AsyncMock())
        assert await actions.run(all_on()) == ["beep", "speak", "auto_scroll"]

    @pytest.mark.asyncio
    async def test_beep_plays_pcm(self):
        sink = AsyncMock()
        actions = PreDispatchActions(audio_sink=sink)
        await actions.beep()
        pcm, rate = sink.await_args.args
        assert rate == SAMPLE_RATE
        assert len(pcm) == 5512 * 2

    @pytest.mark.asyncio
    async def test_completion_chime_never_raises(self):
        sink = MagicMock(side_effect=OSError("no device"))
        actions = PreDispatchActions(audio_sink=sink)
        await actions.completion_chime()
        sink.assert_called_once()


class TestToneGeneration:
    def test_length_matches_duration(self):
        pcm = generate_tone(440, 100, sample_rate=8000)
        assert len(pcm) == 800 * 2

    def test_envelope_starts_silent(self):
        pcm = generate_tone(880, 50, sample_rate=8000)
        first, = struct.unpack_from("<h", pcm, 0)
        assert first == 0

    def test_mix_spans_latest_note(self):
        pcm = mix_tones([(0, 440, 100), (200, 660, 100)], sample_rate=8000)
        assert len(pcm) == 2400 * 2
