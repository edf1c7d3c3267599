"""
Pre-Dispatch Actions — optional side effects run before an item is sent.

Fixed order: beep → speak → auto-scroll. Each action is best-effort: a
failure is logged and the sequence (and the dispatch cycle) carries on.

The effects themselves are host capabilities injected as callables:
  audio_sink(pcm_bytes, sample_rate)   play 16-bit mono PCM
  announcer(phrase)                    speak a short phrase
  scroller()                           scroll every scrollable container and
                                       the document to the bottom, once
Each may be a plain function or a coroutine function. A missing capability
is logged and skipped.
"""
from __future__ import annotations

import asyncio
import inspect
import math
import struct
import structlog
from typing import Any, Awaitable, Callable, Optional

from config.settings import QueueConfig

logger = structlog.get_logger()

SCROLL_REPETITIONS = 3
SCROLL_DELAY_S = 0.25
SCROLL_FINAL_SETTLE_S = 0.4
SAMPLE_RATE = 22050
NEXT_ITEM_PHRASE = "Next item"

NOTIFICATION_TONE = (880, 250)          # A5, short attention beep

# Rising three-chord motif followed by two sparkle notes: (offset_ms, hz, ms)
COMPLETION_CHIME = [
    (0, 523, 300), (0, 659, 300), (0, 784, 300),
    (320, 587, 280), (320, 740, 280), (320, 880, 280),
    (640, 659, 350), (640, 831, 350), (640, 988, 350),
    (960, 1175, 180),
    (1050, 1568, 180),
]

AudioSink = Callable[[bytes, int], Any]
Announcer = Callable[[str], Any]
Scroller = Callable[[], Any]
Sleep = Callable[[float], Awaitable[Any]]


def generate_tone(frequency: int, duration_ms: int, sample_rate: int = SAMPLE_RATE,
                  volume: float = 0.3) -> bytes:
    """Sine tone as raw 16-bit mono PCM, with a 10ms attack/release envelope."""
    num_samples = int(sample_rate * duration_ms / 1000)
    ramp = max(1, int(sample_rate * 0.01))
    frames = []
    for i in range(num_samples):
        envelope = 1.0
        if i < ramp:
            envelope = i / ramp
        elif i > num_samples - ramp:
            envelope = (num_samples - i) / ramp
        value = int(32767 * volume * envelope * math.sin(2 * math.pi * frequency * i / sample_rate))
        frames.append(struct.pack("<h", value))
    return b"".join(frames)


def mix_tones(notes: list[tuple[int, int, int]], sample_rate: int = SAMPLE_RATE) -> bytes:
    """Overlay (offset_ms, frequency, duration_ms) notes into one PCM buffer."""
    total_ms = max(offset + duration for offset, _, duration in notes)
    mixed = [0] * int(sample_rate * total_ms / 1000)
    volume = 0.6 / max(1, len(notes) // 2)
    for offset_ms, frequency, duration_ms in notes:
        tone = generate_tone(frequency, duration_ms, sample_rate, volume=volume)
        start = int(sample_rate * offset_ms / 1000)
        for i, (value,) in enumerate(struct.iter_unpack("<h", tone)):
            if start + i < len(mixed):
                mixed[start + i] += value
    return b"".join(struct.pack("<h", max(-32768, min(32767, v))) for v in mixed)


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class PreDispatchActions:
    """Runs the enabled pre-dispatch effects in order, each in isolation."""

    def __init__(
        self,
        audio_sink: Optional[AudioSink] = None,
        announcer: Optional[Announcer] = None,
        scroller: Optional[Scroller] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.audio_sink = audio_sink
        self.announcer = announcer
        self.scroller = scroller
        self._sleep = sleep
        self._tone_cache: dict[str, bytes] = {}

    async def run(self, config: QueueConfig) -> list[str]:
        """Run enabled actions; returns the names of those that were attempted."""
        attempted = []
        if config.beep:
            attempted.append("beep")
            await self._best_effort("beep", self.beep)
        if config.speak:
            attempted.append("speak")
            await self._best_effort("speak", self.speak)
        if config.auto_scroll:
            attempted.append("auto_scroll")
            await self._best_effort("auto_scroll", self.auto_scroll)
        return attempted

    async def _best_effort(self, name: str, action: Callable[[], Awaitable[Any]]):
        try:
            await action()
        except Exception as e:
            logger.warning("pre_dispatch_action_failed", action=name, error=str(e))

    def _tone(self, key: str) -> bytes:
        if key not in self._tone_cache:
            if key == "completion":
                self._tone_cache[key] = mix_tones(COMPLETION_CHIME)
            else:
                self._tone_cache[key] = generate_tone(*NOTIFICATION_TONE)
        return self._tone_cache[key]

    async def beep(self):
        if self.audio_sink is None:
            logger.debug("audio_unavailable", action="beep")
            return
        await _call(self.audio_sink, self._tone("notification"), SAMPLE_RATE)
        logger.debug("notification_beep_played")

    async def speak(self):
        if self.announcer is None:
            logger.debug("speech_unavailable", action="speak")
            return
        await _call(self.announcer, NEXT_ITEM_PHRASE)
        logger.debug("next_item_announced")

    async def auto_scroll(self):
        if self.scroller is None:
            logger.debug("scroller_unavailable", action="auto_scroll")
            return
        for attempt in range(SCROLL_REPETITIONS):
            targets = await _call(self.scroller)
            logger.debug("auto_scroll_pass",
                         attempt=attempt + 1,
                         repetitions=SCROLL_REPETITIONS,
                         targets=targets)
            await self._sleep(SCROLL_DELAY_S)
        await self._sleep(SCROLL_FINAL_SETTLE_S)

    async def completion_chime(self):
        """Played when the queue drains; never raises."""
        if self.audio_sink is None:
            return
        try:
            await _call(self.audio_sink, self._tone("completion"), SAMPLE_RATE)
            logger.debug("completion_chime_played")
        except Exception as e:
            logger.warning("completion_chime_failed", error=str(e))
