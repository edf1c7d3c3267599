"""
Delay Calculator — base delay, jittered delay and delay formatting.

Pure functions over a QueueConfig. The only state produced is the returned
DelaySample; the engine keeps the most recent one for observability.
"""
from __future__ import annotations

import math
import random
import structlog
from datetime import datetime
from typing import Any, Optional

from config.settings import QueueConfig
from models.schemas import DelaySample

logger = structlog.get_logger()


SECONDS_MIN = 10
MINUTES_MIN = 1
DELAY_MAX = 64000
DEFAULT_SECONDS = 300
DEFAULT_MINUTES = 5
DEFAULT_JITTER_PERCENT = 5


def _finite(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_unit(unit: Any) -> str:
    return "sec" if unit == "sec" else "min"


def base_delay_ms(config: QueueConfig) -> int:
    """Configured delay in milliseconds, clamped to the unit's bounds."""
    if normalize_unit(config.delay_unit) == "sec":
        seconds = _finite(config.delay_seconds)
        if seconds is None:
            seconds = DEFAULT_SECONDS
        seconds = min(max(SECONDS_MIN, seconds), DELAY_MAX)
        return int(round(seconds * 1000))

    minutes = _finite(config.delay_minutes)
    if minutes is None:
        minutes = DEFAULT_MINUTES
    minutes = min(max(MINUTES_MIN, minutes), DELAY_MAX)
    return int(round(minutes * 60 * 1000))


def delay_with_jitter(
    config: QueueConfig,
    rng: random.Random = None,
) -> tuple[int, DelaySample]:
    """
    Draw the total delay for the next wait.

    With jitter enabled, a uniform integer offset in [0, round(base * p / 100)]
    is added to the base. Every call is an independent draw; `rng` exists only
    so tests can substitute a deterministic source.
    """
    base_ms = base_delay_ms(config)
    total_ms = base_ms
    offset_ms = 0

    percent = _finite(config.jitter_percent)
    if percent is None:
        percent = DEFAULT_JITTER_PERCENT

    if config.jitter_enabled:
        percent = max(0.0, percent)
        max_offset_ms = int(round(base_ms * (percent / 100)))
        if max_offset_ms > 0:
            offset_ms = (rng or random).randint(0, max_offset_ms)
            total_ms = base_ms + offset_ms
            logger.debug("jitter_applied",
                         base_ms=base_ms,
                         offset_ms=offset_ms,
                         max_offset_ms=max_offset_ms)

    sample = DelaySample(
        base_ms=base_ms,
        offset_ms=offset_ms,
        total_ms=total_ms,
        percent=percent,
        timestamp=datetime.utcnow(),
    )
    return total_ms, sample


def format_delay_for_unit(ms: Any, unit: str) -> str:
    value = _finite(ms)
    unit = normalize_unit(unit)
    if value is None or value <= 0:
        return "0s" if unit == "sec" else "0min"
    if unit == "sec":
        seconds = value / 1000
        return f"{seconds:.0f}s" if seconds.is_integer() else f"{seconds:.1f}s"
    minutes = value / 60000
    return f"{minutes:.0f}min" if minutes.is_integer() else f"{minutes:.2f}min"


def clamp_delay_value(value: Any, unit: str) -> int:
    """Clamp a user-entered delay value the way the delay input does."""
    minimum = SECONDS_MIN if normalize_unit(unit) == "sec" else MINUTES_MIN
    number = _finite(value)
    if number is None:
        return minimum
    number = int(number)
    if number < minimum:
        return minimum
    return min(number, DELAY_MAX)


def clamp_jitter_percent(value: Any) -> int:
    number = _finite(value)
    if number is None:
        return DEFAULT_JITTER_PERCENT
    return min(100, max(0, int(round(number))))
