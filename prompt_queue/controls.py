"""
Queue Controls — settings changes that have to re-enter the engine.

A delay, unit or jitter change while a wait is armed re-fits that wait;
turning queue mode off freezes the engine in place (items and remaining time
are kept, nothing is cleared).
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

from config.settings import QueueConfig, SettingsConfigProvider
from models.schemas import DelaySample
from prompt_queue.delay import base_delay_ms, clamp_delay_value, clamp_jitter_percent, normalize_unit
from prompt_queue.engine import QueueEngine

logger = structlog.get_logger()

ACTION_FLAGS = ("auto_scroll", "beep", "speak", "finish_beep")


class QueueControls:
    """Applies configuration changes through the provider, then nudges the engine."""

    def __init__(self, engine: QueueEngine, provider: SettingsConfigProvider):
        self.engine = engine
        self.provider = provider

    @property
    def config(self) -> QueueConfig:
        return self.provider.current()

    async def set_enabled(self, enabled: bool):
        self.engine.status.clear_finished_state()
        self.provider.update(feature_enabled=bool(enabled))

        if not enabled:
            if self.engine.is_running or self.engine.remaining_on_pause_ms > 0:
                logger.info("queue_mode_disabled", action="freeze")
            else:
                logger.info("queue_mode_disabled", action="preserve_items")
            self.engine.pause()
        else:
            logger.info("queue_mode_enabled", length=len(self.engine.store))

    async def set_delay(self, value: Any = None, unit: Optional[str] = None):
        """Change the delay value and/or unit; the value is clamped for its unit."""
        if unit is not None:
            self.provider.update(delay_unit=normalize_unit(unit))
        active_unit = normalize_unit(self.config.delay_unit)

        if value is not None:
            clamped = clamp_delay_value(value, active_unit)
            if active_unit == "sec":
                self.provider.update(delay_seconds=clamped)
            else:
                self.provider.update(delay_minutes=clamped)
            logger.info("queue_delay_changed", value=clamped, unit=active_unit)

        await self.engine.recalculate()

    async def toggle_unit(self):
        unit = "sec" if normalize_unit(self.config.delay_unit) == "min" else "min"
        await self.set_delay(unit=unit)

    async def set_jitter(self, enabled: Optional[bool] = None, percent: Any = None):
        if percent is not None:
            self.provider.update(jitter_percent=clamp_jitter_percent(percent))
            if self.engine.last_delay_sample is not None:
                self.engine.last_delay_sample.percent = self.config.jitter_percent

        if enabled is not None:
            self.provider.update(jitter_enabled=bool(enabled))
            if enabled:
                self.provider.update(jitter_percent=clamp_jitter_percent(self.config.jitter_percent))
            # The badge shows an un-jittered sample until the next real draw.
            base = base_delay_ms(self.config)
            self.engine.last_delay_sample = DelaySample(
                base_ms=base, offset_ms=0, total_ms=base,
                percent=clamp_jitter_percent(self.config.jitter_percent),
            )
            logger.info("queue_jitter_toggled", enabled=bool(enabled))

        await self.engine.recalculate()

    def set_actions(self, **flags: Optional[bool]):
        changes = {k: bool(v) for k, v in flags.items() if v is not None}
        unknown = set(changes) - set(ACTION_FLAGS)
        if unknown:
            raise ValueError(f"Unknown action flag(s): {', '.join(sorted(unknown))}")
        if changes:
            self.provider.update(**changes)
            logger.info("queue_actions_changed", **changes)

    async def apply(self, changes: dict[str, Any]):
        """Apply a partial settings update in the order the panel would."""
        if "feature_enabled" in changes and changes["feature_enabled"] is not None:
            await self.set_enabled(changes["feature_enabled"])

        self.set_actions(**{k: changes.get(k) for k in ACTION_FLAGS if k in changes})

        if changes.get("delay_value") is not None or changes.get("delay_unit") is not None:
            await self.set_delay(changes.get("delay_value"), changes.get("delay_unit"))

        if changes.get("jitter_enabled") is not None or changes.get("jitter_percent") is not None:
            await self.set_jitter(changes.get("jitter_enabled"), changes.get("jitter_percent"))
