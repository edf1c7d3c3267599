"""
Queue Scheduling Engine — the state machine that drains the prompt queue.

States (derived, not stored):
  idle      queue empty, not running, no paused remainder
  paused    not running, with items and/or a paused remainder
  running   a wait is armed, or a dispatch cycle is in flight
  frozen    paused via the feature-disable path (same engine state as paused)

Flow:
  start / skip / seek / recalculate / timer fire
    → advance()                              single transition function
        → pre-dispatch actions               beep → speak → auto-scroll
        → dequeue head                       item is gone from here on
        → dispatch channel                   at most once per cycle
        → sent:     draw delay, arm next wait (or finish)
          other:    status message, pause

Everything runs on one event loop. The only suspension points are the armed
wait, the pre-dispatch actions and the dispatch call; configuration is
re-read after each of them and the stop conditions re-checked.

Usage:
    engine = QueueEngine(SettingsConfigProvider(settings), channel, AsyncioScheduler())
    engine.add(QueueItem(text="Summarize the thread", icon="📝"))
    await engine.start()
"""
from __future__ import annotations

import random
import structlog
from typing import Any, Optional, Protocol

from channels.base import coerce_result
from config.settings import QueueConfig
from models.schemas import (
    DelaySample, DispatchStatus, QueueItem, QueueSnapshot, StatusKind, TimerSnapshot,
)
from prompt_queue.actions import PreDispatchActions
from prompt_queue.delay import delay_with_jitter, format_delay_for_unit
from prompt_queue.scheduler import AsyncioScheduler, Scheduler
from prompt_queue.status import (
    WAITING_TEXT, WAITING_TOOLTIP, StatusSurface, build_controls_state, describe_failure,
    jitter_badge_text,
)
from prompt_queue.store import QueueStore

logger = structlog.get_logger()

# A seek that leaves this little of the wait is treated as "at the end".
SEEK_IMMEDIATE_THRESHOLD_MS = 20


class ConfigProvider(Protocol):
    def current(self) -> QueueConfig:
        ...


class Dispatcher(Protocol):
    async def dispatch(self, text: str, force_auto_send: bool = True) -> Any:
        ...


class QueueEngine:
    """Owns the queue, the delay timer, and the dispatch cycle."""

    def __init__(
        self,
        config: ConfigProvider,
        dispatcher: Dispatcher,
        scheduler: Scheduler = None,
        store: QueueStore = None,
        actions: PreDispatchActions = None,
        status: StatusSurface = None,
        rng: random.Random = None,
    ):
        self.config = config
        self.dispatcher = dispatcher
        self.scheduler = scheduler or AsyncioScheduler()
        self.store = store or QueueStore()
        self.actions = actions or PreDispatchActions()
        self.status = status or StatusSurface()
        self._rng = rng

        # Timer state
        self.is_running = False
        self.timer_handle: Any = None
        self.timer_start_ms: float = 0.0
        self.current_delay_ms: float = 0.0
        self.remaining_on_pause_ms: float = 0.0
        self.last_delay_sample: Optional[DelaySample] = None

        self._in_flight = False
        self._timer_generation = 0

    # ──────────────────────────────────────────────────────────
    #  Introspection
    # ──────────────────────────────────────────────────────────

    @property
    def enabled(self) -> bool:
        return bool(self.config.current().feature_enabled)

    @property
    def timer_armed(self) -> bool:
        return self.timer_handle is not None

    @property
    def dispatch_in_flight(self) -> bool:
        return self._in_flight

    @property
    def state(self) -> str:
        if self.is_running:
            return "running"
        if self.remaining_on_pause_ms > 0 or self.store:
            return "paused" if self.enabled else "frozen"
        return "idle"

    def progress(self) -> float:
        """Position of the current wait, 0..1."""
        total = self.current_delay_ms
        if total <= 0:
            return 0.0
        if self.timer_armed:
            elapsed = self.scheduler.now_ms() - self.timer_start_ms
        elif self.remaining_on_pause_ms > 0:
            elapsed = total - self.remaining_on_pause_ms
        else:
            return 0.0
        return min(max(elapsed / total, 0.0), 1.0)

    def snapshot(self) -> QueueSnapshot:
        config = self.config.current()
        return QueueSnapshot(
            items=self.store.items(),
            max_size=self.store.max_size,
            timer=TimerSnapshot(
                is_running=self.is_running,
                timer_armed=self.timer_armed,
                dispatch_in_flight=self._in_flight,
                timer_start_ms=self.timer_start_ms,
                current_delay_ms=self.current_delay_ms,
                remaining_on_pause_ms=self.remaining_on_pause_ms,
                progress=self.progress(),
            ),
            status=self.status.status,
            controls=build_controls_state(
                config,
                queue_length=len(self.store),
                is_running=self.is_running,
                remaining_on_pause_ms=self.remaining_on_pause_ms,
                finished=self.status.finished,
            ),
            last_delay_sample=self.last_delay_sample,
            jitter_badge=jitter_badge_text(config, self.last_delay_sample),
        )

    # ──────────────────────────────────────────────────────────
    #  Queue contents
    # ──────────────────────────────────────────────────────────

    def add(self, item: QueueItem) -> Optional[QueueItem]:
        """Enqueue a prompt. Returns None when queue mode is off or the queue is full."""
        if not self.enabled:
            logger.info("queue_add_ignored", reason="queue_mode_disabled")
            return None
        entry = self.store.enqueue(item)
        if entry is not None:
            self.status.clear_finished_state()
        return entry

    def remove(self, index: int) -> Optional[QueueItem]:
        removed = self.store.remove_at(index)
        if removed is not None:
            self.status.clear_finished_state()
        return removed

    def move(self, from_index: int, to_index: int) -> bool:
        return self.store.move(from_index, to_index)

    def acknowledge_finished(self):
        self.status.clear_finished_state()

    # ──────────────────────────────────────────────────────────
    #  Timer plumbing
    # ──────────────────────────────────────────────────────────

    def _arm(self, delay_ms: float):
        """Arm the single wait. Any previous wait is cancelled first."""
        self._cancel_timer()
        self._timer_generation += 1
        generation = self._timer_generation

        async def fire():
            # A superseded timer may still reach us if it fired just before
            # being cancelled; only the latest one may advance the queue.
            if generation != self._timer_generation:
                return
            self.timer_handle = None
            self.remaining_on_pause_ms = 0
            await self.advance()

        self.timer_handle = self.scheduler.arm(delay_ms, fire)

    def _cancel_timer(self) -> bool:
        if self.timer_handle is None:
            return False
        self.scheduler.cancel(self.timer_handle)
        self.timer_handle = None
        self._timer_generation += 1
        return True

    def _draw_delay(self, config: QueueConfig) -> int:
        total_ms, sample = delay_with_jitter(config, self._rng)
        self.last_delay_sample = sample
        return total_ms

    # ──────────────────────────────────────────────────────────
    #  Operations
    # ──────────────────────────────────────────────────────────

    async def start(self):
        """Begin a fresh run, or resume a paused wait with exactly its remainder."""
        if not self.enabled:
            logger.info("queue_start_ignored", reason="queue_mode_disabled")
            return

        self.status.clear_finished_state()

        if self.is_running or (not self.store and self.remaining_on_pause_ms <= 0):
            return
        self.is_running = True

        if self.remaining_on_pause_ms > 0:
            remaining = self.remaining_on_pause_ms
            elapsed_before_pause = self.current_delay_ms - remaining
            self.timer_start_ms = self.scheduler.now_ms() - elapsed_before_pause
            self.remaining_on_pause_ms = 0
            self._arm(remaining)
            logger.info("queue_resumed", remaining_ms=remaining)
        else:
            logger.info("queue_started", length=len(self.store))
            await self.advance()

    def pause(self):
        """Stop the run. An armed wait is cancelled and its remainder kept."""
        self.is_running = False

        if self._cancel_timer():
            elapsed = self.scheduler.now_ms() - self.timer_start_ms
            self.remaining_on_pause_ms = max(0.0, self.current_delay_ms - elapsed)
            logger.info("queue_paused", remaining_ms=self.remaining_on_pause_ms)
        else:
            logger.debug("queue_paused", remaining_ms=self.remaining_on_pause_ms)

    def reset(self):
        """Stop, drop every queued item, and forget the timer."""
        self.pause()
        self.store.clear()
        self.remaining_on_pause_ms = 0.0
        self.timer_start_ms = 0.0
        self.current_delay_ms = 0.0
        self.status.clear_finished_state()
        self.status.set_status(None)
        logger.info("queue_reset")

    async def skip(self):
        """Send the head item now, bypassing what is left of the wait."""
        if not self.enabled:
            logger.info("queue_skip_ignored", reason="queue_mode_disabled")
            return
        if not self.store:
            logger.info("queue_skip_ignored", reason="queue_empty")
            return

        was_paused = not self.is_running
        self._cancel_timer()
        self.remaining_on_pause_ms = 0
        self.is_running = True

        logger.info("queue_skip", was_paused=was_paused)
        await self.advance()

        if was_paused and self.is_running:
            self.pause()

    async def seek(self, ratio: float):
        """Move the current wait to `ratio` of its total, like dragging a progress bar."""
        if not self.enabled:
            logger.info("queue_seek_ignored", reason="queue_mode_disabled")
            return

        total = self.current_delay_ms
        if total <= 0:
            logger.info("queue_seek_ignored", reason="no_active_delay")
            return

        try:
            ratio = float(ratio)
        except (TypeError, ValueError):
            ratio = 0.0
        if ratio != ratio:  # NaN
            ratio = 0.0
        ratio = min(max(ratio, 0.0), 1.0)
        elapsed = ratio * total
        remaining = max(total - elapsed, 0.0)
        unit = self.config.current().delay_unit

        if self.is_running and self.timer_armed:
            self._cancel_timer()

            if remaining <= SEEK_IMMEDIATE_THRESHOLD_MS:
                logger.info("queue_seek_to_end")
                self.remaining_on_pause_ms = 0
                self.timer_start_ms = self.scheduler.now_ms() - total
                await self.advance()
                return

            self.timer_start_ms = self.scheduler.now_ms() - elapsed
            self.remaining_on_pause_ms = 0
            self._arm(remaining)
            logger.info("queue_seek",
                        percent=round(ratio * 100),
                        remaining=format_delay_for_unit(remaining, unit))
        elif not self.is_running and self.remaining_on_pause_ms > 0:
            self.remaining_on_pause_ms = remaining
            logger.info("queue_seek_paused",
                        percent=round(ratio * 100),
                        remaining=format_delay_for_unit(remaining, unit))
        else:
            logger.info("queue_seek_ignored", reason="no_timer")

    async def recalculate(self):
        """Re-fit the armed wait to a changed delay / jitter configuration."""
        config = self.config.current()
        if not config.feature_enabled:
            logger.debug("queue_recalculate_skipped", reason="queue_mode_disabled")
            return
        if not self.is_running or not self.timer_armed:
            return

        self._cancel_timer()
        elapsed = self.scheduler.now_ms() - self.timer_start_ms
        new_total = self._draw_delay(config)

        if elapsed >= new_total:
            logger.info("queue_recalculate_elapsed", elapsed_ms=elapsed, new_total_ms=new_total)
            self.remaining_on_pause_ms = 0
            await self.advance()
            return

        self.current_delay_ms = new_total
        self._arm(new_total - elapsed)
        logger.info("queue_recalculated", new_total_ms=new_total,
                    remaining_ms=new_total - elapsed)

    async def shutdown(self):
        self.pause()
        stop = getattr(self.scheduler, "shutdown", None)
        if stop is not None:
            await stop()
        close = getattr(self.dispatcher, "close", None)
        if close is not None:
            await close()

    # ──────────────────────────────────────────────────────────
    #  Dispatch cycle
    # ──────────────────────────────────────────────────────────

    def _halt_if_stopped(self, stage: str) -> bool:
        """The three stop conditions. Pauses and returns True if any holds."""
        if not self.enabled:
            logger.info("queue_frozen", reason="queue_mode_disabled", stage=stage)
            self.pause()
            return True
        if not self.is_running:
            self.pause()
            return True
        if not self.store:
            logger.info("queue_empty", stage=stage)
            self.pause()
            return True
        return False

    async def advance(self):
        """Dispatch the head item and schedule what comes next."""
        if self._in_flight:
            logger.debug("advance_ignored", reason="dispatch_in_flight")
            return
        if self._halt_if_stopped("before_actions"):
            return

        self._in_flight = True
        try:
            await self._cycle()
        finally:
            self._in_flight = False

    async def _cycle(self):
        try:
            await self.actions.run(self.config.current())
        except Exception as e:
            logger.warning("pre_dispatch_actions_failed", error=str(e))

        if self._halt_if_stopped("after_actions"):
            return

        item = self.store.dequeue_head()
        if item is None:
            self.pause()
            return

        logger.info("dispatching_item", queue_id=item.queue_id, text=item.text[:50])
        self.status.set_status(None)

        try:
            result = coerce_result(await self.dispatcher.dispatch(item.text, force_auto_send=True))
        except Exception as e:
            logger.error("dispatch_error", queue_id=item.queue_id, error=str(e))
            self.status.set_status(f"Error: {str(e) or 'Dispatch failed'}", StatusKind.ERROR)
            self.pause()
            return

        if result.status == DispatchStatus.BLOCKED:
            logger.info("dispatch_blocked", queue_id=item.queue_id)
            self.status.set_status(WAITING_TEXT, StatusKind.INFO, WAITING_TOOLTIP)
            self.pause()
            return

        if result.status in (DispatchStatus.NOT_FOUND, DispatchStatus.FAILED):
            logger.warning("dispatch_failed",
                           queue_id=item.queue_id,
                           status=result.status.value,
                           reason=result.reason)
            label, tooltip = describe_failure(result.reason)
            self.status.set_status(label, StatusKind.ERROR, tooltip)
            self.pause()
            return

        self.status.set_status(None)
        await self._after_sent()

    async def _after_sent(self):
        config = self.config.current()

        if self.store:
            total = self._draw_delay(config)
            self.timer_start_ms = self.scheduler.now_ms()
            self.current_delay_ms = total

            if self.is_running:
                self.remaining_on_pause_ms = 0
                self._arm(total)
                sample = self.last_delay_sample
                logger.info("waiting_for_next_item",
                            total=format_delay_for_unit(total, config.delay_unit),
                            offset_ms=sample.offset_ms if sample else 0,
                            remaining_items=len(self.store))
            else:
                # Paused while the dispatch was in flight: keep the new wait frozen.
                self.remaining_on_pause_ms = total
                logger.info("queue_paused_after_dispatch", remaining_ms=total)
            return

        was_running = self.is_running
        self.pause()
        if was_running:
            logger.info("all_items_sent")
            self.status.mark_finished()
            if config.finish_beep:
                await self.actions.completion_chime()
