"""
Prompt Queue — sequential, delay-spaced dispatch of queued prompts.

- Store holds up to MAX_SIZE prompts, FIFO
- Engine drains it one item at a time with a configurable, optionally
  jittered delay; pause/resume keep the exact remaining time
- Dispatch outcomes other than "sent" pause the engine with a status message
"""
from prompt_queue.actions import PreDispatchActions, generate_tone
from prompt_queue.controls import QueueControls
from prompt_queue.delay import (
    base_delay_ms, clamp_delay_value, clamp_jitter_percent, delay_with_jitter,
    format_delay_for_unit,
)
from prompt_queue.engine import SEEK_IMMEDIATE_THRESHOLD_MS, QueueEngine
from prompt_queue.manual_cards import ManualCard, enqueue_all_valid, enqueue_card
from prompt_queue.scheduler import AsyncioScheduler, Scheduler, VirtualScheduler
from prompt_queue.status import StatusSurface
from prompt_queue.store import MAX_SIZE, QueueStore

__all__ = [
    "QueueEngine", "QueueStore", "QueueControls", "StatusSurface", "PreDispatchActions",
    "Scheduler", "AsyncioScheduler", "VirtualScheduler",
    "ManualCard", "enqueue_card", "enqueue_all_valid",
    "base_delay_ms", "delay_with_jitter", "format_delay_for_unit",
    "clamp_delay_value", "clamp_jitter_percent", "generate_tone",
    "MAX_SIZE", "SEEK_IMMEDIATE_THRESHOLD_MS",
]
