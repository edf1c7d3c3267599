"""
Core data models for the PromptQueue system.
These are the universal types shared across all modules.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class DelayUnit(str, Enum):
    SECONDS = "sec"
    MINUTES = "min"


class DispatchStatus(str, Enum):
    SENT = "sent"
    BLOCKED = "blocked"          # host page busy (e.g. a response is still streaming)
    NOT_FOUND = "not_found"      # input / send control not found
    FAILED = "failed"


class StatusKind(str, Enum):
    INFO = "info"
    ERROR = "error"
    SUCCESS = "success"


# ──────────────────────────────────────────────────────────────
#  Queue Item: one prompt waiting to be dispatched
# ──────────────────────────────────────────────────────────────

class QueueItem(BaseModel):
    """A prompt waiting in the queue. `queue_id` is assigned by the store."""
    text: str
    icon: str = ""                            # display label (emoji, short tag)
    queue_id: str = ""
    button_id: Optional[str] = None           # origin reference
    button_index: Optional[int] = None
    autosend: bool = True
    is_manual_card: bool = False
    metadata: dict[str, Any] = {}

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("text must not be empty")
        return value


# ──────────────────────────────────────────────────────────────
#  Dispatch
# ──────────────────────────────────────────────────────────────

class DispatchResult(BaseModel):
    """Outcome reported by a dispatch channel for one item."""
    status: DispatchStatus
    reason: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status == DispatchStatus.SENT


# ──────────────────────────────────────────────────────────────
#  Timing / observability
# ──────────────────────────────────────────────────────────────

class DelaySample(BaseModel):
    """The most recent delay draw."""
    base_ms: int
    offset_ms: int = 0
    total_ms: int
    percent: float = 0
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class QueueStatus(BaseModel):
    text: Optional[str] = None
    kind: StatusKind = StatusKind.INFO
    tooltip: str = ""


class TimerSnapshot(BaseModel):
    is_running: bool
    timer_armed: bool
    dispatch_in_flight: bool
    timer_start_ms: float
    current_delay_ms: float
    remaining_on_pause_ms: float
    progress: float = 0.0                     # 0..1, position of the progress bar


class ControlsState(BaseModel):
    """What a control surface should render for the current engine state."""
    feature_enabled: bool
    queue_length: int
    is_running: bool
    is_paused: bool
    finished: bool
    play_label: str                           # "play" | "pause"
    play_enabled: bool
    play_tooltip: str
    skip_enabled: bool
    skip_tooltip: str
    reset_enabled: bool
    progress_visible: bool


class QueueSnapshot(BaseModel):
    items: list[QueueItem]
    max_size: int
    timer: TimerSnapshot
    status: QueueStatus
    controls: ControlsState
    last_delay_sample: Optional[DelaySample] = None
    jitter_badge: str = ""
