"""
Status surface — human-readable queue status, the finished indicator, and
the derived state a control panel renders (play/pause, skip, reset,
progress bar, jitter badge).
"""
from __future__ import annotations

import structlog
from typing import Callable, Optional

from config.settings import QueueConfig
from models.schemas import ControlsState, DelaySample, QueueStatus, StatusKind
from prompt_queue.delay import base_delay_ms, clamp_jitter_percent, format_delay_for_unit, normalize_unit

logger = structlog.get_logger()

StatusListener = Callable[[QueueStatus, bool], None]


# ──────────────────────────────────────────────────────────────
#  Failure messages
# ──────────────────────────────────────────────────────────────

WAITING_TEXT = "Waiting for AI..."
WAITING_TOOLTIP = ("Paused while the AI is typing. Resume the queue once the "
                   "Stop button disappears.")

_DEFAULT_FAIL_TOOLTIP = ("Unable to find the send button. Please check if the AI is still "
                         "generating or if the page layout has changed.")

_FAILURE_MESSAGES = {
    "send_button_timeout": (
        "Send Timeout",
        "Timed out waiting for the send button. The AI might be generating a long "
        "response, or the button selector is broken.",
    ),
    "post-stop-missing-send": (
        "Send Button Missing",
        "The Stop button disappeared, but the Send button did not reappear. "
        "The page state might be inconsistent.",
    ),
}


def describe_failure(reason: Optional[str]) -> tuple[str, str]:
    """Map a dispatch failure reason code to (label, tooltip)."""
    if reason in _FAILURE_MESSAGES:
        return _FAILURE_MESSAGES[reason]
    if reason:
        return "Send Failed", f"Reason: {reason}. {_DEFAULT_FAIL_TOOLTIP}"
    return "Send Failed", _DEFAULT_FAIL_TOOLTIP


# ──────────────────────────────────────────────────────────────
#  Status surface
# ──────────────────────────────────────────────────────────────

class StatusSurface:
    """Holds the current status label and the finished flag."""

    def __init__(self):
        self.status = QueueStatus()
        self.finished = False
        self._listeners: list[StatusListener] = []

    def add_listener(self, listener: StatusListener):
        self._listeners.append(listener)

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener(self.status, self.finished)
            except Exception as e:
                logger.warning("status_listener_failed", error=str(e))

    def set_status(self, text: Optional[str], kind: StatusKind = StatusKind.INFO,
                   tooltip: str = ""):
        if not text:
            self.status = QueueStatus()
        else:
            self.status = QueueStatus(text=text, kind=StatusKind(kind), tooltip=tooltip or text)
            logger.info("queue_status", text=text, kind=self.status.kind.value)
        self._notify()

    def mark_finished(self):
        self.finished = True
        logger.info("queue_finished")
        self._notify()

    def clear_finished_state(self):
        if self.finished:
            self.finished = False
            self._notify()


# ──────────────────────────────────────────────────────────────
#  Derived control state
# ──────────────────────────────────────────────────────────────

def build_controls_state(
    config: QueueConfig,
    queue_length: int,
    is_running: bool,
    remaining_on_pause_ms: float,
    finished: bool,
) -> ControlsState:
    has_items = queue_length > 0
    is_paused = remaining_on_pause_ms > 0

    if not config.feature_enabled:
        return ControlsState(
            feature_enabled=False,
            queue_length=queue_length,
            is_running=is_running,
            is_paused=is_paused,
            finished=finished,
            play_label="play",
            play_enabled=False,
            play_tooltip="Enable Queue Mode to start.",
            skip_enabled=False,
            skip_tooltip="Enable Queue Mode to skip.",
            reset_enabled=False,
            progress_visible=False,
        )

    if is_running:
        play_label, play_enabled, play_tooltip = "pause", True, "Pause the queue."
    elif not has_items and not is_paused:
        play_label, play_enabled = "play", False
        play_tooltip = "Queue is empty. Add prompts to the queue, then start it."
    else:
        play_label, play_enabled, play_tooltip = "play", True, "Start sending the queued prompts."

    if not has_items:
        skip_enabled, skip_tooltip = False, "No queued prompts to skip."
    elif is_running:
        skip_enabled, skip_tooltip = True, "Skip to the next queued prompt immediately."
    else:
        skip_enabled, skip_tooltip = True, "Send the next queued prompt immediately."

    return ControlsState(
        feature_enabled=True,
        queue_length=queue_length,
        is_running=is_running,
        is_paused=is_paused,
        finished=finished,
        play_label=play_label,
        play_enabled=play_enabled,
        play_tooltip=play_tooltip,
        skip_enabled=skip_enabled,
        skip_tooltip=skip_tooltip,
        reset_enabled=has_items or is_running or is_paused,
        progress_visible=is_running or is_paused or has_items,
    )


def jitter_badge_text(config: QueueConfig, sample: Optional[DelaySample]) -> str:
    """Tooltip for the random-delay badge."""
    percent = clamp_jitter_percent(config.jitter_percent)
    if not config.jitter_enabled:
        return (f"Random delay offset disabled. Enable to add up to {percent}% "
                f"of the base delay.")

    unit = normalize_unit(config.delay_unit)
    text = f"Random delay offset enabled (up to {percent}% of base delay)."
    if sample is not None:
        total_ms = sample.total_ms or sample.base_ms
        text += (f" Last sample: {format_delay_for_unit(total_ms, unit)} "
                 f"({format_delay_for_unit(sample.offset_ms, unit)} offset).")
    else:
        text += f" Base delay: {format_delay_for_unit(base_delay_ms(config), unit)}."
    return text
