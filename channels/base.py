"""
Dispatch Channels — the collaborator that hands a prompt to the host page.

Provides:
- ChannelError / DispatchError: structured error hierarchy
- DispatchMetrics: per-channel outcome and latency tracking
- DispatchChannel: abstract base wrapping every dispatch with metrics
- LoggingDispatchChannel: development channel that only logs
- CallableDispatchChannel: adapts any async function to the interface

A channel is invoked at most once per dispatch cycle and never retries a
delivered request on its own; whatever it returns or raises is interpreted
by the scheduling engine.
"""
from __future__ import annotations

import abc
import inspect
import time
import structlog
from typing import Any, Awaitable, Callable, Optional

from models.schemas import DispatchResult, DispatchStatus

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
#  ERRORS
# ══════════════════════════════════════════════════════════════

class ChannelError(Exception):
    """Base exception for all channel operations."""

    def __init__(self, message: str, channel: str = ""):
        self.channel = channel
        super().__init__(message)


class DispatchError(ChannelError):
    """The host bridge could not be reached or answered with garbage."""


# ══════════════════════════════════════════════════════════════
#  METRICS
# ══════════════════════════════════════════════════════════════

class DispatchMetrics:
    """Tracks per-channel outcomes and latency."""

    def __init__(self, channel: str):
        self.channel = channel
        self.counts: dict[str, int] = {s.value: 0 for s in DispatchStatus}
        self.errors: int = 0
        self._latencies: list[float] = []
        self._recent_errors: list[str] = []

    def record(self, status: DispatchStatus, latency_ms: float = 0.0):
        self.counts[status.value] += 1
        if latency_ms > 0:
            self._latencies.append(latency_ms)

    def record_error(self, error: str):
        self.errors += 1
        self._recent_errors.append(error)

    @property
    def avg_latency_ms(self) -> float:
        return sum(self._latencies) / len(self._latencies) if self._latencies else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel": self.channel,
            **self.counts,
            "errors": self.errors,
            "avg_latency_ms": round(self.avg_latency_ms, 1),
            "recent_errors": self._recent_errors[-10:],
        }


# ══════════════════════════════════════════════════════════════
#  DISPATCH CHANNEL: abstract base
# ══════════════════════════════════════════════════════════════

class DispatchChannel(abc.ABC):
    """
    Base class for dispatch channels.

    Subclasses implement _do_dispatch and receive the prompt text verbatim.
    The base class times the call and records the outcome. Exceptions are
    recorded and re-raised unchanged.
    """

    name: str = "channel"

    def __init__(self):
        self.metrics = DispatchMetrics(self.name)

    @abc.abstractmethod
    async def _do_dispatch(self, text: str, force_auto_send: bool) -> DispatchResult:
        ...

    async def dispatch(self, text: str, force_auto_send: bool = True) -> DispatchResult:
        start = time.monotonic()
        try:
            result = await self._do_dispatch(text, force_auto_send)
        except Exception as e:
            self.metrics.record_error(str(e))
            raise
        self.metrics.record(result.status, (time.monotonic() - start) * 1000)
        return result

    async def close(self):
        pass


class LoggingDispatchChannel(DispatchChannel):
    """Development channel: logs the prompt and reports it as sent."""

    name = "log"

    def __init__(self):
        super().__init__()
        self.sent: list[str] = []

    async def _do_dispatch(self, text: str, force_auto_send: bool) -> DispatchResult:
        self.sent.append(text)
        logger.info("prompt_dispatched", channel=self.name, chars=len(text),
                    force_auto_send=force_auto_send)
        return DispatchResult(status=DispatchStatus.SENT)


DispatchFn = Callable[[str, bool], Any]


class CallableDispatchChannel(DispatchChannel):
    """
    Wraps a function `fn(text, force_auto_send)` returning a DispatchResult,
    a {"status", "reason"} dict, or an awaitable of either.
    """

    name = "callable"

    def __init__(self, fn: DispatchFn, name: Optional[str] = None):
        if name:
            self.name = name
        super().__init__()
        self._fn = fn

    async def _do_dispatch(self, text: str, force_auto_send: bool) -> DispatchResult:
        result = self._fn(text, force_auto_send)
        if inspect.isawaitable(result):
            result = await result
        return coerce_result(result)


def coerce_result(raw: Any) -> DispatchResult:
    """Normalize whatever a collaborator returned into a DispatchResult."""
    if isinstance(raw, DispatchResult):
        return raw
    if raw is None:
        # A collaborator that returns nothing is treated as having sent.
        return DispatchResult(status=DispatchStatus.SENT)
    if isinstance(raw, dict):
        try:
            return DispatchResult(status=DispatchStatus(raw.get("status", "sent")),
                                  reason=raw.get("reason"))
        except ValueError as e:
            raise DispatchError(f"Unknown dispatch status: {raw.get('status')!r}") from e
    raise DispatchError(f"Unexpected dispatch result: {raw!r}")
