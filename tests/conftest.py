"""Shared test fixtures for PromptQueue."""
import pytest
from typing import Any

from config.settings import QueueConfig, Settings, SettingsConfigProvider
from models.schemas import DispatchResult, DispatchStatus, QueueItem
from prompt_queue.actions import PreDispatchActions
from prompt_queue.engine import QueueEngine
from prompt_queue.scheduler import VirtualScheduler


async def no_sleep(_seconds: float):
    return None


class ScriptedChannel:
    """
    Records every dispatch. Outcomes are taken from `results` in order
    (a DispatchResult, a dict, or an exception to raise); once the script
    runs out every dispatch reports "sent".
    """

    def __init__(self, *results: Any):
        self.results = list(results)
        self.calls: list[tuple[str, bool]] = []
        self.closed = False

    @property
    def texts(self) -> list[str]:
        return [text for text, _ in self.calls]

    async def dispatch(self, text: str, force_auto_send: bool = True):
        self.calls.append((text, force_auto_send))
        if self.results:
            outcome = self.results.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return DispatchResult(status=DispatchStatus.SENT)

    async def close(self):
        self.closed = True


@pytest.fixture
def queue_config() -> QueueConfig:
    """Queue mode on, one-minute delay, no jitter, no side effects."""
    return QueueConfig(feature_enabled=True, delay_unit="min", delay_minutes=1)


@pytest.fixture
def provider(queue_config) -> SettingsConfigProvider:
    return SettingsConfigProvider(Settings(queue=queue_config))


@pytest.fixture
def scheduler() -> VirtualScheduler:
    return VirtualScheduler()


@pytest.fixture
def channel() -> ScriptedChannel:
    return ScriptedChannel()


@pytest.fixture
def actions() -> PreDispatchActions:
    return PreDispatchActions(sleep=no_sleep)


@pytest.fixture
def engine(provider, channel, scheduler, actions) -> QueueEngine:
    return QueueEngine(provider, channel, scheduler, actions=actions)


@pytest.fixture
def fill():
    """Add `count` prompts named "prompt 1".."prompt N" to an engine."""
    def _fill(engine: QueueEngine, count: int) -> list[QueueItem]:
        return [
            engine.add(QueueItem(text=f"prompt {i}", icon=str(i)))
            for i in range(1, count + 1)
        ]
    return _fill
