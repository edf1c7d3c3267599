"""Dispatch channels: the collaborators that deliver a prompt to the host page."""
from channels.base import (
    CallableDispatchChannel,
    ChannelError,
    DispatchChannel,
    DispatchError,
    DispatchMetrics,
    LoggingDispatchChannel,
    coerce_result,
)
from channels.http_bridge import HttpDispatchChannel
from config.settings import DispatchConfig


def create_dispatch_channel(config: DispatchConfig = None) -> DispatchChannel:
    """Factory: create the configured dispatch channel."""
    config = config or DispatchConfig()
    if config.type == "http":
        return HttpDispatchChannel(config)
    return LoggingDispatchChannel()


__all__ = [
    "DispatchChannel", "ChannelError", "DispatchError", "DispatchMetrics",
    "LoggingDispatchChannel", "CallableDispatchChannel",
    "HttpDispatchChannel", "coerce_result", "create_dispatch_channel",
]
