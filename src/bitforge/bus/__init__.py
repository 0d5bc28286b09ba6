"""Observer/background messaging."""

from bitforge.bus.channel import BusSender, MessageBus
from bitforge.bus.messages import (
    AppMessage,
    BitcoinVersionsLoaded,
    ConfirmRequest,
    DialogMessage,
    ElectrsVersionsLoaded,
    LogMessage,
    ProgressMessage,
    ReplyDropped,
    TaskDone,
)

__all__ = [
    "MessageBus",
    "BusSender",
    "AppMessage",
    "LogMessage",
    "ProgressMessage",
    "BitcoinVersionsLoaded",
    "ElectrsVersionsLoaded",
    "DialogMessage",
    "TaskDone",
    "ConfirmRequest",
    "ReplyDropped",
]
