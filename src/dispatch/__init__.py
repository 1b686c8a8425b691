"""Admission queue and single-worker dispatch of suggestion requests."""

from .channels import ChannelRegistry, InMemoryChannelRegistry, SessionValidator
from .gateway import ChannelGateway
from .loop import DispatchLoop, Engine
from .queue import AdmissionQueue

__all__ = [
    "AdmissionQueue",
    "ChannelGateway",
    "ChannelRegistry",
    "DispatchLoop",
    "Engine",
    "InMemoryChannelRegistry",
    "SessionValidator",
]
