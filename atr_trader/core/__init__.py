"""
Core module for the event-driven trader.

This module provides the foundational components:
- EventBus: Publish-subscribe event system
- EventProcessor / EventOrchestrator: Processor base class and lifecycle
- models: Risk, partition, sizing and order value objects
- errors: Trade entry error taxonomy
"""

from .errors import (
    TradeEntryError,
    InvalidParameter,
    DegenerateStop,
    PartitionArityMismatch,
    MarketDataUnavailable,
    SubmissionFailure,
)
from .event_bus import EventBus, Event, EventType
from .event_processor import EventProcessor, EventOrchestrator

__all__ = [
    "TradeEntryError",
    "InvalidParameter",
    "DegenerateStop",
    "PartitionArityMismatch",
    "MarketDataUnavailable",
    "SubmissionFailure",
    "EventBus",
    "Event",
    "EventType",
    "EventProcessor",
    "EventOrchestrator",
]
