"""
Event Processors for ATR Partition Trader

- EntryProcessor: Sizes entries and dispatches partition orders
- LabelProcessor: Keeps the Buy/Sell trigger labels current

Examples:
    >>> bus = EventBus()
    >>> await bus.start()
    >>> orchestrator = EventOrchestrator(bus)
    >>> orchestrator.register(LabelProcessor(bus, feed, ui))
    >>> orchestrator.register(EntryProcessor(bus, feed, account, gateway, ui))
    >>> await orchestrator.start_all()
"""

from .entry_processor import EntryProcessor, EntryTicket
from .label_processor import LabelProcessor, format_label

__all__ = [
    "EntryProcessor",
    "EntryTicket",
    "LabelProcessor",
    "format_label",
]
