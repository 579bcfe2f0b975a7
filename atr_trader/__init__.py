"""
ATR Partition Trader - risk-based position sizing for discretionary entries

This package turns a manual "enter long/short now" trigger into a set of
independent market orders:
- the stop-loss distance comes from the latest ATR reading times a scale factor
- the total size risks a fixed percentage of the account at that stop
- the size is split into weighted partitions, each with its own take-profit

Modules:
    core: Data model, error taxonomy, event bus and processor base classes
    execution: Position sizing, volume normalization and partition dispatch
    data: Collaborator protocols, ATR tracking and Binance adapters
    paper: In-memory collaborators for simulation and tests
    processors: Entry and label processors driven by the event bus
"""

__version__ = "0.1.0"
__author__ = "ATR Partition Trader Team"
