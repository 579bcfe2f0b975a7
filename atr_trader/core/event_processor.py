"""
Processor lifecycle for the trader's event pipeline.

Two kinds of processors hang off the EventBus: the LabelProcessor, which
redraws the Buy / Sell trigger labels on MARKET_TICK, and the
EntryProcessor, which sizes and dispatches an entry for every
ENTER_LONG_REQUESTED / ENTER_SHORT_REQUESTED trigger. EventProcessor gives
them a common start/stop contract and a way to report aborted work as
ERROR events; EventOrchestrator starts and stops them as one unit for the
TradingApp.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List

from loguru import logger

from .event_bus import Event, EventBus, EventType


class EventProcessor(ABC):
    """
    Base class for processors subscribed to the trader's event bus.

    start() runs _on_start() (counter resets, initial label render) and only
    then subscribes the handlers, so no trigger is handled by a processor
    that is not ready. stop() unsubscribes first and then runs _on_stop(),
    where the EntryProcessor waits for partitions still reporting outcomes.
    Both calls are idempotent.

    Subclasses implement _register_handlers() / _unregister_handlers().
    """

    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus
        self._is_started = False
        self._component = type(self).__name__

    async def start(self) -> None:
        """
        Prepare the processor and subscribe its handlers.

        Raises:
            Exception: Whatever _on_start() or registration raised; the
                processor stays stopped
        """
        if self._is_started:
            logger.debug(f"{self._component} already started")
            return

        logger.info(f"Starting {self._component}")
        try:
            await self._on_start()
            self._register_handlers()
        except Exception as e:
            logger.error(f"Failed to start {self._component}: {e}")
            raise

        self._is_started = True
        logger.info(f"{self._component} started")

    async def stop(self) -> None:
        """
        Unsubscribe the handlers and let in-flight work finish.

        Shutdown errors are logged; the processor is marked stopped anyway.
        """
        if not self._is_started:
            logger.debug(f"{self._component} already stopped")
            return

        logger.info(f"Stopping {self._component}")
        try:
            self._unregister_handlers()
            await self._on_stop()
            logger.info(f"{self._component} stopped")
        except Exception as e:
            logger.error(f"Error during {self._component} shutdown: {e}")
        finally:
            self._is_started = False

    @abstractmethod
    def _register_handlers(self) -> None:
        pass

    @abstractmethod
    def _unregister_handlers(self) -> None:
        pass

    async def _on_start(self) -> None:
        pass

    async def _on_stop(self) -> None:
        pass

    async def _publish_error(self, error: Exception, context: str) -> None:
        """
        Report a failure (e.g. an aborted entry) as an ERROR event.

        The payload carries the exception class name under "error_type" so
        subscribers can tell a PartitionArityMismatch from a DegenerateStop.
        A bus that is not running is logged, never raised.
        """
        try:
            await self.event_bus.publish(
                Event(
                    event_type=EventType.ERROR,
                    data={
                        "error_type": type(error).__name__,
                        "error_message": str(error),
                        "component": self._component,
                        "context": context,
                        "timestamp": datetime.now(timezone.utc)
                    },
                    source=self._component
                )
            )
            logger.debug(f"{self._component} reported {type(error).__name__} ({context})")
        except Exception as e:
            logger.error(f"Failed to publish ERROR event: {e}")

    @property
    def is_running(self) -> bool:
        return self._is_started


class EventOrchestrator:
    """
    Starts and stops the trader's processors together.

    Start order is registration order (labels before entries, so the
    trader sees labels before a trigger can be handled); stop order is the
    reverse. One processor failing to start is logged and the rest still
    start; only a total failure raises.

    Examples:
        >>> orchestrator = EventOrchestrator(bus)
        >>> orchestrator.register(LabelProcessor(bus, feed, ui))
        >>> orchestrator.register(EntryProcessor(bus, feed, account, gateway, ui))
        >>> await orchestrator.start_all()
        >>> await orchestrator.stop_all()
    """

    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus
        self._processors: List[EventProcessor] = []

    def register(self, processor: EventProcessor) -> None:
        self._processors.append(processor)
        logger.info(f"Registered {type(processor).__name__} (#{len(self._processors)})")

    async def start_all(self) -> None:
        """
        Raises:
            RuntimeError: If no registered processor could be started
        """
        logger.info(f"Starting {len(self._processors)} processor(s)")

        failed = []
        for processor in self._processors:
            try:
                await processor.start()
            except Exception as e:
                logger.error(f"Failed to start {type(processor).__name__}: {e}")
                failed.append(type(processor).__name__)

        if self._processors and len(failed) == len(self._processors):
            raise RuntimeError("All processors failed to start")
        if failed:
            logger.warning(
                f"{len(failed)} of {len(self._processors)} processor(s) failed to start: "
                f"{', '.join(failed)}"
            )
        else:
            logger.info("All processors started")

    async def stop_all(self) -> None:
        logger.info(f"Stopping {len(self._processors)} processor(s)")
        for processor in reversed(self._processors):
            await processor.stop()
        logger.info("All processors stopped")

    @property
    def processor_count(self) -> int:
        return len(self._processors)

    @property
    def running_count(self) -> int:
        return sum(1 for p in self._processors if p.is_running)
