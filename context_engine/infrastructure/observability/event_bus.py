from typing import Dict, List, Callable, Optional
import inspect
import structlog

from .events import BaseEngineEvent, EngineEventType

logger = structlog.get_logger(__name__)


class EventBus:
    """Dispatches structured engine events to registered handlers"""

    def __init__(self):
        self.event_handlers: Dict[EngineEventType, List[Callable]] = {}
        self.wildcard_handlers: List[Callable] = []

    def register_handler(self, event_type: Optional[EngineEventType], handler: Callable):
        """Register a handler for one event type, or for every event when event_type is None"""

        if event_type is None:
            self.wildcard_handlers.append(handler)
            return

        if event_type not in self.event_handlers:
            self.event_handlers[event_type] = []
        self.event_handlers[event_type].append(handler)

    def unregister_handler(self, event_type: Optional[EngineEventType], handler: Callable) -> bool:
        """Remove a previously registered handler"""

        handlers = self.wildcard_handlers if event_type is None else self.event_handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    async def emit(self, event: BaseEngineEvent):
        """Emit an event to every matching handler; handler errors never propagate"""

        handlers = self.event_handlers.get(event.type, []) + self.wildcard_handlers

        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Error in event handler",
                           event_type=event.type.value,
                           handler=getattr(handler, "__name__", repr(handler)),
                           error=str(e))


class RecordingHandler:
    """Event handler that keeps every event it receives, in order"""

    def __init__(self):
        self.events: List[BaseEngineEvent] = []

    def __call__(self, event: BaseEngineEvent):
        self.events.append(event)

    def of_type(self, event_type: EngineEventType) -> List[BaseEngineEvent]:
        return [event for event in self.events if event.type == event_type]
