"""
Event Bus - Decoupled Module Communication
Engines emit events, listeners react. Property status changes reach the
matching engine this way, so a failed matching pass never blocks the save
that triggered it.
"""

from typing import Callable, Dict, List, Any
import logging

logger = logging.getLogger(__name__)


class EventBus:
    """
    Simple synchronous event bus.
    Handlers run in registration order inside emit(); a failing handler is
    logged and the remaining handlers still run.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, handler: Callable):
        """
        Register a handler for an event.

        Args:
            event_name: Name of the event to listen for
            handler: Callable that receives event_data dict
        """
        self._handlers.setdefault(event_name, []).append(handler)
        logger.debug(f"Registered handler for event '{event_name}': {getattr(handler, '__name__', handler)!r}")

    def off(self, event_name: str, handler: Callable):
        """Unregister a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_name, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_name: str, event_data: Dict[str, Any] = None):
        """
        Emit an event to all registered handlers.

        Args:
            event_name: Name of the event
            event_data: Optional dict of data to pass to handlers
        """
        if event_data is None:
            event_data = {}

        logger.debug(f"Emitting event '{event_name}' with data: {event_data}")

        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(event_data)
            except Exception as e:
                logger.error(
                    f"Error in handler {getattr(handler, '__name__', handler)!r} for event '{event_name}': {e}",
                    exc_info=True,
                )

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, []))

    def clear(self):
        """Clear all handlers (useful for testing)."""
        self._handlers.clear()


# Singleton instance
bus = EventBus()


# =============================================================================
# STANDARD EVENTS
# =============================================================================

# Provisioning
EVENT_TENANT_PROVISIONED = 'tenant_provisioned'
EVENT_PROVISIONING_ROLLED_BACK = 'provisioning_rolled_back'
EVENT_PROVISIONING_ROLLBACK_FAILED = 'provisioning_rollback_failed'

# Contracts / properties
EVENT_CONTRACT_STATUS_CHANGED = 'contract_status_changed'
EVENT_PROPERTY_STATUS_CHANGED = 'property_status_changed'
EVENT_TENANT_DELETED = 'tenant_deleted'

# Matching
EVENT_INQUIRY_FILED = 'inquiry_filed'
EVENT_MATCH_CREATED = 'match_created'
EVENT_INQUIRY_STATUS_CHANGED = 'inquiry_status_changed'

# Reminders
EVENT_REMINDER_CONTACTED = 'reminder_contacted'
EVENT_REMINDER_REOPENED = 'reminder_reopened'
EVENT_REMINDER_SNOOZED = 'reminder_snoozed'
