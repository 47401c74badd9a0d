import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID
from stockledger.models.outbox import OutboxEvent
from stockledger.consumers.stock_alert_consumer import handle_low_stock_alert
from stockledger.events.outbox_utility import LOW_STOCK_ALERT
from stockledger.core.db import init_db, close_db
from stockledger.core.config import POLLING_INTERVAL, MAX_ATTEMPTS, BATCH_SIZE

log = logging.getLogger("outbox_poller")

Handler = Callable[[Dict[str, Any], UUID], Awaitable[None]]

# Routing table: event type -> consumer
EVENT_HANDLERS: Dict[str, Handler] = {
    LOW_STOCK_ALERT: handle_low_stock_alert,
}

def register_handler(event_type: str, handler: Optional[Handler] = None):
    """
    Subscribes a consumer to an event type, replacing any previous one.
    Called without a handler it returns a decorator:

        @register_handler("inventory.low_stock_alert.v1")
        async def notify_admins(payload, event_id): ...
    """
    def _register(func: Handler) -> Handler:
        EVENT_HANDLERS[event_type] = func
        return func

    if handler is None:
        return _register
    return _register(handler)

async def dispatch_event(event: OutboxEvent):
    """
    Routes an OutboxEvent to the consumer registered for its type.
    Events nobody subscribes to are logged and treated as delivered.
    """
    log.info(f"Poller DISPATCHING: {event.event_type} (ID: {event.id.hex[:8]}...)")

    handler = EVENT_HANDLERS.get(event.event_type)
    if handler is None:
        log.warning(f"No handler found for event type: {event.event_type}")
        return
    await handler(event.payload, event.id)

async def poll_outbox_for_new_events() -> int:
    """
    Queries the Outbox table for unpublished events and attempts to dispatch them.
    Returns how many were published.
    """
    # Select events that haven't been published and haven't exceeded max attempts
    events = await OutboxEvent.filter(published=False, attempts__lt=MAX_ATTEMPTS).limit(BATCH_SIZE).order_by('created_at')

    published = 0
    for event in events:
        try:
            await dispatch_event(event)
        except Exception:
            # Increment attempts on failure and leave it for the next poll
            event.attempts += 1
            await event.save(update_fields=['attempts'])
            log.exception(f"Dispatch failed for event {event.id} (attempt {event.attempts}/{MAX_ATTEMPTS}).")
            continue

        event.published = True
        await event.save(update_fields=['published'])
        published += 1
    return published

async def start_outbox_poller():
    """Main loop for the poller service."""
    await init_db()
    log.info("--- Outbox Poller Service Started ---")

    try:
        while True:
            try:
                await poll_outbox_for_new_events()
            except Exception:
                log.exception("Poller encountered a critical DB error.")

            await asyncio.sleep(POLLING_INTERVAL)
    finally:
        await close_db()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    try:
        asyncio.run(start_outbox_poller())
    except KeyboardInterrupt:
        log.info("Poller service stopped.")
