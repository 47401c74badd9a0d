import logging
from typing import Dict, Any
from uuid import UUID

log = logging.getLogger("stock_alert_consumer")

async def handle_low_stock_alert(event_payload: Dict[str, Any], event_id: UUID):
    """
    Consumer logic for 'inventory.low_stock_alert.v1'.
    Raised by a sale that left available stock at or below the reorder level.
    """
    log.warning(
        f"LOW STOCK: product {event_payload.get('product_id')} has "
        f"{event_payload.get('available')} units available "
        f"(reorder level {event_payload.get('reorder_level')}, "
        f"suggested reorder {event_payload.get('reorder_quantity')}). Event {event_id}"
    )
