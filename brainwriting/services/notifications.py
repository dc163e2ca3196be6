"""Realtime event publishing with a local logging fallback."""

import enum
import logging
from typing import Optional

import httpx

from brainwriting.config import settings

logger = logging.getLogger(__name__)


class BrainwritingEvent(str, enum.Enum):
    USER_JOINED = "USER_JOINED"
    BRAINWRITING_STARTED = "BRAINWRITING_STARTED"
    SHEET_ROTATED = "SHEET_ROTATED"
    SHEET_FINISHED = "SHEET_FINISHED"


def channel_for(board_id: int) -> str:
    return f"/brainwriting/{board_id}"


class NotificationPublisher:
    """
    Tell realtime observers of a board that something changed.

    Publishing is a side effect of a committed change: delivery failures are
    logged and never raised back into the coordinator.
    """

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        self.url = settings.REALTIME_PUBLISH_URL if url is None else url
        self.timeout = timeout or settings.REALTIME_TIMEOUT_SECONDS

    async def publish(self, board_id: int, event: BrainwritingEvent) -> None:
        payload = {
            "channel": channel_for(board_id),
            "data": {"type": event.value},
        }

        # ── Simulation mode ──
        if not self.url:
            logger.info(f"Simulated realtime event {event.value} on {payload['channel']}")
            return

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=payload)
                resp.raise_for_status()
            logger.debug(f"Published {event.value} for board {board_id}")
        except Exception as e:
            logger.warning(f"Failed to publish {event.value} for board {board_id}: {e}", exc_info=True)
