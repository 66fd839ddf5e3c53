"""
Kill Uploader

Queues kill events and POSTs them as JSON to a kill-tracking server.
emit() never does network I/O; the queue is drained by flush().
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from ..base import KillFeedTool
from ..models import KillEvent
from .base import EventSink

logger = logging.getLogger(__name__)


@dataclass
class QueuedEvent:
    event: KillEvent
    attempts: int = 0


class KillUploader(KillFeedTool, EventSink):
    """Event sink that uploads events to a remote API with a Bearer token."""

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the uploader.

        Args:
            config: Configuration dictionary ('upload' section; the token usually comes from secrets)
        """
        super().__init__(config)
        self._setup_client()
        self.queue: "OrderedDict[str, QueuedEvent]" = OrderedDict()
        self.sent_count = 0
        self.failed_count = 0

    def _setup_client(self) -> None:
        self.url = self.get_config('upload.url', '')
        self.token = self.get_config('upload.token', '')
        self.timeout = self.get_config('upload.timeout', 10)
        self.max_queue = self.get_config('upload.max_queue', 200)
        self.max_attempts = self.get_config('upload.max_attempts', 3)

        if not self.url:
            logger.warning("No upload URL configured. Events will be queued but not sent.")
        if not self.token:
            logger.warning("No upload token provided. Uploads will likely be rejected.")

        self.headers = {"Authorization": f"Bearer {self.token}"}

    def emit(self, event: KillEvent):
        """Queue an event; a newer revision replaces a queued one with the same id."""
        if event.id in self.queue:
            self.queue[event.id] = QueuedEvent(event)
            logger.debug(f"Replaced queued upload for {event.id} with revision {event.revision}")
            return

        self.queue[event.id] = QueuedEvent(event)
        while len(self.queue) > self.max_queue:
            dropped, _ = self.queue.popitem(last=False)
            logger.warning(f"Upload queue full, dropping {dropped}")

    def _post(self, event: KillEvent) -> Dict[str, Any]:
        """
        POST one event.

        Raises:
            requests.RequestException: If the request fails.
        """
        try:
            response = requests.post(
                self.url,
                headers=self.headers,
                json=event.to_dict(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return {"status": response.status_code}
        except requests.RequestException as e:
            logger.error(f"Upload of {event.id} failed: {e}")
            if hasattr(e, 'response') and e.response is not None:
                logger.error(f"Response: {e.response.text}")
            raise

    def flush(self) -> Dict[str, int]:
        """
        Try to send every queued event once.

        Failed events stay queued for the next flush until they have failed
        max_attempts times.

        Returns:
            Dictionary with 'sent', 'failed' (given up this flush) and 'queued' counts
        """
        if not self.url or not self.queue:
            return {"sent": 0, "failed": 0, "queued": len(self.queue)}

        sent = 0
        failed = 0
        for event_id in list(self.queue):
            item = self.queue[event_id]
            try:
                self._post(item.event)
            except requests.RequestException:
                item.attempts += 1
                if item.attempts >= self.max_attempts:
                    del self.queue[event_id]
                    failed += 1
                    logger.error(f"Giving up on {event_id} after {item.attempts} attempts")
                continue

            del self.queue[event_id]
            sent += 1
            logger.debug(f"Uploaded {event_id} (revision {item.event.revision})")

        self.sent_count += sent
        self.failed_count += failed
        logger.info(f"Upload flush: {sent} sent, {failed} failed, {len(self.queue)} still queued")
        return {"sent": sent, "failed": failed, "queued": len(self.queue)}

    def run(self) -> Dict[str, int]:
        return self.flush()
