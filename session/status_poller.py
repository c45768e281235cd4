"""
Consultation presence poller.

Polls the consultation status endpoint on a fixed interval and reports
changes. Purely informational: the video session never depends on it.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from api.client import ApiError
from api.consultation import ConsultationApi, VideoRoomStatus
from config import STATUS_POLL_CONFIG

logger = logging.getLogger("consult-video.status-poller")


class ConsultationStatusPoller:
    """
    Example:
        poller = ConsultationStatusPoller(api, "c-1", on_update=print)
        poller.start()
        ...
        await poller.stop()
    """

    def __init__(
        self,
        api: ConsultationApi,
        consultation_id: str,
        on_update: Optional[Callable[[VideoRoomStatus], Any]] = None,
        interval: Optional[float] = None,
    ):
        self._api = api
        self.consultation_id = consultation_id
        self._on_update = on_update
        self.interval = interval if interval is not None else STATUS_POLL_CONFIG["interval"]

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.last_status: Optional[VideoRoomStatus] = None
        self.polls = 0
        self.errors = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._running = True
            self._task = asyncio.ensure_future(self._poll_loop())
            logger.info(f"Polling status of {self.consultation_id} every {self.interval:.1f}s")
        return self._task

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def poll_once(self) -> Optional[VideoRoomStatus]:
        """Fetches the status once; returns it, or None on error."""
        self.polls += 1
        try:
            status = await self._api.get_room_status(self.consultation_id)
        except ApiError as e:
            self.errors += 1
            logger.warning(f"Status poll failed: {e}")
            return None

        if status != self.last_status:
            self.last_status = status
            if self._on_update is not None:
                result = self._on_update(status)
                if inspect.isawaitable(result):
                    await result
        return status

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.errors += 1
                logger.error(f"Status poller error: {e}")
                await asyncio.sleep(self.interval)
