"""
Testes do poller de presença da consulta.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from api.client import ApiError
from api.consultation import ConsultationApi, VideoRoomStatus
from session.status_poller import ConsultationStatusPoller

WAITING = VideoRoomStatus(is_active=True, doctor_joined=True, patient_joined=False)
BOTH = VideoRoomStatus(is_active=True, doctor_joined=True, patient_joined=True)


def _api(*results) -> MagicMock:
    api = MagicMock(spec=ConsultationApi)
    api.get_room_status = AsyncMock(side_effect=list(results))
    return api


class TestPollOnce:
    """Polls avulsos."""

    @pytest.mark.asyncio
    async def test_update_only_on_change(self):
        updates = []
        poller = ConsultationStatusPoller(_api(WAITING, WAITING, BOTH), "c-1", on_update=updates.append)

        await poller.poll_once()
        await poller.poll_once()
        await poller.poll_once()

        assert updates == [WAITING, BOTH]
        assert poller.last_status == BOTH
        assert poller.polls == 3

    @pytest.mark.asyncio
    async def test_async_callback(self):
        on_update = AsyncMock()
        poller = ConsultationStatusPoller(_api(WAITING), "c-1", on_update=on_update)

        await poller.poll_once()

        on_update.assert_awaited_once_with(WAITING)

    @pytest.mark.asyncio
    async def test_api_error_is_counted(self):
        updates = []
        poller = ConsultationStatusPoller(
            _api(ApiError("Server error", 500), WAITING), "c-1", on_update=updates.append
        )

        assert await poller.poll_once() is None
        assert await poller.poll_once() == WAITING

        assert poller.errors == 1
        assert updates == [WAITING]


class TestPollLoop:
    """start() / stop()"""

    @pytest.mark.asyncio
    async def test_loop_polls_until_stopped(self):
        api = MagicMock(spec=ConsultationApi)
        api.get_room_status = AsyncMock(return_value=WAITING)
        poller = ConsultationStatusPoller(api, "c-1", interval=0.01)

        poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()

        assert poller.is_running is False
        assert api.get_room_status.await_count >= 2
        calls = api.get_room_status.await_count
        await asyncio.sleep(0.03)
        assert api.get_room_status.await_count == calls

    @pytest.mark.asyncio
    async def test_start_twice_returns_same_task(self):
        api = MagicMock(spec=ConsultationApi)
        api.get_room_status = AsyncMock(return_value=WAITING)
        poller = ConsultationStatusPoller(api, "c-1", interval=0.01)

        first = poller.start()
        second = poller.start()
        await poller.stop()

        assert first is second

    @pytest.mark.asyncio
    async def test_callback_error_does_not_stop_loop(self):
        api = MagicMock(spec=ConsultationApi)
        api.get_room_status = AsyncMock(side_effect=[WAITING, BOTH, BOTH, BOTH, BOTH, BOTH])
        on_update = MagicMock(side_effect=[RuntimeError("render failed"), None])
        poller = ConsultationStatusPoller(api, "c-1", on_update=on_update, interval=0.01)

        poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()

        assert poller.errors >= 1
        assert on_update.call_count == 2
