"""
Testes do view model da superfície de controle.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from api.client import ApiError
from api.consultation import ConsultationApi
from providers.agora import AgoraDriver, AgoraDriverConfig
from providers.errors import UnsupportedProviderError
from providers.mock_sdk import MockAgoraSDK, MockSDKError
from session.control_surface import (
    CAMERA_OFF_LABEL,
    CONNECTED_LABEL,
    CONNECTING_LABEL,
    DEFAULT_ISSUE_DESCRIPTION,
    LOADING_TEXT,
    TOKEN_ERROR_TEXT,
    WAITING_TITLE,
    ControlSurface,
    SurfaceStatus,
    format_elapsed,
)
from session.media_sink import MemoryMediaSink, MountRegistry
from session.models import JoinParams


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def _settle(rounds: int = 10):
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def sdk():
    return MockAgoraSDK()


@pytest.fixture
def mounts():
    registry = MountRegistry()
    registry.register("local-video", MemoryMediaSink("local-video"))
    registry.register("remote-video", MemoryMediaSink("remote-video"))
    return registry


@pytest.fixture
def driver(sdk, mounts):
    params = JoinParams(
        app_id=123,
        token="t1",
        room_id="room-1",
        user_id="patient-1",
        user_name="Pat",
        local_mount_id="local-video",
        remote_mount_id="remote-video",
    )
    return AgoraDriver(params, mounts, config=AgoraDriverConfig(join_timeout=2.0, teardown_grace=1.0), sdk=sdk)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def surface(clock):
    return ControlSurface(consultation_id="c-1", clock=clock)


class TestView:
    """Mapeamento estado -> view."""

    def test_initial_view_is_loading(self, surface):
        view = surface.view

        assert view.status is SurfaceStatus.LOADING
        assert view.message == LOADING_TEXT
        assert view.controls_enabled is False
        assert view.can_retry is False

    def test_bound_idle_driver_is_connecting(self, surface, driver):
        surface.bind(driver)

        view = surface.view
        assert view.status is SurfaceStatus.CONNECTING
        assert view.status_label == CONNECTING_LABEL
        assert view.show_placeholder is True
        assert view.timer is None

    @pytest.mark.asyncio
    async def test_connected_without_remote_shows_waiting(self, surface, driver):
        surface.bind(driver)
        await driver.join()

        view = surface.view
        assert view.status is SurfaceStatus.LIVE
        assert view.status_label == CONNECTED_LABEL
        assert view.show_placeholder is True
        assert view.placeholder_title == WAITING_TITLE
        assert view.controls_enabled is True

    @pytest.mark.asyncio
    async def test_remote_arrival_hides_placeholder(self, surface, driver, sdk):
        surface.bind(driver)
        await driver.join()

        sdk.client.simulate_user_published("doctor-1", "video")
        await _settle()

        view = surface.view
        assert view.remote_present is True
        assert view.show_placeholder is False
        assert view.placeholder_title is None

    @pytest.mark.asyncio
    async def test_timer_counts_from_connect(self, surface, driver, clock):
        surface.bind(driver)
        await driver.join()

        assert surface.view.timer == "00:00"
        clock.now += 65
        assert surface.view.timer == "01:05"

    @pytest.mark.asyncio
    async def test_camera_off_hides_preview(self, surface, driver):
        surface.bind(driver)
        await driver.join()

        assert await surface.toggle_camera() is True

        view = surface.view
        assert view.is_video_off is True
        assert view.local_preview_hidden is True
        assert view.local_preview_label == CAMERA_OFF_LABEL

    @pytest.mark.asyncio
    async def test_failure_stays_on_screen(self, clock, driver, sdk):
        on_end = MagicMock()
        surface = ControlSurface(consultation_id="c-1", on_end=on_end, clock=clock)
        sdk.fail("create_tracks", MockSDKError("NOT_READABLE", "device in use"))
        surface.bind(driver)

        await driver.join()

        view = surface.view
        assert view.status is SurfaceStatus.FAILED
        assert view.error_chip == f"Status: {driver.state.last_error}"
        assert view.can_retry is True
        assert view.controls_enabled is False
        on_end.assert_not_called()

    def test_show_token_error(self, surface):
        surface.show_token_error()

        view = surface.view
        assert view.status is SurfaceStatus.TOKEN_ERROR
        assert view.message == TOKEN_ERROR_TEXT
        assert view.can_retry is True

    def test_show_unsupported(self, surface):
        surface.show_unsupported(UnsupportedProviderError("twilio"))

        view = surface.view
        assert view.status is SurfaceStatus.UNSUPPORTED
        assert "twilio" in view.message
        assert view.can_retry is False

    def test_on_change_receives_views(self, clock):
        views = []
        surface = ControlSurface(on_change=views.append, clock=clock)

        surface.show_token_error()
        surface.toggle_fullscreen()

        assert [view.status for view in views] == [SurfaceStatus.TOKEN_ERROR, SurfaceStatus.TOKEN_ERROR]

    def test_format_elapsed(self):
        assert format_elapsed(0) == "00:00"
        assert format_elapsed(59.9) == "00:59"
        assert format_elapsed(3725) == "62:05"
        assert format_elapsed(-3) == "00:00"


class TestIntents:
    """Ações do usuário repassadas ao driver."""

    @pytest.mark.asyncio
    async def test_toggles_without_driver_do_nothing(self, surface):
        assert await surface.toggle_microphone() is False
        assert await surface.toggle_camera() is False

    @pytest.mark.asyncio
    async def test_toggle_microphone_relays(self, surface, driver, sdk):
        surface.bind(driver)
        await driver.join()

        assert await surface.toggle_microphone() is True
        assert surface.view.is_muted is True
        assert ("set_muted", "audio", True) in sdk.calls

    def test_fullscreen_flips(self, surface):
        assert surface.toggle_fullscreen() is True
        assert surface.toggle_fullscreen() is False

    def test_default_preview_position(self, surface):
        assert surface.view.preview_position == (1064, 24)

    def test_move_preview_is_clamped(self, surface):
        assert surface.move_preview(-50, 900) == (0, 612)
        assert surface.move_preview(5000, 5) == (1088, 5)
        assert surface.view.preview_position == (1088, 5)

    @pytest.mark.asyncio
    async def test_end_call_leaves_then_notifies_once(self, clock, driver, sdk):
        on_end = MagicMock()
        surface = ControlSurface(consultation_id="c-1", on_end=on_end, clock=clock)
        surface.bind(driver)
        await driver.join()

        await surface.end_call()
        await surface.end_call()

        assert on_end.call_count == 1
        assert driver.is_torn_down is True
        assert sdk.client.leave_count == 1
        assert surface.view.status is SurfaceStatus.ENDED
        assert surface.view.controls_enabled is False

    @pytest.mark.asyncio
    async def test_end_call_awaits_async_callback(self, clock):
        on_end = AsyncMock()
        surface = ControlSurface(on_end=on_end, clock=clock)

        await surface.end_call()

        on_end.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_report_issue(self, clock):
        api = MagicMock(spec=ConsultationApi)
        api.report_issue = AsyncMock(return_value=None)
        surface = ControlSurface(consultation_id="c-1", api=api, clock=clock)

        assert await surface.report_issue() is True

        api.report_issue.assert_awaited_once_with("c-1", "connection", DEFAULT_ISSUE_DESCRIPTION)

    @pytest.mark.asyncio
    async def test_report_issue_failure_returns_false(self, clock):
        api = MagicMock(spec=ConsultationApi)
        api.report_issue = AsyncMock(side_effect=ApiError("Server error", 500))
        surface = ControlSurface(consultation_id="c-1", api=api, clock=clock)

        assert await surface.report_issue("audio", "no sound") is False

    @pytest.mark.asyncio
    async def test_report_issue_without_api(self, surface):
        assert await surface.report_issue() is False
