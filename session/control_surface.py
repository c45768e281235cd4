"""
Unified control surface.

Rendering-agnostic view model over whichever driver is bound. It mirrors the
driver's ConnectionState into a SurfaceView and relays user intents (mic,
camera, fullscreen, end call, report issue). It owns no call state of its own
and never redirects on error: failures stay on screen as a status chip.
"""

import inspect
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from api.client import ApiError
from api.consultation import ConsultationApi
from providers.base import ConnectionState, DriverState, SessionDriver
from providers.errors import VideoSessionError

logger = logging.getLogger("consult-video.control-surface")

# Texts shown by the panel
LOADING_TEXT = "Initializing Secure Connection..."
TOKEN_ERROR_TEXT = "Failed to load video configuration"
WAITING_TITLE = "Waiting for others to join..."
WAITING_BODY = "You are in the secure room. The video will start automatically when they arrive."
CONNECTED_LABEL = "Encrypted • HD"
CONNECTING_LABEL = "Connecting..."
CAMERA_OFF_LABEL = "Camera Off"
LOCAL_BADGE = "You"
DEFAULT_ISSUE_DESCRIPTION = "User reported connection issue"


class SurfaceStatus(Enum):
    LOADING = "loading"
    CONNECTING = "connecting"
    LIVE = "live"
    FAILED = "failed"
    ENDED = "ended"
    UNSUPPORTED = "unsupported"
    TOKEN_ERROR = "token_error"


@dataclass(frozen=True)
class SurfaceView:
    """Everything the rendering layer needs for one frame."""

    status: SurfaceStatus
    status_label: str = CONNECTING_LABEL
    message: Optional[str] = None
    """Full-panel message (loading, token error, unsupported provider)."""

    show_placeholder: bool = False
    placeholder_title: Optional[str] = None
    placeholder_body: Optional[str] = None
    error_chip: Optional[str] = None
    warning: Optional[str] = None

    is_muted: bool = False
    is_video_off: bool = False
    remote_present: bool = False
    local_preview_hidden: bool = False
    local_preview_label: Optional[str] = None
    local_badge: str = LOCAL_BADGE
    preview_position: Tuple[int, int] = (0, 0)

    is_fullscreen: bool = False
    timer: Optional[str] = None
    can_retry: bool = False
    controls_enabled: bool = False


def format_elapsed(seconds: float) -> str:
    """Formats a duration as MM:SS (minutes keep counting past 59)."""
    total = max(0, int(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"


class ControlSurface:
    """
    View model bound to at most one driver.

    Example:
        surface = ControlSurface(consultation_id="c-1", api=api, on_end=close_panel)
        surface.bind(driver)
        await surface.toggle_microphone()
        print(surface.view.status_label)
    """

    def __init__(
        self,
        consultation_id: str = "",
        api: Optional[ConsultationApi] = None,
        on_end: Optional[Callable[[], Any]] = None,
        on_change: Optional[Callable[[SurfaceView], None]] = None,
        surface_size: Tuple[int, int] = (1280, 720),
        preview_size: Tuple[int, int] = (192, 108),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.consultation_id = consultation_id
        self._api = api
        self._on_end = on_end
        self._on_change = on_change
        self._surface_size = surface_size
        self._preview_size = preview_size
        self._clock = clock

        self._driver: Optional[SessionDriver] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._state = ConnectionState()
        self._status = SurfaceStatus.LOADING
        self._message: Optional[str] = LOADING_TEXT
        self._is_fullscreen = False
        self._ending = False
        self._connected_since: Optional[float] = None

        # Top-right corner, like the picture-in-picture default
        self._preview_position = (max(0, surface_size[0] - preview_size[0] - 24), 24)

    # ==================== Binding ====================

    @property
    def driver(self) -> Optional[SessionDriver]:
        return self._driver

    @property
    def status(self) -> SurfaceStatus:
        return self._status

    def bind(self, driver: SessionDriver) -> None:
        """Mirrors `driver` from now on (replaces any previous binding)."""
        self.unbind()
        self._driver = driver
        self._ending = False
        self._message = None
        self._state = ConnectionState()
        self._connected_since = None
        self._unsubscribe = driver.subscribe(self._on_state)
        self._on_state(driver.state)

    def unbind(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = None
        self._driver = None

    def show_loading(self) -> None:
        self._set_status(SurfaceStatus.LOADING, LOADING_TEXT)

    def show_token_error(self, error: Optional[VideoSessionError] = None) -> None:
        self._set_status(SurfaceStatus.TOKEN_ERROR, TOKEN_ERROR_TEXT)
        if error is not None:
            logger.warning(f"Token error shown: {error.user_message}")

    def show_unsupported(self, error: VideoSessionError) -> None:
        self._set_status(SurfaceStatus.UNSUPPORTED, error.user_message)

    def _set_status(self, status: SurfaceStatus, message: Optional[str]) -> None:
        self.unbind()
        self._state = ConnectionState()
        self._connected_since = None
        self._status = status
        self._message = message
        self._notify()

    def _on_state(self, state: ConnectionState) -> None:
        previous = self._state
        self._state = state

        if state.is_connected and not previous.is_connected:
            self._connected_since = self._clock()
        elif not state.is_connected:
            self._connected_since = None

        self._status = self._status_for(state)
        self._notify()

    @staticmethod
    def _status_for(state: ConnectionState) -> SurfaceStatus:
        if state.phase is DriverState.TORN_DOWN:
            return SurfaceStatus.ENDED
        if state.phase is DriverState.FAILED:
            return SurfaceStatus.FAILED
        if state.phase is DriverState.CONNECTED and state.is_connected:
            return SurfaceStatus.LIVE
        return SurfaceStatus.CONNECTING

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(self.view)
        except Exception as e:
            logger.error(f"View listener failed: {e}")

    # ==================== View ====================

    @property
    def view(self) -> SurfaceView:
        status = self._status
        if status in (SurfaceStatus.LOADING, SurfaceStatus.TOKEN_ERROR, SurfaceStatus.UNSUPPORTED):
            return SurfaceView(
                status=status,
                message=self._message,
                can_retry=status is SurfaceStatus.TOKEN_ERROR,
                preview_position=self._preview_position,
            )

        state = self._state
        connected = state.is_connected
        waiting = not state.remote_present and status is not SurfaceStatus.ENDED

        return SurfaceView(
            status=status,
            status_label=CONNECTED_LABEL if connected else CONNECTING_LABEL,
            show_placeholder=waiting,
            placeholder_title=WAITING_TITLE if waiting else None,
            placeholder_body=WAITING_BODY if waiting else None,
            error_chip=f"Status: {state.last_error}" if state.last_error else None,
            warning=state.warning,
            is_muted=state.is_muted,
            is_video_off=state.is_video_off,
            remote_present=state.remote_present,
            local_preview_hidden=state.is_video_off,
            local_preview_label=CAMERA_OFF_LABEL if state.is_video_off else None,
            preview_position=self._preview_position,
            is_fullscreen=self._is_fullscreen,
            timer=self.elapsed_label if connected else None,
            can_retry=status is SurfaceStatus.FAILED,
            controls_enabled=status not in (SurfaceStatus.ENDED, SurfaceStatus.FAILED),
        )

    @property
    def elapsed_seconds(self) -> float:
        if self._connected_since is None:
            return 0.0
        return self._clock() - self._connected_since

    @property
    def elapsed_label(self) -> str:
        return format_elapsed(self.elapsed_seconds)

    # ==================== Intents ====================

    async def toggle_microphone(self) -> bool:
        if self._driver is None:
            return self._state.is_muted
        return await self._driver.toggle_microphone()

    async def toggle_camera(self) -> bool:
        if self._driver is None:
            return self._state.is_video_off
        return await self._driver.toggle_camera()

    def toggle_fullscreen(self) -> bool:
        self._is_fullscreen = not self._is_fullscreen
        self._notify()
        return self._is_fullscreen

    def move_preview(self, x: int, y: int) -> Tuple[int, int]:
        """Drags the local preview; the position is clamped to the surface."""
        max_x = max(0, self._surface_size[0] - self._preview_size[0])
        max_y = max(0, self._surface_size[1] - self._preview_size[1])
        self._preview_position = (min(max(0, int(x)), max_x), min(max(0, int(y)), max_y))
        self._notify()
        return self._preview_position

    async def end_call(self) -> None:
        """Leaves the session, then hands control back through on_end."""
        if self._ending:
            return
        self._ending = True

        driver = self._driver
        if driver is not None:
            await driver.leave()
        self._status = SurfaceStatus.ENDED
        self._connected_since = None
        self._notify()

        if self._on_end is not None:
            result = self._on_end()
            if inspect.isawaitable(result):
                await result

    async def report_issue(
        self,
        issue_type: str = "connection",
        description: Optional[str] = DEFAULT_ISSUE_DESCRIPTION,
    ) -> bool:
        """Sends an issue report. Returns False when it could not be sent."""
        if self._api is None or not self.consultation_id:
            logger.warning("Issue report dropped: no consultation API bound")
            return False
        try:
            await self._api.report_issue(self.consultation_id, issue_type, description)
        except (ApiError, ValueError) as e:
            logger.warning(f"Issue report failed: {e}")
            return False
        return True

    def __repr__(self) -> str:
        return f"ControlSurface(status={self._status.value}, driver={self._driver!r})"
