"""
Video panel orchestration.

Ties the pieces together for one mounted panel:

    mount()   -> resolve credential -> dispatch -> bind surface -> join (task)
    retry()   -> same as mount() after a token error or a failed session
    unmount() -> cancel a pending resolve, leave the driver, unbind

At most one driver exists per panel; a driver is never reused across mounts.
"""

import asyncio
from typing import Any, Iterable, Optional

from providers.base import DriverConfig, SessionDriver
from providers.errors import TokenFetchError, UnsupportedProviderError
from session.control_surface import ControlSurface, SurfaceStatus
from session.dispatch import create_driver
from session.media_sink import MountRegistry
from session.models import DevicePreferences, LocalUser
from session.token_resolver import TokenResolver
from utils.logging import get_session_logger


class VideoPanel:
    """One consultation video panel."""

    def __init__(
        self,
        consultation_id: str,
        user: LocalUser,
        resolver: TokenResolver,
        mounts: MountRegistry,
        surface: Optional[ControlSurface] = None,
        preferences: Optional[DevicePreferences] = None,
        driver_config: Optional[DriverConfig] = None,
        sdk: Any = None,
        enabled_providers: Optional[Iterable[str]] = None,
    ):
        self.consultation_id = consultation_id
        self.user = user
        self.surface = surface or ControlSurface(consultation_id=consultation_id)
        self._resolver = resolver
        self._mounts = mounts
        self._preferences = preferences
        self._driver_config = driver_config
        self._sdk = sdk
        self._enabled_providers = enabled_providers
        self._log = get_session_logger("consult-video.panel", consultation=consultation_id)

        self._mounted = False
        self._starting = False
        self._attempt = 0
        self._driver: Optional[SessionDriver] = None
        self._resolve_task: Optional[asyncio.Task] = None
        self._join_task: Optional[asyncio.Task] = None

    @property
    def driver(self) -> Optional[SessionDriver]:
        return self._driver

    @property
    def join_task(self) -> Optional[asyncio.Task]:
        return self._join_task

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    async def mount(self) -> None:
        """Starts the session. A second mount() on a mounted panel is ignored."""
        if self._mounted:
            self._log.debug("Panel already mounted")
            return
        self._mounted = True
        await self._start()

    async def retry(self) -> None:
        """Starts over after TOKEN_ERROR or FAILED; ignored otherwise."""
        if not self._mounted or self._starting:
            return
        if self.surface.status not in (SurfaceStatus.TOKEN_ERROR, SurfaceStatus.FAILED):
            self._log.debug(f"Retry ignored in status {self.surface.status.value}")
            return

        await self._release_driver()
        self._log.info("Retrying video session")
        await self._start()

    def _is_current(self, attempt: int) -> bool:
        return self._mounted and attempt == self._attempt

    async def _start(self) -> None:
        # unmount() and a later mount() both make this attempt stale
        self._attempt += 1
        attempt = self._attempt
        self._starting = True
        try:
            self.surface.show_loading()
            resolve_task = asyncio.ensure_future(
                self._resolver.resolve_session(self.consultation_id)
            )
            self._resolve_task = resolve_task
            try:
                credential = await resolve_task
            except asyncio.CancelledError:
                if not self._is_current(attempt):
                    return
                raise
            except TokenFetchError as e:
                if self._is_current(attempt):
                    self.surface.show_token_error(e)
                return
            finally:
                if self._resolve_task is resolve_task:
                    self._resolve_task = None

            if not self._is_current(attempt):
                return

            try:
                driver = create_driver(
                    credential,
                    self.user,
                    self._mounts,
                    preferences=self._preferences,
                    config=self._driver_config,
                    sdk=self._sdk,
                    enabled=self._enabled_providers,
                )
            except UnsupportedProviderError as e:
                self.surface.show_unsupported(e)
                return

            self._log.bind(provider=driver.provider_name, room=credential.room_id).info(
                "Driver created, joining"
            )
            self._driver = driver
            self.surface.bind(driver)
            self._join_task = driver.start()
        finally:
            if attempt == self._attempt:
                self._starting = False

    async def unmount(self) -> None:
        """Tears the panel down. Safe at any point, including mid-resolve."""
        if not self._mounted:
            return
        self._mounted = False

        if self._resolve_task is not None and not self._resolve_task.done():
            self._resolve_task.cancel()

        await self._release_driver()
        self._log.info("Panel unmounted")

    async def _release_driver(self) -> None:
        driver, self._driver = self._driver, None
        join_task, self._join_task = self._join_task, None

        if driver is not None:
            await driver.leave()
            self.surface.unbind()
        if join_task is not None:
            await asyncio.wait({join_task})

    def __repr__(self) -> str:
        return (
            f"VideoPanel(consultation={self.consultation_id!r}, mounted={self._mounted}, "
            f"driver={self._driver!r})"
        )
