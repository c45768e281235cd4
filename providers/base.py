"""
Base infrastructure for provider session drivers.

A driver owns one real-time media session: the provider client/engine and the
local audio/video tracks. Both providers run the same state machine:

    IDLE -> INITIALIZING -> JOINING -> MEDIA_ACQUIRING -> PUBLISHING -> CONNECTED
    (any join step) -> FAILED
    (any state) -> TORN_DOWN

Each join attempt captures the driver's generation. leave() bumps it, so every
continuation that resumes after leave() sees a mismatch and drops its result;
whatever that step acquired is released by leave(), never attached.

Subclasses implement the provider-specific steps:
- `_create_client()`, `_join_room()`, `_acquire_media()`, `_attach_local_media()`,
  `_publish()` for the join sequence
- `_set_audio_muted()` / `_set_video_muted()` for the toggles
- `_release_local_media()`, `_leave_room()`, `_destroy_client()` for teardown
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Coroutine, List, Optional, Set

from config import VIDEO_CONFIG
from metrics import (
    track_join_attempt,
    track_join_success,
    track_join_failure,
    track_session_end,
    track_duplicate_join,
    track_stale_completion,
    track_teardown_error,
    track_remote_stream,
)
from providers.errors import (
    DuplicateJoinIgnored,
    ErrorKind,
    NetworkTimeoutError,
    StaleCompletionDropped,
    UnknownSessionError,
    VideoSessionError,
    classify_error,
)
from providers.sdk import load_sdk_module, missing_methods
from session.media_sink import MountRegistry
from session.models import JoinParams, ProviderTag
from utils.logging import get_session_logger

logger = logging.getLogger("consult-video.driver")


class DriverState(Enum):
    """Lifecycle phase of a driver."""
    IDLE = "idle"
    INITIALIZING = "initializing"
    JOINING = "joining"
    MEDIA_ACQUIRING = "media_acquiring"
    PUBLISHING = "publishing"
    CONNECTED = "connected"
    FAILED = "failed"
    TORN_DOWN = "torn_down"

    @property
    def is_joining(self) -> bool:
        return self in (
            DriverState.INITIALIZING,
            DriverState.JOINING,
            DriverState.MEDIA_ACQUIRING,
            DriverState.PUBLISHING,
        )

    @property
    def is_terminal(self) -> bool:
        return self in (DriverState.FAILED, DriverState.TORN_DOWN)


DUPLICATE_JOIN_WARNING = (
    "You are already connected to this consultation from another window or device."
)


@dataclass
class ConnectionState:
    """Uniform session state mirrored by the control surface."""

    is_connected: bool = False
    last_error: Optional[str] = None
    """User-facing message of the classified failure."""

    error_kind: Optional[ErrorKind] = None
    is_muted: bool = False
    is_video_off: bool = False
    remote_present: bool = False
    """A remote participant's video is attached to the remote mount point."""

    warning: Optional[str] = None
    """Soft, non-fatal notice (duplicate join reported by the provider)."""

    phase: DriverState = DriverState.IDLE


@dataclass
class DriverConfig:
    """Base configuration for session drivers."""

    join_timeout: float = 30.0
    """Client-side bound on the room join in seconds. 0 leaves it to the SDK."""

    teardown_grace: float = 5.0
    """Seconds leave() waits for an in-flight join before cancelling it."""

    sdk_module: str = ""
    """Import path of the provider SDK ("module" or "module:attribute")."""

    extra: dict[str, Any] = field(default_factory=dict)
    """Additional provider-specific configuration."""


@dataclass
class DriverMetrics:
    """Counters collected by one driver instance."""

    join_attempts: int = 0
    successful_joins: int = 0
    failed_joins: int = 0
    duplicate_joins_ignored: int = 0
    stale_completions_dropped: int = 0
    teardown_errors: int = 0
    join_latency_ms: Optional[float] = None
    connected_at: Optional[float] = None
    last_error: Optional[str] = None
    last_error_time: Optional[float] = None

    def record_failure(self, error: str) -> None:
        self.failed_joins += 1
        self.last_error = error
        self.last_error_time = time.time()


StateListener = Callable[[ConnectionState], None]


class SessionDriver(ABC):
    """
    Base class for provider session drivers.

    Provides:
    - the join sequence with a generation check after every suspension point
    - re-entrancy guard (one join per driver instance)
    - idempotent leave() that releases local devices first
    - error classification into ConnectionState
    - state change notifications for the control surface
    """

    provider_name: str = "base"
    provider_tag: Optional[ProviderTag] = None
    required_sdk_methods: tuple = ()

    def __init__(
        self,
        params: JoinParams,
        mounts: MountRegistry,
        config: Optional[DriverConfig] = None,
        sdk: Any = None,
    ):
        self._params = params
        self._mounts = mounts
        self._config = config or self.default_config()
        self._sdk = sdk
        self._state = ConnectionState()
        self._metrics = DriverMetrics()
        self._listeners: List[StateListener] = []

        # Lifecycle guards
        self._generation = 0
        self._left = False
        self._join_task: Optional[asyncio.Task] = None
        self._join_started_at: Optional[float] = None
        self._active_counted = False

        self._toggle_lock = asyncio.Lock()
        self._attached_mounts: Set[str] = set()
        self._background: Set[asyncio.Task] = set()

        self._log = get_session_logger(
            f"consult-video.{self.provider_name}",
            generation=lambda: self._generation,
            provider=self.provider_name,
            room=params.room_id,
        )

    @classmethod
    def default_config(cls) -> DriverConfig:
        return DriverConfig(
            join_timeout=VIDEO_CONFIG.get("join_timeout", 30.0),
            teardown_grace=VIDEO_CONFIG.get("teardown_grace", 5.0),
        )

    # ==================== Properties ====================

    @property
    def params(self) -> JoinParams:
        return self._params

    @property
    def config(self) -> DriverConfig:
        return self._config

    @property
    def metrics(self) -> DriverMetrics:
        return self._metrics

    @property
    def state(self) -> ConnectionState:
        """Snapshot of the connection state (a copy)."""
        return replace(self._state)

    @property
    def phase(self) -> DriverState:
        return self._state.phase

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_torn_down(self) -> bool:
        return self._left

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Registers a state listener. Returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ==================== Join ====================

    def start(self) -> asyncio.Task:
        """Schedules join() on the running loop."""
        return asyncio.ensure_future(self.join())

    async def join(self) -> bool:
        """Runs the join sequence once.

        Returns True when the session reached CONNECTED. A second call while
        (or after) a join runs is dropped; so is a call after leave().
        Failures never raise: they end in FAILED with ConnectionState.last_error.
        """
        if self._left:
            self._log.warning("join() on a torn down driver ignored")
            return False

        if self._join_task is not None:
            self._record_duplicate_join()
            return False

        if self._state.phase.is_terminal:
            self._log.debug(f"join() in phase {self._state.phase.value} ignored, remount to retry")
            return False

        if not self._params.is_complete:
            self._log.warning(f"Missing join parameters: {self._params!r}")
            self._fail(UnknownSessionError("Missing video session parameters"))
            return False

        generation = self._generation
        self._join_task = asyncio.ensure_future(self._join_sequence(generation))
        try:
            return await asyncio.shield(self._join_task)
        except asyncio.CancelledError:
            if self._left and self._join_task.cancelled():
                return False
            raise

    async def _join_sequence(self, generation: int) -> bool:
        self._join_started_at = time.perf_counter()
        self._metrics.join_attempts += 1
        track_join_attempt(self.provider_name)

        try:
            self._set_phase(DriverState.INITIALIZING)
            sdk = await self._load_sdk()
            self._ensure_current(generation, "load_sdk")

            await self._create_client(sdk, generation)
            self._ensure_current(generation, "create_client")

            self._set_phase(DriverState.JOINING)
            self._log.info("Joining room", extra={"step": "join"})
            await self._join_with_timeout()
            self._ensure_current(generation, "join_room")

            self._set_phase(DriverState.MEDIA_ACQUIRING)
            await self._acquire_media()
            self._ensure_current(generation, "acquire_media")

            # Local preview goes up before anything is published
            self._attach_local_media()

            self._set_phase(DriverState.PUBLISHING)
            await self._publish()
            self._ensure_current(generation, "publish")

        except StaleCompletionDropped as e:
            self._record_stale_completion(e.step)
            return False

        except asyncio.CancelledError:
            self._log.info("Join cancelled", extra={"step": "join"})
            raise

        except Exception as e:
            await self._handle_join_error(e, generation)
            return False

        elapsed = time.perf_counter() - self._join_started_at
        self._metrics.successful_joins += 1
        self._metrics.join_latency_ms = elapsed * 1000
        self._metrics.connected_at = time.time()
        self._active_counted = True
        track_join_success(self.provider_name, elapsed)

        self._update(phase=DriverState.CONNECTED, is_connected=True)
        self._log.info("Connected", extra={"step": "publish", "duration_ms": elapsed * 1000})
        return True

    async def _join_with_timeout(self) -> None:
        timeout = self._config.join_timeout
        if not timeout or timeout <= 0:
            await self._join_room()
            return
        try:
            await asyncio.wait_for(self._join_room(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise NetworkTimeoutError(
                f"Joining the room took longer than {timeout:.0f}s. "
                "Please check your internet connection or firewall.",
                cause=e,
            ) from e

    async def _load_sdk(self) -> Any:
        if self._sdk is not None:
            sdk = self._sdk
        else:
            sdk = await load_sdk_module(self._config.sdk_module)

        missing = missing_methods(sdk, self.required_sdk_methods)
        if missing:
            raise UnknownSessionError(
                f"{self.provider_name} SDK is missing: {', '.join(missing)}"
            )
        return sdk

    async def _handle_join_error(self, error: Exception, generation: int) -> None:
        if not self._is_live(generation):
            # Failure of an attempt nobody is waiting for any more
            self._record_stale_completion("error")
            return

        classified = classify_error(error)

        if isinstance(classified, DuplicateJoinIgnored):
            self._record_duplicate_join(reported_by_provider=True)
            self._update(phase=DriverState.FAILED, warning=DUPLICATE_JOIN_WARNING)
            await self._release_resources()
            return

        if isinstance(classified, StaleCompletionDropped):
            # The SDK aborted a join we still wanted
            classified = UnknownSessionError("The provider aborted the join. Please rejoin.", cause=error)

        self._fail(classified)
        await self._release_resources()

    def _fail(self, error: VideoSessionError) -> None:
        self._metrics.record_failure(error.user_message)
        track_join_failure(self.provider_name, error.kind.value)
        self._log.warning(
            f"Session failed ({error.kind.value}): {error.user_message}"
            + (f" [cause: {error.cause!r}]" if error.cause else "")
        )
        self._update(
            phase=DriverState.FAILED,
            is_connected=False,
            last_error=error.user_message,
            error_kind=error.kind,
        )

    # ==================== Guards ====================

    def _is_live(self, generation: int) -> bool:
        return not self._left and generation == self._generation

    def _ensure_current(self, generation: int, step: str) -> None:
        if not self._is_live(generation):
            raise StaleCompletionDropped(step)

    def _record_duplicate_join(self, reported_by_provider: bool = False) -> None:
        self._metrics.duplicate_joins_ignored += 1
        track_duplicate_join(self.provider_name)
        if reported_by_provider:
            self._log.warning("Provider reported a duplicate join for this user")
        else:
            self._log.debug("Duplicate join ignored")

    def _record_stale_completion(self, step: str) -> None:
        self._metrics.stale_completions_dropped += 1
        track_stale_completion(self.provider_name, step)
        self._log.debug("Stale completion dropped", extra={"step": step})

    # ==================== State ====================

    def _update(self, **changes) -> None:
        self._state = replace(self._state, **changes)
        snapshot = replace(self._state)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                self._log.error(f"State listener failed: {e}")

    def _set_phase(self, phase: DriverState) -> None:
        if self._state.phase is DriverState.TORN_DOWN:
            return
        old = self._state.phase
        self._update(phase=phase)
        self._log.debug(f"Phase: {old.value} -> {phase.value}")

    def _on_connection_state(self, state: str, generation: int) -> None:
        """Maps provider connection/room state into is_connected."""
        if not self._is_live(generation):
            return
        state = str(state).upper()
        if state == "CONNECTED" and self._state.phase is DriverState.CONNECTED:
            self._update(is_connected=True)
        elif state in ("DISCONNECTED", "DISCONNECTING") and self._state.is_connected:
            self._log.info(f"Provider connection state: {state}")
            self._update(is_connected=False)

    # ==================== Mount points ====================

    def _attach_to_mount(self, mount_id: str, stream: Any) -> bool:
        sink = self._mounts.resolve(mount_id)
        if sink is None:
            self._log.debug(f"Mount point '{mount_id}' not rendered, skipping attach")
            return False
        sink.clear()
        sink.attach(stream)
        self._attached_mounts.add(mount_id)
        return True

    def _clear_mount(self, mount_id: str) -> None:
        sink = self._mounts.resolve(mount_id)
        if sink is not None:
            sink.clear()
        self._attached_mounts.discard(mount_id)

    def _attach_remote(self, stream: Any, generation: int) -> None:
        if not self._is_live(generation):
            return
        self._attach_to_mount(self._params.remote_mount_id, stream)
        track_remote_stream(self.provider_name, "attach")
        self._update(remote_present=True)
        self._log.info(f"Remote media attached: {stream!r}")

    def _detach_remote(self, generation: int) -> None:
        if not self._is_live(generation):
            return
        self._clear_mount(self._params.remote_mount_id)
        track_remote_stream(self.provider_name, "detach")
        self._update(remote_present=False)
        self._log.info("Remote media detached")

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        """Runs SDK event work in the background, owned by this driver."""
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._log.warning(f"Event handler failed: {error!r}")

    # ==================== Toggles ====================

    async def toggle_microphone(self) -> bool:
        """Flips the local microphone mute. Never raises; returns is_muted."""
        async with self._toggle_lock:
            if self._left or not self._has_audio_track():
                return self._state.is_muted
            muted = not self._state.is_muted
            try:
                await self._set_audio_muted(muted)
            except Exception as e:
                self._log.warning(f"Microphone toggle failed: {e}")
                return self._state.is_muted
            self._update(is_muted=muted)
            return muted

    async def toggle_camera(self) -> bool:
        """Flips the local camera. Never raises; returns is_video_off."""
        async with self._toggle_lock:
            if self._left or not self._has_video_track():
                return self._state.is_video_off
            video_off = not self._state.is_video_off
            try:
                await self._set_video_muted(video_off)
            except Exception as e:
                self._log.warning(f"Camera toggle failed: {e}")
                return self._state.is_video_off
            self._update(is_video_off=video_off)
            return video_off

    # ==================== Teardown ====================

    async def leave(self) -> None:
        """Tears the session down. Idempotent; safe before join finished."""
        if self._left:
            return
        self._left = True
        self._generation += 1
        was_connected = self._state.phase is DriverState.CONNECTED
        self._update(phase=DriverState.TORN_DOWN, is_connected=False, remote_present=False)

        task = self._join_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            await self._settle_join(task)

        await self._release_resources()

        if self._active_counted:
            self._active_counted = False
            connected_for = time.time() - (self._metrics.connected_at or time.time())
            track_session_end(self.provider_name, connected_for)

        self._log.info("Left session" + (" (was connected)" if was_connected else ""),
                       extra={"step": "teardown"})

    async def _settle_join(self, task: asyncio.Task) -> None:
        """Lets an in-flight join observe the new generation, then cancels it."""
        grace = self._config.teardown_grace
        if grace and grace > 0:
            done, _ = await asyncio.wait({task}, timeout=grace)
            if task in done:
                return
            self._log.warning(f"Join did not settle within {grace:.1f}s, cancelling",
                              extra={"step": "teardown"})
        task.cancel()
        await asyncio.wait({task})

    async def _release_resources(self) -> None:
        """Releases everything this driver holds. Local devices go first."""
        try:
            self._release_local_media()
        except Exception as e:
            self._record_teardown_error("media", e)

        for mount_id in list(self._attached_mounts):
            self._clear_mount(mount_id)

        for step, operation in (("leave", self._leave_room), ("destroy", self._destroy_client)):
            try:
                await operation()
            except Exception as e:
                self._record_teardown_error(step, e)

        for task in list(self._background):
            task.cancel()

    def _record_teardown_error(self, step: str, error: Exception) -> None:
        self._metrics.teardown_errors += 1
        track_teardown_error(self.provider_name, step)
        self._log.error(f"Teardown step failed: {error}", extra={"step": step})

    # ==================== Provider hooks ====================

    @abstractmethod
    async def _create_client(self, sdk: Any, generation: int) -> None:
        """Constructs the client/engine and registers event handlers."""

    @abstractmethod
    async def _join_room(self) -> None:
        """Joins the room/channel with the credential."""

    @abstractmethod
    async def _acquire_media(self) -> None:
        """Creates the local microphone and camera media."""

    @abstractmethod
    def _attach_local_media(self) -> None:
        """Renders the local video into the local mount point."""

    @abstractmethod
    async def _publish(self) -> None:
        """Publishes the local media to the room."""

    @abstractmethod
    def _has_audio_track(self) -> bool:
        pass

    @abstractmethod
    def _has_video_track(self) -> bool:
        pass

    @abstractmethod
    async def _set_audio_muted(self, muted: bool) -> None:
        pass

    @abstractmethod
    async def _set_video_muted(self, muted: bool) -> None:
        pass

    @abstractmethod
    def _release_local_media(self) -> None:
        """Stops/closes local tracks. Must be idempotent."""

    @abstractmethod
    async def _leave_room(self) -> None:
        """Leaves the room at most once, only if a join was issued."""

    @abstractmethod
    async def _destroy_client(self) -> None:
        """Releases the client/engine. Must be idempotent."""

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"provider_name={self.provider_name!r}, "
            f"room={self._params.room_id!r}, "
            f"phase={self._state.phase.value}, "
            f"generation={self._generation})"
        )
