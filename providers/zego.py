"""
Provider B session driver (Zego-style room engine).

Join order: create engine -> login room -> create the camera stream ->
preview into the local mount -> publish as "<room>_<user>". Remote streams
announced by `room_stream_update` ADD are played and rendered into the remote
mount; DELETE stops playing and clears it.

Teardown order: stop local tracks, destroy the local stream, logout, destroy
the engine.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from config import VIDEO_CONFIG
from providers.base import DriverConfig, SessionDriver
from providers.errors import UnknownSessionError
from providers.sdk import ZegoEngine, ZegoLocalStream
from session.models import ProviderTag


@dataclass
class ZegoDriverConfig(DriverConfig):
    """Zego engine options."""
    server_url: str = "wss://webliveroom-api.zegocloud.com/ws"


class _PendingPlay:
    """Slot held in the remote stream map while start_playing_stream runs."""


def _stream_id(item: Any) -> str:
    if isinstance(item, dict):
        return str(item.get("stream_id") or item.get("streamID") or "")
    return str(getattr(item, "stream_id", "") or getattr(item, "streamID", ""))


class ZegoDriver(SessionDriver):
    """Drives one room session on the Zego-style engine."""

    provider_name = "zegocloud"
    provider_tag = ProviderTag.ZEGOCLOUD
    required_sdk_methods = ("create_engine",)

    def __init__(self, params, mounts, config: Optional[DriverConfig] = None, sdk: Any = None):
        super().__init__(params, mounts, config, sdk)
        self._engine: Optional[ZegoEngine] = None
        self._local_stream: Optional[ZegoLocalStream] = None
        self._remote_streams: Dict[str, Any] = {}
        self._rendered_stream_id: Optional[str] = None

        self._join_requested = False
        self._left_room = False

    @classmethod
    def default_config(cls) -> ZegoDriverConfig:
        return ZegoDriverConfig(
            join_timeout=VIDEO_CONFIG.get("join_timeout", 30.0),
            teardown_grace=VIDEO_CONFIG.get("teardown_grace", 5.0),
            sdk_module=VIDEO_CONFIG.get("zego_sdk_module", ""),
            server_url=VIDEO_CONFIG.get("zego_server_url", ZegoDriverConfig.server_url),
        )

    @property
    def publish_stream_id(self) -> str:
        return f"{self._params.room_id}_{self._params.user_id}"

    # ==================== Join steps ====================

    async def _create_client(self, sdk: Any, generation: int) -> None:
        try:
            app_id = int(self._params.app_id)
        except (TypeError, ValueError) as e:
            raise UnknownSessionError(
                f"Invalid app id for {self.provider_name}: {self._params.app_id!r}", cause=e
            ) from e

        server = getattr(self._config, "server_url", ZegoDriverConfig.server_url)
        engine = sdk.create_engine(app_id, server)
        self._engine = engine

        engine.on(
            "room_state_update",
            lambda room_id, state, error_code=0, extended_data=None: self._on_room_state(
                state, error_code, generation
            ),
        )
        engine.on(
            "room_stream_update",
            lambda room_id, update_type, stream_list: self._on_room_stream_update(
                update_type, stream_list, generation
            ),
        )

    async def _join_room(self) -> None:
        self._join_requested = True
        accepted = await self._engine.login_room(
            self._params.room_id,
            self._params.token,
            {"user_id": self._params.user_id, "user_name": self._params.user_name},
            {"user_update": True},
        )
        if accepted is False:
            raise UnknownSessionError("The room rejected the login. Please rejoin.")

    async def _acquire_media(self) -> None:
        camera: Dict[str, Any] = {"audio": True, "video": True}
        if self._params.microphone_id:
            camera["audio_input"] = self._params.microphone_id
        if self._params.camera_id:
            camera["video_input"] = self._params.camera_id

        # Kept even if the attempt went stale; leave() stops it
        self._local_stream = await self._engine.create_stream({"camera": camera})
        self._log.info("Local stream created", extra={"step": "media"})

    def _attach_local_media(self) -> None:
        if self._local_stream is not None:
            self._attach_to_mount(self._params.local_mount_id, self._local_stream)

    async def _publish(self) -> None:
        published = await self._engine.start_publishing_stream(
            self.publish_stream_id, self._local_stream
        )
        if published is False:
            raise UnknownSessionError("Publishing the local stream was rejected.")
        self._log.info(f"Publishing {self.publish_stream_id}", extra={"step": "publish"})

    # ==================== Room events ====================

    def _on_room_state(self, state: str, error_code: int, generation: int) -> None:
        if error_code:
            self._log.warning(f"Room state {state} (error {error_code})")
        self._on_connection_state(state, generation)

    def _on_room_stream_update(self, update_type: str, stream_list: List[Any], generation: int) -> None:
        if not self._is_live(generation):
            return
        update_type = str(update_type).upper()
        for item in stream_list or []:
            stream_id = _stream_id(item)
            if not stream_id or stream_id == self.publish_stream_id:
                continue
            if update_type == "ADD":
                self._spawn(self._play_remote(stream_id, generation))
            elif update_type == "DELETE":
                self._stop_remote(stream_id, generation)

    async def _play_remote(self, stream_id: str, generation: int) -> None:
        engine = self._engine
        if engine is None or stream_id in self._remote_streams:
            return

        # Placeholder marks the play as pending so a DELETE meanwhile is not lost
        pending = _PendingPlay()
        self._remote_streams[stream_id] = pending
        try:
            remote = await engine.start_playing_stream(stream_id)
        except Exception:
            if self._remote_streams.get(stream_id) is pending:
                del self._remote_streams[stream_id]
            raise

        if not self._is_live(generation) or self._remote_streams.get(stream_id) is not pending:
            self._record_stale_completion("play")
            engine.stop_playing_stream(stream_id)
            return

        self._remote_streams[stream_id] = remote
        self._rendered_stream_id = stream_id
        self._attach_remote(remote, generation)

    def _stop_remote(self, stream_id: str, generation: int) -> None:
        remote = self._remote_streams.pop(stream_id, None)
        if remote is None or isinstance(remote, _PendingPlay):
            # A pending play notices the removal and stops the stream itself
            return
        if self._engine is not None:
            self._engine.stop_playing_stream(stream_id)
        if stream_id == self._rendered_stream_id:
            self._rendered_stream_id = None
            self._detach_remote(generation)

    # ==================== Toggles ====================

    def _tracks(self, kind: str) -> list:
        if self._local_stream is None:
            return []
        if kind == "audio":
            return list(self._local_stream.get_audio_tracks())
        return list(self._local_stream.get_video_tracks())

    def _has_audio_track(self) -> bool:
        return bool(self._tracks("audio"))

    def _has_video_track(self) -> bool:
        return bool(self._tracks("video"))

    async def _set_audio_muted(self, muted: bool) -> None:
        await self._set_muted("audio", muted)

    async def _set_video_muted(self, muted: bool) -> None:
        await self._set_muted("video", muted)

    async def _set_muted(self, kind: str, muted: bool) -> None:
        # Publisher-side mute first: if it raises, the local tracks stay as they were
        mute = getattr(self._engine, f"mute_publish_stream_{kind}", None)
        if callable(mute):
            result = mute(self._local_stream, muted)
            if inspect.isawaitable(result):
                await result

        for track in self._tracks(kind):
            track.enabled = not muted

    # ==================== Teardown ====================

    def _release_local_media(self) -> None:
        stream, self._local_stream = self._local_stream, None
        if stream is None:
            return
        for track in stream.get_tracks():
            try:
                track.stop()
            except Exception as e:
                self._record_teardown_error("media", e)
        if self._engine is not None:
            self._engine.destroy_stream(stream)
        self._log.info("Local stream stopped", extra={"step": "teardown"})

    async def _leave_room(self) -> None:
        if self._engine is None:
            return
        for stream_id in list(self._remote_streams):
            self._remote_streams.pop(stream_id, None)
            try:
                self._engine.stop_playing_stream(stream_id)
            except Exception as e:
                self._record_teardown_error("stop_play", e)
        self._rendered_stream_id = None

        if not self._join_requested or self._left_room:
            return
        self._left_room = True
        await self._engine.logout_room(self._params.room_id)

    async def _destroy_client(self) -> None:
        engine, self._engine = self._engine, None
        if engine is not None:
            engine.destroy_engine()
