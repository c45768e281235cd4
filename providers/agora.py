"""
Provider A session driver (Agora-style channel SDK).

Join order: create client -> join channel -> create microphone + camera
tracks -> preview into the local mount -> publish both tracks. Remote video is
subscribed on `user-published` and rendered into the remote mount; remote
audio plays without a mount.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from config import VIDEO_CONFIG
from providers.base import DriverConfig, SessionDriver
from providers.sdk import AgoraClient, AgoraLocalTrack
from session.models import ProviderTag


@dataclass
class AgoraDriverConfig(DriverConfig):
    """Agora client options."""
    mode: str = "rtc"
    codec: str = "vp8"


class AgoraDriver(SessionDriver):
    """Drives one channel session on the Agora-style SDK."""

    provider_name = "agora"
    provider_tag = ProviderTag.AGORA
    required_sdk_methods = ("create_client", "create_microphone_and_camera_tracks")

    def __init__(self, params, mounts, config: Optional[DriverConfig] = None, sdk: Any = None):
        super().__init__(params, mounts, config, sdk)
        self._rtc: Any = None
        self._client: Optional[AgoraClient] = None
        self._audio_track: Optional[AgoraLocalTrack] = None
        self._video_track: Optional[AgoraLocalTrack] = None
        self._remote_uid: Any = None
        # (uid, media_type) -> token of the subscribe in flight
        self._pending_subscriptions: Dict[Tuple[Any, str], object] = {}

        self._join_requested = False
        self._left_room = False

    @classmethod
    def default_config(cls) -> AgoraDriverConfig:
        return AgoraDriverConfig(
            join_timeout=VIDEO_CONFIG.get("join_timeout", 30.0),
            teardown_grace=VIDEO_CONFIG.get("teardown_grace", 5.0),
            sdk_module=VIDEO_CONFIG.get("agora_sdk_module", ""),
            mode=VIDEO_CONFIG.get("agora_mode", "rtc"),
            codec=VIDEO_CONFIG.get("agora_codec", "vp8"),
        )

    # ==================== Join steps ====================

    async def _create_client(self, sdk: Any, generation: int) -> None:
        self._rtc = sdk
        client = sdk.create_client(
            mode=getattr(self._config, "mode", "rtc"),
            codec=getattr(self._config, "codec", "vp8"),
        )
        self._client = client

        client.on(
            "user-published",
            lambda user, media_type: self._spawn(
                self._on_user_published(user, media_type, generation)
            ),
        )
        client.on(
            "user-unpublished",
            lambda user, media_type: self._on_user_unpublished(user, media_type, generation),
        )
        client.on(
            "user-left",
            lambda user, reason=None: self._on_user_left(user, generation),
        )
        client.on(
            "connection-state-change",
            lambda current, previous=None, reason=None: self._on_connection_state(current, generation),
        )

    async def _join_room(self) -> None:
        # Flag goes up before the await so a cancelled join still gets its leave
        self._join_requested = True
        await self._client.join(
            str(self._params.app_id),
            self._params.room_id,
            self._params.token,
            self._params.user_id,
        )

    async def _acquire_media(self) -> None:
        audio_config = {}
        if self._params.microphone_id:
            audio_config["microphone_id"] = self._params.microphone_id
        video_config = {}
        if self._params.camera_id:
            video_config["camera_id"] = self._params.camera_id

        audio_track, video_track = await self._rtc.create_microphone_and_camera_tracks(
            audio_config, video_config
        )
        # Kept even if the attempt went stale; leave() closes them
        self._audio_track = audio_track
        self._video_track = video_track
        self._log.info("Local tracks created", extra={"step": "media"})

    def _attach_local_media(self) -> None:
        if self._video_track is not None:
            self._attach_to_mount(self._params.local_mount_id, self._video_track)

    async def _publish(self) -> None:
        tracks = self._local_tracks()
        await self._client.publish(tracks)
        self._log.info(f"Published {len(tracks)} local tracks", extra={"step": "publish"})

    def _local_tracks(self) -> List[AgoraLocalTrack]:
        return [t for t in (self._audio_track, self._video_track) if t is not None]

    # ==================== Remote events ====================

    async def _on_user_published(self, user: Any, media_type: str, generation: int) -> None:
        if not self._is_live(generation) or self._client is None:
            return

        # Unpublish/left while subscribing drops this token; the result is then discarded
        key = (user.uid, media_type)
        token = object()
        self._pending_subscriptions[key] = token
        try:
            track = await self._client.subscribe(user, media_type)
        finally:
            current = self._pending_subscriptions.get(key)
            if current is token:
                del self._pending_subscriptions[key]

        track = track or getattr(user, f"{media_type}_track", None)
        if not self._is_live(generation) or current is not token or track is None:
            self._record_stale_completion("subscribe")
            stop = getattr(track, "stop", None)
            if callable(stop):
                stop()
            return

        if media_type == "video":
            self._remote_uid = user.uid
            self._attach_remote(track, generation)
        elif media_type == "audio":
            track.play()

    def _on_user_unpublished(self, user: Any, media_type: str, generation: int) -> None:
        self._pending_subscriptions.pop((user.uid, media_type), None)
        if media_type == "video" and user.uid == self._remote_uid:
            self._remote_uid = None
            self._detach_remote(generation)

    def _on_user_left(self, user: Any, generation: int) -> None:
        for media_type in ("audio", "video"):
            self._pending_subscriptions.pop((user.uid, media_type), None)
        if user.uid == self._remote_uid:
            self._remote_uid = None
            self._detach_remote(generation)

    # ==================== Toggles ====================

    def _has_audio_track(self) -> bool:
        return self._audio_track is not None

    def _has_video_track(self) -> bool:
        return self._video_track is not None

    async def _set_audio_muted(self, muted: bool) -> None:
        await self._audio_track.set_muted(muted)

    async def _set_video_muted(self, muted: bool) -> None:
        await self._video_track.set_muted(muted)

    # ==================== Teardown ====================

    def _release_local_media(self) -> None:
        tracks = self._local_tracks()
        self._audio_track = None
        self._video_track = None
        for track in tracks:
            try:
                track.close()
            except Exception as e:
                self._record_teardown_error("media", e)
        if tracks:
            self._log.info(f"Closed {len(tracks)} local tracks", extra={"step": "teardown"})

    async def _leave_room(self) -> None:
        if not self._join_requested or self._left_room or self._client is None:
            return
        self._left_room = True
        await self._client.leave()

    async def _destroy_client(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        remove_listeners = getattr(client, "remove_all_listeners", None)
        if callable(remove_listeners):
            remove_listeners()
