"""
In-process simulated provider SDKs.

Implements both provider surfaces from providers/sdk.py without any network or
device access. Used as the default development binding and by the tests, which
drive it through:

- `fail(step, error)`: make a step raise
- `hold(step)` / `release(step)`: park a step until released (to force races)
- `calls`: ordered log of every SDK call
- `simulate_*` helpers on clients/engines to emit remote events

Steps: create_client, join, create_tracks, publish, subscribe, leave,
set_muted_audio, set_muted_video (Agora) and create_engine, login_room,
create_stream, publish, play, stop_play, mute_audio, mute_video,
logout_room (Zego).
"""

import asyncio
import itertools
import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("consult-video.mock-sdk")

_ids = itertools.count(1)


class MockSDKError(Exception):
    """Error shaped like the provider SDK errors (name + code)."""

    def __init__(self, code: str = "", message: str = "", name: Optional[str] = None):
        super().__init__(message or code)
        self.code = code
        self.name = name or "SDKError"


class _Checkpoints:
    """Failure injection and gating shared by both simulated SDKs."""

    def __init__(self, echo_remote: Optional[float] = None):
        self.calls: List[tuple] = []
        self.echo_remote = echo_remote
        self._errors: Dict[str, BaseException] = {}
        self._gates: Dict[str, asyncio.Event] = {}

    def fail(self, step: str, error: BaseException) -> None:
        self._errors[step] = error

    def clear_failure(self, step: str) -> None:
        self._errors.pop(step, None)

    def hold(self, step: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[step] = gate
        return gate

    def release(self, step: str) -> None:
        gate = self._gates.pop(step, None)
        if gate is not None:
            gate.set()

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def _raise_if_failing(self, step: str) -> None:
        error = self._errors.get(step)
        if error is not None:
            raise error

    async def _checkpoint(self, step: str) -> None:
        gate = self._gates.get(step)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        self._raise_if_failing(step)


class _Emitter:
    def __init__(self):
        self.handlers: Dict[str, List[Callable[..., Any]]] = {}

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def emit(self, event: str, *args) -> None:
        for handler in list(self.handlers.get(event, [])):
            handler(*args)


# ==================== Provider A (Agora-style) ====================

class MockLocalTrack:
    def __init__(self, sdk: "MockAgoraSDK", kind: str, device_id: Optional[str] = None):
        self._sdk = sdk
        self.kind = kind
        self.device_id = device_id
        self.muted = False
        self.closed = False

    async def set_muted(self, muted: bool) -> None:
        self._sdk.calls.append(("set_muted", self.kind, muted))
        await self._sdk._checkpoint(f"set_muted_{self.kind}")
        self.muted = muted

    def play(self, sink: Any = None) -> None:
        if sink is not None:
            sink.attach(self)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._sdk.calls.append(("close_track", self.kind))

    def __repr__(self) -> str:
        return f"MockLocalTrack(kind={self.kind!r}, closed={self.closed})"


class MockRemoteTrack:
    def __init__(self, kind: str, uid: Any):
        self.kind = kind
        self.uid = uid
        self.playing = False

    def play(self, sink: Any = None) -> None:
        self.playing = True
        if sink is not None:
            sink.attach(self)

    def stop(self) -> None:
        self.playing = False

    def __repr__(self) -> str:
        return f"MockRemoteTrack(kind={self.kind!r}, uid={self.uid!r})"


class MockRemoteUser:
    def __init__(self, uid: Any):
        self.uid = uid
        self.audio_track: Optional[MockRemoteTrack] = None
        self.video_track: Optional[MockRemoteTrack] = None


class MockAgoraClient(_Emitter):
    def __init__(self, sdk: "MockAgoraSDK", mode: str, codec: str):
        super().__init__()
        self._sdk = sdk
        self.mode = mode
        self.codec = codec
        self.joined = False
        self.channel: Optional[str] = None
        self.published: List[MockLocalTrack] = []
        self.remote_users: Dict[Any, MockRemoteUser] = {}
        self.leave_count = 0

    async def join(self, app_id: str, channel: str, token: str, uid: Any) -> Any:
        self._sdk.calls.append(("join", app_id, channel, token, uid))
        await self._sdk._checkpoint("join")
        self.joined = True
        self.channel = channel
        self.emit("connection-state-change", "CONNECTED", "CONNECTING")
        if self._sdk.echo_remote is not None:
            asyncio.get_running_loop().call_later(
                self._sdk.echo_remote, self.simulate_user_published, "remote-peer", "video"
            )
        return uid

    async def publish(self, tracks: List[MockLocalTrack]) -> None:
        self._sdk.calls.append(("publish", [track.kind for track in tracks]))
        await self._sdk._checkpoint("publish")
        if any(track.closed for track in tracks):
            raise MockSDKError("TRACK_IS_DISABLED", "Cannot publish a closed track")
        self.published = list(tracks)

    async def subscribe(self, user: MockRemoteUser, media_type: str) -> Any:
        self._sdk.calls.append(("subscribe", user.uid, media_type))
        await self._sdk._checkpoint("subscribe")
        return getattr(user, f"{media_type}_track")

    async def leave(self) -> None:
        self._sdk.calls.append(("leave",))
        self.leave_count += 1
        await self._sdk._checkpoint("leave")
        self.joined = False
        self.published = []
        self.emit("connection-state-change", "DISCONNECTED", "CONNECTED")

    # Simulation helpers

    def simulate_user_published(self, uid: Any, media_type: str = "video") -> MockRemoteUser:
        user = self.remote_users.setdefault(uid, MockRemoteUser(uid))
        setattr(user, f"{media_type}_track", MockRemoteTrack(media_type, uid))
        self.emit("user-published", user, media_type)
        return user

    def simulate_user_unpublished(self, uid: Any, media_type: str = "video") -> None:
        user = self.remote_users.get(uid)
        if user is None:
            return
        setattr(user, f"{media_type}_track", None)
        self.emit("user-unpublished", user, media_type)

    def simulate_user_left(self, uid: Any) -> None:
        user = self.remote_users.pop(uid, None)
        if user is not None:
            self.emit("user-left", user, "Quit")

    def simulate_connection_state(self, current: str, previous: str = "") -> None:
        self.emit("connection-state-change", current, previous)


class MockAgoraSDK(_Checkpoints):
    """Simulated Agora-style SDK (module surface of providers.sdk.AgoraSDK)."""

    def __init__(self, echo_remote: Optional[float] = None):
        super().__init__(echo_remote)
        self.clients: List[MockAgoraClient] = []
        self.tracks: List[MockLocalTrack] = []

    @property
    def client(self) -> Optional[MockAgoraClient]:
        return self.clients[-1] if self.clients else None

    def create_client(self, mode: str = "rtc", codec: str = "vp8") -> MockAgoraClient:
        self.calls.append(("create_client", mode, codec))
        self._raise_if_failing("create_client")
        client = MockAgoraClient(self, mode, codec)
        self.clients.append(client)
        return client

    async def create_microphone_and_camera_tracks(
        self,
        audio_config: Optional[dict] = None,
        video_config: Optional[dict] = None,
    ):
        self.calls.append(("create_tracks", audio_config, video_config))
        await self._checkpoint("create_tracks")
        audio = MockLocalTrack(self, "audio", (audio_config or {}).get("microphone_id"))
        video = MockLocalTrack(self, "video", (video_config or {}).get("camera_id"))
        self.tracks.extend([audio, video])
        return audio, video

    def open_tracks(self) -> List[MockLocalTrack]:
        return [track for track in self.tracks if not track.closed]


# ==================== Provider B (Zego-style) ====================

class MockMediaStreamTrack:
    def __init__(self, kind: str, device_id: Optional[str] = None):
        self.kind = kind
        self.device_id = device_id
        self.enabled = True
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True

    def __repr__(self) -> str:
        return f"MockMediaStreamTrack(kind={self.kind!r}, enabled={self.enabled}, stopped={self.stopped})"


class MockMediaStream:
    def __init__(self, tracks: List[MockMediaStreamTrack], stream_id: str = "", remote: bool = False):
        self.id = stream_id or f"stream-{next(_ids)}"
        self.remote = remote
        self.destroyed = False
        self._tracks = tracks

    def get_tracks(self) -> List[MockMediaStreamTrack]:
        return list(self._tracks)

    def get_audio_tracks(self) -> List[MockMediaStreamTrack]:
        return [track for track in self._tracks if track.kind == "audio"]

    def get_video_tracks(self) -> List[MockMediaStreamTrack]:
        return [track for track in self._tracks if track.kind == "video"]

    def __repr__(self) -> str:
        return f"MockMediaStream(id={self.id!r}, remote={self.remote})"


class MockZegoEngine(_Emitter):
    def __init__(self, sdk: "MockZegoSDK", app_id: int, server: str):
        super().__init__()
        self._sdk = sdk
        self.app_id = app_id
        self.server = server
        self.room_id: Optional[str] = None
        self.destroyed = False
        self.publishing: Dict[str, MockMediaStream] = {}
        self.playing: Dict[str, MockMediaStream] = {}
        self.logout_count = 0

    async def login_room(self, room_id: str, token: str, user: dict, config: Optional[dict] = None) -> bool:
        self._sdk.calls.append(("login_room", room_id, token, user.get("user_id")))
        await self._sdk._checkpoint("login_room")
        self.room_id = room_id
        self.emit("room_state_update", room_id, "CONNECTED", 0, "{}")
        if self._sdk.echo_remote is not None:
            asyncio.get_running_loop().call_later(
                self._sdk.echo_remote, self.simulate_stream_added, f"{room_id}_remote-peer", "remote-peer"
            )
        return True

    async def create_stream(self, source: dict) -> MockMediaStream:
        self._sdk.calls.append(("create_stream", source))
        await self._sdk._checkpoint("create_stream")
        camera = source.get("camera", {})
        stream = MockMediaStream([
            MockMediaStreamTrack("audio", camera.get("audio_input")),
            MockMediaStreamTrack("video", camera.get("video_input")),
        ])
        self._sdk.streams.append(stream)
        return stream

    async def start_publishing_stream(self, stream_id: str, stream: MockMediaStream) -> bool:
        self._sdk.calls.append(("publish", stream_id))
        await self._sdk._checkpoint("publish")
        self.publishing[stream_id] = stream
        return True

    async def start_playing_stream(self, stream_id: str) -> MockMediaStream:
        self._sdk.calls.append(("play", stream_id))
        await self._sdk._checkpoint("play")
        remote = MockMediaStream(
            [MockMediaStreamTrack("audio"), MockMediaStreamTrack("video")],
            stream_id=stream_id,
            remote=True,
        )
        self.playing[stream_id] = remote
        return remote

    def stop_playing_stream(self, stream_id: str) -> None:
        self._sdk.calls.append(("stop_play", stream_id))
        self._sdk._raise_if_failing("stop_play")
        self.playing.pop(stream_id, None)

    def destroy_stream(self, stream: MockMediaStream) -> None:
        self._sdk.calls.append(("destroy_stream", stream.id))
        stream.destroyed = True

    def mute_publish_stream_audio(self, stream: MockMediaStream, mute: bool) -> bool:
        self._sdk.calls.append(("mute_audio", mute))
        self._sdk._raise_if_failing("mute_audio")
        return True

    def mute_publish_stream_video(self, stream: MockMediaStream, mute: bool) -> bool:
        self._sdk.calls.append(("mute_video", mute))
        self._sdk._raise_if_failing("mute_video")
        return True

    async def logout_room(self, room_id: str) -> None:
        self._sdk.calls.append(("logout_room", room_id))
        self.logout_count += 1
        await self._sdk._checkpoint("logout_room")
        self.room_id = None
        self.publishing.clear()
        self.emit("room_state_update", room_id, "DISCONNECTED", 0, "{}")

    def destroy_engine(self) -> None:
        self._sdk.calls.append(("destroy_engine",))
        self.destroyed = True

    # Simulation helpers

    def simulate_stream_added(self, stream_id: str, user_id: str = "remote-peer") -> None:
        self.emit("room_stream_update", self.room_id, "ADD",
                  [{"stream_id": stream_id, "user": {"user_id": user_id}}])

    def simulate_stream_deleted(self, stream_id: str, user_id: str = "remote-peer") -> None:
        self.emit("room_stream_update", self.room_id, "DELETE",
                  [{"stream_id": stream_id, "user": {"user_id": user_id}}])

    def simulate_room_state(self, state: str, error_code: int = 0) -> None:
        self.emit("room_state_update", self.room_id, state, error_code, "{}")


class MockZegoSDK(_Checkpoints):
    """Simulated Zego-style SDK (module surface of providers.sdk.ZegoSDK)."""

    def __init__(self, echo_remote: Optional[float] = None):
        super().__init__(echo_remote)
        self.engines: List[MockZegoEngine] = []
        self.streams: List[MockMediaStream] = []

    @property
    def engine(self) -> Optional[MockZegoEngine]:
        return self.engines[-1] if self.engines else None

    def create_engine(self, app_id: int, server: str) -> MockZegoEngine:
        self.calls.append(("create_engine", app_id, server))
        self._raise_if_failing("create_engine")
        engine = MockZegoEngine(self, app_id, server)
        self.engines.append(engine)
        return engine

    def open_tracks(self) -> List[MockMediaStreamTrack]:
        return [
            track
            for stream in self.streams
            for track in stream.get_tracks()
            if not track.stopped
        ]


# Default development bindings (config: "providers.mock_sdk:AGORA" / ":ZEGO")
AGORA = MockAgoraSDK(echo_remote=2.0)
ZEGO = MockZegoSDK(echo_remote=2.0)
