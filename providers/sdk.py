"""
Provider SDK surfaces and the runtime loader.

The two provider SDKs expose different shapes; these protocols pin down the
subset the drivers call. Any object with these methods can be plugged in via
the `*_sdk_module` settings ("package.module" or "package.module:attribute").
"""

import asyncio
import importlib
import logging
from typing import Any, Callable, Iterable, List, Optional, Protocol, Tuple

logger = logging.getLogger("consult-video.sdk")


# ==================== Provider A (Agora-style) ====================

class AgoraLocalTrack(Protocol):
    async def set_muted(self, muted: bool) -> None: ...
    def play(self, sink: Any) -> None: ...
    def close(self) -> None: ...


class AgoraRemoteUser(Protocol):
    uid: Any
    audio_track: Any
    video_track: Any


class AgoraClient(Protocol):
    def on(self, event: str, handler: Callable[..., Any]) -> None: ...
    async def join(self, app_id: str, channel: str, token: str, uid: Any) -> Any: ...
    async def publish(self, tracks: List[AgoraLocalTrack]) -> None: ...
    async def subscribe(self, user: AgoraRemoteUser, media_type: str) -> Any: ...
    async def leave(self) -> None: ...


class AgoraSDK(Protocol):
    def create_client(self, mode: str = "rtc", codec: str = "vp8") -> AgoraClient: ...

    async def create_microphone_and_camera_tracks(
        self,
        audio_config: Optional[dict] = None,
        video_config: Optional[dict] = None,
    ) -> Tuple[AgoraLocalTrack, AgoraLocalTrack]: ...


# ==================== Provider B (Zego-style) ====================

class ZegoMediaTrack(Protocol):
    kind: str
    enabled: bool

    def stop(self) -> None: ...


class ZegoLocalStream(Protocol):
    def get_audio_tracks(self) -> List[ZegoMediaTrack]: ...
    def get_video_tracks(self) -> List[ZegoMediaTrack]: ...
    def get_tracks(self) -> List[ZegoMediaTrack]: ...


class ZegoEngine(Protocol):
    def on(self, event: str, handler: Callable[..., Any]) -> None: ...
    async def login_room(self, room_id: str, token: str, user: dict, config: Optional[dict] = None) -> bool: ...
    async def create_stream(self, source: dict) -> ZegoLocalStream: ...
    async def start_publishing_stream(self, stream_id: str, stream: ZegoLocalStream) -> bool: ...
    async def start_playing_stream(self, stream_id: str) -> Any: ...
    def stop_playing_stream(self, stream_id: str) -> None: ...
    def destroy_stream(self, stream: ZegoLocalStream) -> None: ...
    async def logout_room(self, room_id: str) -> None: ...
    def destroy_engine(self) -> None: ...


class ZegoSDK(Protocol):
    def create_engine(self, app_id: int, server: str) -> ZegoEngine: ...


# ==================== Loader ====================

def _import_sdk(path: str) -> Any:
    module_name, _, attribute = path.partition(":")
    module = importlib.import_module(module_name)
    if not attribute:
        return module
    target = module
    for part in attribute.split("."):
        target = getattr(target, part)
    return target


async def load_sdk_module(path: str) -> Any:
    """Imports a provider SDK off the event loop.

    Args:
        path: "package.module" or "package.module:attribute"

    Raises:
        ImportError / AttributeError if the SDK cannot be found.
    """
    if not path:
        raise ImportError("No SDK module configured")
    loop = asyncio.get_running_loop()
    sdk = await loop.run_in_executor(None, _import_sdk, path)
    logger.debug(f"SDK loaded: {path}")
    return sdk


def missing_methods(sdk: Any, names: Iterable[str]) -> List[str]:
    """Lists required callables the loaded SDK does not provide."""
    return [name for name in names if not callable(getattr(sdk, name, None))]
