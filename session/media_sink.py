"""
Media sinks and the mount point registry.

A mount point is an opaque id owned by the rendering layer. Drivers resolve
the id at call time and write media into whatever sink is registered there;
they never create or own the sink.
"""

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

logger = logging.getLogger("consult-video.media-sink")


@runtime_checkable
class MediaSink(Protocol):
    """Rendering target for one media stream."""

    def attach(self, stream: Any) -> None:
        """Replaces the current content with `stream`."""
        ...

    def clear(self) -> None:
        """Removes any rendered content."""
        ...


class MemoryMediaSink:
    """Sink that only remembers what is attached (headless rendering, tests)."""

    def __init__(self, mount_id: str = ""):
        self.mount_id = mount_id
        self.stream: Any = None
        self.attach_count = 0
        self.clear_count = 0

    @property
    def is_empty(self) -> bool:
        return self.stream is None

    def attach(self, stream: Any) -> None:
        self.stream = stream
        self.attach_count += 1

    def clear(self) -> None:
        self.stream = None
        self.clear_count += 1

    def __repr__(self) -> str:
        return f"MemoryMediaSink(mount_id={self.mount_id!r}, stream={self.stream!r})"


class LoggingMediaSink(MemoryMediaSink):
    """MemoryMediaSink that logs every change (used by the CLI)."""

    def attach(self, stream: Any) -> None:
        super().attach(stream)
        logger.info(f"[{self.mount_id}] rendering {stream!r}")

    def clear(self) -> None:
        had_stream = self.stream is not None
        super().clear()
        if had_stream:
            logger.info(f"[{self.mount_id}] cleared")


class MountRegistry:
    """Resolves mount point ids to live sinks (the rendering layer's DOM)."""

    def __init__(self):
        self._sinks: Dict[str, MediaSink] = {}

    def register(self, mount_id: str, sink: MediaSink) -> MediaSink:
        self._sinks[mount_id] = sink
        return sink

    def unregister(self, mount_id: str) -> None:
        self._sinks.pop(mount_id, None)

    def resolve(self, mount_id: str) -> Optional[MediaSink]:
        """Returns the sink mounted at `mount_id`, or None if not rendered."""
        return self._sinks.get(mount_id)

    def __contains__(self, mount_id: str) -> bool:
        return mount_id in self._sinks
