"""
Data model shared by the resolver, the drivers and the control surface.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union


class ProviderTag(Enum):
    """Real-time providers a consultation can be routed to."""
    AGORA = "agora"          # Provider A
    ZEGOCLOUD = "zegocloud"  # Provider B

    @classmethod
    def parse(cls, value: Any) -> Optional["ProviderTag"]:
        """Returns the tag for a raw value, or None when unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        for tag in cls:
            if tag.value == normalized:
                return tag
        return None


@dataclass(frozen=True)
class SessionCredential:
    """Signed join credential for one consultation attempt.

    `provider` keeps the raw tag from the backend so an unknown value can still
    reach dispatch and be rejected there.
    """
    provider: str
    app_id: Union[str, int]
    token: str
    room_id: str

    @property
    def provider_tag(self) -> Optional[ProviderTag]:
        return ProviderTag.parse(self.provider)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SessionCredential":
        """Builds a credential from the token endpoint payload.

        Raises:
            ValueError: a required field is missing or empty
        """
        missing = [
            key for key in ("token", "appId", "roomId")
            if payload.get(key) in (None, "")
        ]
        if missing:
            raise ValueError(f"Video token payload missing fields: {', '.join(missing)}")

        return cls(
            provider=str(payload.get("provider") or ""),
            app_id=payload["appId"],
            token=str(payload["token"]),
            room_id=str(payload["roomId"]),
        )

    def __repr__(self) -> str:
        # Token stays out of logs
        return (
            f"SessionCredential(provider={self.provider!r}, app_id={self.app_id!r}, "
            f"room_id={self.room_id!r})"
        )


@dataclass(frozen=True)
class LocalUser:
    """Identity of the participant on this side of the call."""
    user_id: str
    user_name: str = "User"


@dataclass(frozen=True)
class DevicePreferences:
    """Preferred capture devices picked in the lobby."""
    microphone_id: Optional[str] = None
    camera_id: Optional[str] = None


@dataclass(frozen=True)
class JoinParams:
    """Normalized parameters handed to a provider driver."""
    app_id: Union[str, int]
    token: str
    room_id: str
    user_id: str
    user_name: str
    local_mount_id: str
    remote_mount_id: str
    microphone_id: Optional[str] = None
    camera_id: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.app_id) and bool(self.token) and bool(self.room_id) and bool(self.user_id)

    def __repr__(self) -> str:
        return (
            f"JoinParams(app_id={self.app_id!r}, room_id={self.room_id!r}, "
            f"user_id={self.user_id!r}, local={self.local_mount_id!r}, "
            f"remote={self.remote_mount_id!r})"
        )
