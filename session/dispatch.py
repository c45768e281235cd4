"""
Driver selection.

Maps a credential's provider tag to exactly one driver class. Fails closed: an
unknown or disabled tag raises UnsupportedProviderError and nothing is built.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Type

from config import VIDEO_CONFIG
from metrics import track_unsupported_provider
from providers.agora import AgoraDriver
from providers.base import DriverConfig, SessionDriver
from providers.errors import UnsupportedProviderError
from providers.zego import ZegoDriver
from session.media_sink import MountRegistry
from session.models import (
    DevicePreferences,
    JoinParams,
    LocalUser,
    ProviderTag,
    SessionCredential,
)

logger = logging.getLogger("consult-video.dispatch")

DRIVERS: Dict[ProviderTag, Type[SessionDriver]] = {
    ProviderTag.AGORA: AgoraDriver,
    ProviderTag.ZEGOCLOUD: ZegoDriver,
}


def build_join_params(
    credential: SessionCredential,
    user: LocalUser,
    preferences: Optional[DevicePreferences] = None,
    local_mount_id: Optional[str] = None,
    remote_mount_id: Optional[str] = None,
) -> JoinParams:
    """Normalizes a credential + local identity into driver join parameters."""
    preferences = preferences or DevicePreferences()
    return JoinParams(
        app_id=credential.app_id,
        token=credential.token,
        room_id=credential.room_id,
        user_id=user.user_id,
        user_name=user.user_name or "User",
        local_mount_id=local_mount_id or VIDEO_CONFIG["local_mount_id"],
        remote_mount_id=remote_mount_id or VIDEO_CONFIG["remote_mount_id"],
        microphone_id=preferences.microphone_id,
        camera_id=preferences.camera_id,
    )


def resolve_driver_class(
    provider: Any,
    enabled: Optional[Iterable[str]] = None,
) -> Type[SessionDriver]:
    """Returns the driver class for a provider tag.

    Raises:
        UnsupportedProviderError: the tag is unknown or not enabled
    """
    tag = ProviderTag.parse(provider)
    enabled_tags = {str(name).strip().lower() for name in (
        enabled if enabled is not None else VIDEO_CONFIG.get("enabled_providers", [])
    )}

    if tag is None or tag.value not in enabled_tags:
        track_unsupported_provider(str(provider or ""))
        logger.error(f"Unsupported video provider: {provider!r}")
        raise UnsupportedProviderError(str(provider or ""))

    return DRIVERS[tag]


def create_driver(
    credential: SessionCredential,
    user: LocalUser,
    mounts: MountRegistry,
    preferences: Optional[DevicePreferences] = None,
    config: Optional[DriverConfig] = None,
    sdk: Any = None,
    enabled: Optional[Iterable[str]] = None,
) -> SessionDriver:
    """Builds the driver for `credential`.

    Raises:
        UnsupportedProviderError: no driver is constructed
    """
    driver_class = resolve_driver_class(credential.provider, enabled)
    params = build_join_params(credential, user, preferences)
    driver = driver_class(params, mounts, config=config, sdk=sdk)
    logger.info(f"Driver selected: {driver!r}")
    return driver
