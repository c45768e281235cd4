"""
Testes unitários da seleção de driver e do modelo de dados da sessão.
"""

import pytest
from unittest.mock import MagicMock

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from providers.agora import AgoraDriver
from providers.errors import UnsupportedProviderError
from providers.zego import ZegoDriver
from session import dispatch
from session.dispatch import build_join_params, create_driver
from session.media_sink import MountRegistry
from session.models import DevicePreferences, LocalUser, ProviderTag, SessionCredential

_mock_video_config = {
    "local_mount_id": "local-video",
    "remote_mount_id": "remote-video",
    "join_timeout": 30.0,
    "teardown_grace": 5.0,
    "agora_sdk_module": "providers.mock_sdk:AGORA",
    "zego_sdk_module": "providers.mock_sdk:ZEGO",
    "agora_mode": "rtc",
    "agora_codec": "vp8",
    "zego_server_url": "wss://webliveroom-api.zegocloud.com/ws",
    "enabled_providers": ["agora", "zegocloud"],
}


@pytest.fixture(autouse=True)
def mock_configs(monkeypatch):
    monkeypatch.setattr("session.dispatch.VIDEO_CONFIG", _mock_video_config)


def _credential(provider: str = "agora") -> SessionCredential:
    return SessionCredential(provider=provider, app_id=123, token="t1", room_id="room-1")


USER = LocalUser("patient-1", "Pat")


# ==================== Modelo ====================

class TestModels:
    """ProviderTag e SessionCredential."""

    def test_provider_tag_parse(self):
        assert ProviderTag.parse("agora") is ProviderTag.AGORA
        assert ProviderTag.parse(" ZegoCloud ") is ProviderTag.ZEGOCLOUD
        assert ProviderTag.parse("twilio") is None
        assert ProviderTag.parse(None) is None

    def test_credential_from_payload(self):
        credential = SessionCredential.from_payload(
            {"provider": "agora", "appId": 123, "token": "t1", "roomId": "room-1"}
        )
        assert credential.provider_tag is ProviderTag.AGORA
        assert credential.app_id == 123
        assert credential.room_id == "room-1"

    def test_credential_missing_fields(self):
        with pytest.raises(ValueError, match="token"):
            SessionCredential.from_payload({"provider": "agora", "appId": 1, "roomId": "r"})

    def test_credential_repr_hides_token(self):
        credential = _credential()
        assert "t1" not in repr(credential)


# ==================== Dispatch ====================

class TestCreateDriver:
    """Tag de provedor -> driver."""

    def test_agora_tag_builds_agora_driver(self):
        driver = create_driver(_credential("agora"), USER, MountRegistry())
        assert isinstance(driver, AgoraDriver)

    def test_zego_tag_builds_zego_driver(self):
        driver = create_driver(_credential("zegocloud"), USER, MountRegistry())
        assert isinstance(driver, ZegoDriver)

    def test_tag_is_case_insensitive(self):
        driver = create_driver(_credential("AGORA"), USER, MountRegistry())
        assert isinstance(driver, AgoraDriver)

    @pytest.mark.parametrize("provider", ["twilio", "", "daily", "agora-v2"])
    def test_unknown_tag_never_constructs_a_driver(self, monkeypatch, provider):
        spies = {tag: MagicMock(name=tag.value) for tag in ProviderTag}
        monkeypatch.setattr(dispatch, "DRIVERS", spies)

        with pytest.raises(UnsupportedProviderError):
            create_driver(_credential(provider), USER, MountRegistry())

        for spy in spies.values():
            spy.assert_not_called()

    def test_disabled_provider_is_rejected(self):
        with pytest.raises(UnsupportedProviderError) as exc_info:
            create_driver(_credential("zegocloud"), USER, MountRegistry(), enabled=["agora"])
        assert exc_info.value.provider == "zegocloud"

    def test_sdk_and_config_are_forwarded(self):
        sdk = object()
        driver = create_driver(_credential("agora"), USER, MountRegistry(), sdk=sdk)
        assert driver._sdk is sdk


class TestBuildJoinParams:
    """Normalização de credencial + identidade."""

    def test_defaults(self):
        params = build_join_params(_credential(), LocalUser("patient-1", ""))

        assert params.app_id == 123
        assert params.token == "t1"
        assert params.room_id == "room-1"
        assert params.user_id == "patient-1"
        assert params.user_name == "User"
        assert params.local_mount_id == "local-video"
        assert params.remote_mount_id == "remote-video"
        assert params.microphone_id is None
        assert params.is_complete

    def test_device_preferences(self):
        params = build_join_params(_credential(), USER, DevicePreferences("mic-1", "cam-1"))

        assert params.microphone_id == "mic-1"
        assert params.camera_id == "cam-1"

    def test_custom_mount_ids(self):
        params = build_join_params(_credential(), USER, local_mount_id="me", remote_mount_id="them")

        assert (params.local_mount_id, params.remote_mount_id) == ("me", "them")
