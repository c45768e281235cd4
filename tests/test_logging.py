"""
Testes do adapter de logging das sessões de vídeo.
"""

import logging

import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from providers.agora import AgoraDriver, AgoraDriverConfig
from providers.mock_sdk import MockAgoraSDK
from session.media_sink import MemoryMediaSink, MountRegistry
from session.models import JoinParams
from utils.logging import SessionLoggerAdapter, get_session_logger


class TestSessionLoggerAdapter:
    """Formatação do prefixo de contexto e do sufixo de duração."""

    def test_provider_and_room_prefix(self):
        adapter = get_session_logger("test.session", provider="agora", room="room-1")

        msg, kwargs = adapter.process("Joining", {})

        assert msg == "[agora room=room-1] Joining"
        assert kwargs["extra"]["video_provider"] == "agora"
        assert kwargs["extra"]["video_room"] == "room-1"

    def test_step_duration_and_generation(self):
        adapter = get_session_logger(
            "test.session", generation=lambda: 3, provider="zegocloud", room="room-1"
        )

        msg, kwargs = adapter.process("Connected", {"extra": {"step": "publish", "duration_ms": 412.4}})

        assert msg == "[zegocloud room=room-1 gen=3] [step=publish] Connected (412ms)"
        assert kwargs["extra"]["video_generation"] == 3
        assert kwargs["extra"]["video_step"] == "publish"
        assert "step" not in kwargs["extra"]
        assert "duration_ms" not in kwargs["extra"]

    def test_generation_read_on_every_call(self):
        counter = {"value": 0}
        adapter = get_session_logger("test.session", generation=lambda: counter["value"], room="r")

        first, _ = adapter.process("a", {})
        counter["value"] += 1
        second, _ = adapter.process("b", {})

        assert first == "[room=r gen=0] a"
        assert second == "[room=r gen=1] b"

    def test_bind_adds_fields_without_touching_parent(self):
        parent = get_session_logger("test.session", consultation="c-1")

        child = parent.bind(provider="agora", room="room-1")

        assert child.process("x", {})[0] == "[agora consultation=c-1 room=room-1] x"
        assert parent.process("x", {})[0] == "[consultation=c-1] x"
        assert child.logger is parent.logger

    def test_long_fields_truncated(self):
        adapter = SessionLoggerAdapter(logging.getLogger("test.session"), room="r" * 40)
        assert adapter.extra["room"] == "r" * 16

    def test_caller_extra_untouched(self):
        adapter = get_session_logger("test.session", room="room-1")
        extra = {"step": "join", "peer": "doctor-1"}

        _, kwargs = adapter.process("Joining", {"extra": extra})

        assert extra == {"step": "join", "peer": "doctor-1"}
        assert kwargs["extra"]["peer"] == "doctor-1"

    def test_empty_context(self):
        adapter = get_session_logger("test.session", room="")
        msg, _ = adapter.process("Idle", {})
        assert msg == "Idle"


class TestDriverLogContext:
    """Logs de um driver carregam provedor, sala e geração."""

    @pytest.mark.asyncio
    async def test_leave_bumps_generation_in_records(self, caplog):
        mounts = MountRegistry()
        mounts.register("local-video", MemoryMediaSink("local-video"))
        mounts.register("remote-video", MemoryMediaSink("remote-video"))
        params = JoinParams(
            app_id=123, token="t1", room_id="room-1", user_id="patient-1",
            user_name="Pat", local_mount_id="local-video", remote_mount_id="remote-video",
        )
        driver = AgoraDriver(
            params, mounts,
            config=AgoraDriverConfig(join_timeout=2.0, teardown_grace=0.2),
            sdk=MockAgoraSDK(),
        )

        with caplog.at_level(logging.INFO, logger="consult-video.agora"):
            await driver.join()
            await driver.leave()

        joined = [r for r in caplog.records if r.getMessage().endswith("Joining room")]
        left = [r for r in caplog.records if "Left session" in r.getMessage()]
        assert joined and joined[0].video_generation == 0
        assert joined[0].getMessage().startswith("[agora room=room-1 gen=0]")
        assert left and left[0].video_generation == 1
