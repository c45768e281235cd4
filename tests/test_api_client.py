"""
Testes do client da API do backend e dos endpoints de consulta.

Usa um servidor aiohttp em processo; não precisa de backend externo.
"""

import asyncio
from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp import test_utils

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from api.client import ApiClient, ApiError
from api.consultation import ConsultationApi, VideoRoomStatus


def _ok(data):
    return web.json_response({"success": True, "message": "OK", "data": data})


def _build_app(received: list) -> web.Application:
    async def video_token(request):
        received.append(("video-token", request.match_info["id"], request.headers.get("Authorization")))
        return _ok({"token": "t1", "appId": 123, "roomId": "room-1", "provider": "agora"})

    async def status(request):
        return _ok({
            "isActive": True,
            "startedAt": "2026-01-01T10:00:00Z",
            "participants": {"doctorJoined": True, "patientJoined": False},
        })

    async def report_issue(request):
        received.append(("report-issue", request.match_info["id"], await request.json()))
        return web.Response(status=204)

    async def record_start(request):
        return _ok({"recordingId": "rec-9"})

    async def leave(request):
        return web.Response(status=204)

    async def join(request):
        received.append(("join", request.match_info["id"]))
        return _ok({"joined": True})

    async def record_stop(request):
        received.append(("record-stop", request.match_info["id"]))
        return web.Response(status=204)

    async def forbidden(request):
        return web.json_response(
            {"success": False, "message": "Forbidden",
             "error": {"code": "NOT_PARTICIPANT", "message": "You are not part of this consultation"}},
            status=403,
        )

    async def failed_envelope(request):
        return web.json_response({"success": False, "message": "Room closed"})

    async def bare(request):
        return web.json_response({"plain": True})

    async def broken(request):
        return web.Response(status=502, text="<html>bad gateway</html>")

    async def slow(request):
        await asyncio.sleep(0.5)
        return _ok({})

    app = web.Application()
    app.router.add_get("/api/v1/consultations/{id}/video-token", video_token)
    app.router.add_get("/api/v1/consultations/{id}/status", status)
    app.router.add_post("/api/v1/consultations/{id}/report-issue", report_issue)
    app.router.add_post("/api/v1/consultations/{id}/record/start", record_start)
    app.router.add_post("/api/v1/consultations/{id}/leave", leave)
    app.router.add_post("/api/v1/consultations/{id}/join", join)
    app.router.add_post("/api/v1/consultations/{id}/record/stop", record_stop)
    app.router.add_get("/api/v1/forbidden", forbidden)
    app.router.add_get("/api/v1/failed", failed_envelope)
    app.router.add_get("/api/v1/bare", bare)
    app.router.add_get("/api/v1/broken", broken)
    app.router.add_get("/api/v1/slow", slow)
    return app


@asynccontextmanager
async def running_backend(received=None):
    server = test_utils.TestServer(_build_app(received if received is not None else []))
    await server.start_server()
    try:
        yield f"http://{server.host}:{server.port}/api/v1"
    finally:
        await server.close()


class TestApiClient:
    """Tratamento do envelope e mapeamento de erros."""

    @pytest.mark.asyncio
    async def test_unwraps_success_envelope(self):
        async with running_backend() as base_url:
            async with ApiClient(base_url=base_url, auth_token="") as client:
                data = await client.get("/consultations/c-1/video-token")

        assert data == {"token": "t1", "appId": 123, "roomId": "room-1", "provider": "agora"}

    @pytest.mark.asyncio
    async def test_bare_json_is_returned_as_is(self):
        async with running_backend() as base_url:
            async with ApiClient(base_url=base_url, auth_token="") as client:
                assert await client.get("/bare") == {"plain": True}

    @pytest.mark.asyncio
    async def test_error_envelope_raises_api_error(self):
        async with running_backend() as base_url:
            async with ApiClient(base_url=base_url, auth_token="") as client:
                with pytest.raises(ApiError) as exc_info:
                    await client.get("/forbidden")

        error = exc_info.value
        assert error.status == 403
        assert error.code == "NOT_PARTICIPANT"
        assert error.message == "You are not part of this consultation"

    @pytest.mark.asyncio
    async def test_unsuccessful_envelope_with_200(self):
        async with running_backend() as base_url:
            async with ApiClient(base_url=base_url, auth_token="") as client:
                with pytest.raises(ApiError, match="Room closed"):
                    await client.get("/failed")

    @pytest.mark.asyncio
    async def test_unreadable_body(self):
        async with running_backend() as base_url:
            async with ApiClient(base_url=base_url, auth_token="") as client:
                with pytest.raises(ApiError) as exc_info:
                    await client.get("/broken")

        assert exc_info.value.status == 502
        assert exc_info.value.code == "INVALID_RESPONSE"

    @pytest.mark.asyncio
    async def test_timeout(self):
        async with running_backend() as base_url:
            async with ApiClient(base_url=base_url, timeout=0.1, auth_token="") as client:
                with pytest.raises(ApiError) as exc_info:
                    await client.get("/slow")

        assert exc_info.value.is_timeout

    @pytest.mark.asyncio
    async def test_network_error(self):
        async with running_backend() as base_url:
            pass

        async with ApiClient(base_url=base_url, timeout=2.0, auth_token="") as client:
            with pytest.raises(ApiError) as exc_info:
                await client.get("/consultations/c-1/video-token")

        assert exc_info.value.is_network_error

    @pytest.mark.asyncio
    async def test_bearer_token_sent(self):
        received = []
        async with running_backend(received) as base_url:
            async with ApiClient(base_url=base_url, auth_token="secret") as client:
                await client.get("/consultations/c-1/video-token")

        assert received[0][2] == "Bearer secret"


class TestConsultationApi:
    """Rotas de consulta."""

    @pytest.mark.asyncio
    async def test_room_status(self):
        async with running_backend() as base_url:
            async with ApiClient(base_url=base_url, auth_token="") as client:
                status = await ConsultationApi(client).get_room_status("c-1")

        assert status == VideoRoomStatus(
            is_active=True,
            started_at="2026-01-01T10:00:00Z",
            doctor_joined=True,
            patient_joined=False,
        )

    @pytest.mark.asyncio
    async def test_report_issue_posts_body(self):
        received = []
        async with running_backend(received) as base_url:
            async with ApiClient(base_url=base_url, auth_token="") as client:
                await ConsultationApi(client).report_issue("c-1", "connection", "User reported connection issue")

        assert received == [
            ("report-issue", "c-1", {"type": "connection", "description": "User reported connection issue"})
        ]

    @pytest.mark.asyncio
    async def test_report_issue_rejects_unknown_type(self):
        received = []
        async with running_backend(received) as base_url:
            async with ApiClient(base_url=base_url, auth_token="") as client:
                with pytest.raises(ValueError):
                    await ConsultationApi(client).report_issue("c-1", "billing")

        assert received == []

    @pytest.mark.asyncio
    async def test_start_recording_returns_id(self):
        async with running_backend() as base_url:
            async with ApiClient(base_url=base_url, auth_token="") as client:
                assert await ConsultationApi(client).start_recording("c-1") == "rec-9"

    @pytest.mark.asyncio
    async def test_leave_room_no_content(self):
        async with running_backend() as base_url:
            async with ApiClient(base_url=base_url, auth_token="") as client:
                assert await ConsultationApi(client).leave_room("c-1") is None

    def test_room_status_from_empty_payload(self):
        assert VideoRoomStatus.from_payload(None) == VideoRoomStatus()

    @pytest.mark.asyncio
    async def test_join_and_stop_recording(self):
        received = []
        async with running_backend(received) as base_url:
            async with ApiClient(base_url=base_url, auth_token="") as client:
                api = ConsultationApi(client)
                assert await api.join_room("c-1") == {"joined": True}
                assert await api.stop_recording("c-1") is None

        assert received == [("join", "c-1"), ("record-stop", "c-1")]
