"""
Consultation endpoints used by the video layer.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import quote

from api.client import ApiClient

logger = logging.getLogger("consult-video.api")


class IssueType(Enum):
    AUDIO = "audio"
    VIDEO = "video"
    CONNECTION = "connection"
    OTHER = "other"


@dataclass(frozen=True)
class VideoRoomStatus:
    """Presence snapshot of a consultation room."""
    is_active: bool = False
    started_at: Optional[str] = None
    doctor_joined: bool = False
    patient_joined: bool = False

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> "VideoRoomStatus":
        payload = payload or {}
        participants = payload.get("participants") or {}
        return cls(
            is_active=bool(payload.get("isActive", False)),
            started_at=payload.get("startedAt"),
            doctor_joined=bool(participants.get("doctorJoined", False)),
            patient_joined=bool(participants.get("patientJoined", False)),
        )


class ConsultationApi:
    """Consultation routes over an ApiClient."""

    def __init__(self, client: ApiClient):
        self._client = client

    @staticmethod
    def _path(consultation_id: str, suffix: str) -> str:
        return f"/consultations/{quote(str(consultation_id), safe='')}/{suffix}"

    async def get_video_token(self, consultation_id: str) -> Dict[str, Any]:
        """Raw credential payload: {token, appId, roomId, provider}."""
        return await self._client.get(self._path(consultation_id, "video-token"))

    async def join_room(self, consultation_id: str) -> Any:
        return await self._client.post(self._path(consultation_id, "join"))

    async def leave_room(self, consultation_id: str) -> None:
        await self._client.post(self._path(consultation_id, "leave"))

    async def get_room_status(self, consultation_id: str) -> VideoRoomStatus:
        payload = await self._client.get(self._path(consultation_id, "status"))
        return VideoRoomStatus.from_payload(payload)

    async def start_recording(self, consultation_id: str) -> Optional[str]:
        """Starts recording (doctor only). Returns the recording id."""
        payload = await self._client.post(self._path(consultation_id, "record/start"))
        return (payload or {}).get("recordingId")

    async def stop_recording(self, consultation_id: str) -> None:
        await self._client.post(self._path(consultation_id, "record/stop"))

    async def report_issue(
        self,
        consultation_id: str,
        issue_type: str,
        description: Optional[str] = None,
    ) -> None:
        """Reports a technical issue.

        Raises:
            ValueError: issue_type is not audio, video, connection or other
        """
        kind = IssueType(issue_type)
        body: Dict[str, Any] = {"type": kind.value}
        if description:
            body["description"] = description
        await self._client.post(self._path(consultation_id, "report-issue"), json=body)
        logger.info(f"Issue reported for {consultation_id}: {kind.value}")
