"""
Session token resolver.

Fetches the signed join credential for a consultation. Any failure is a
TokenFetchError; the resolver never retries, the caller offers a retry.
"""

import asyncio
import logging

from api.client import ApiError
from api.consultation import ConsultationApi
from metrics import track_token_fetch_failure, track_token_fetch_latency
from providers.errors import TokenFetchError
from session.models import SessionCredential

logger = logging.getLogger("consult-video.token-resolver")


class TokenResolver:
    def __init__(self, api: ConsultationApi):
        self._api = api

    async def resolve_session(self, consultation_id: str) -> SessionCredential:
        """Returns the credential for `consultation_id`.

        Raises:
            TokenFetchError: transport error, timeout, rejected request or bad payload
        """
        if not consultation_id:
            track_token_fetch_failure()
            raise TokenFetchError("Missing consultation id")

        try:
            with track_token_fetch_latency():
                payload = await self._api.get_video_token(consultation_id)
        except ApiError as e:
            track_token_fetch_failure()
            logger.warning(f"Video token request failed for {consultation_id}: {e!r}")
            raise TokenFetchError(cause=e) from e
        except asyncio.TimeoutError as e:
            track_token_fetch_failure()
            logger.warning(f"Video token request timed out for {consultation_id}")
            raise TokenFetchError(cause=e) from e

        if not isinstance(payload, dict):
            track_token_fetch_failure()
            logger.warning(f"Unexpected video token payload for {consultation_id}: {type(payload).__name__}")
            raise TokenFetchError()

        try:
            credential = SessionCredential.from_payload(payload)
        except ValueError as e:
            track_token_fetch_failure()
            logger.warning(str(e))
            raise TokenFetchError(cause=e) from e

        logger.info(f"Credential resolved: {credential!r}")
        return credential
