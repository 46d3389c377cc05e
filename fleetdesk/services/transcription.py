"""
Voice-note transcription with Whisper.
"""
from typing import Optional

import openai
import structlog

from fleetdesk.core.config import Settings, get_settings
from fleetdesk.core.exceptions import TranscriptionError
from fleetdesk.core.retry import create_async_retry_decorator, get_transcription_retry_config
from fleetdesk.services.messaging import MessagingClient

logger = structlog.get_logger(__name__)

AUDIO_EXTENSIONS = {
    "audio/ogg": "ogg",
    "audio/opus": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/aac": "aac",
    "audio/amr": "amr",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/webm": "webm",
}

_retry = create_async_retry_decorator(get_transcription_retry_config(), service_name="Transcription")


def extension_for(mime_type: Optional[str]) -> str:
    """File extension Whisper should see for a channel MIME type (``audio/ogg; codecs=opus`` -> ``ogg``)."""
    base = (mime_type or "").split(";")[0].strip().lower()
    return AUDIO_EXTENSIONS.get(base, "ogg")


class TranscriptionService:
    """Downloads voice notes from the channel and turns them into text."""

    def __init__(
        self,
        messaging: MessagingClient,
        client: Optional[openai.AsyncOpenAI] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.messaging = messaging
        self.client = client or openai.AsyncOpenAI(
            api_key=settings.openai_api_key, timeout=settings.openai_timeout
        )
        self.model = settings.transcription_model

    @_retry
    async def _download(self, media_id: str):
        return await self.messaging.download_media(media_id)

    @_retry
    async def _transcribe_bytes(self, audio: bytes, mime_type: Optional[str]) -> str:
        filename = f"voice.{extension_for(mime_type)}"
        result = await self.client.audio.transcriptions.create(
            model=self.model,
            file=(filename, audio, (mime_type or "audio/ogg").split(";")[0]),
        )
        return (result.text or "").strip()

    async def transcribe(self, media_id: str, mime_type: Optional[str] = None) -> str:
        """
        Transcribe a channel voice note.

        Raises:
            TranscriptionError: If the audio could not be fetched or transcribed
        """
        try:
            audio, detected_mime = await self._download(media_id)
            text = await self._transcribe_bytes(audio, mime_type or detected_mime)
        except Exception as e:
            logger.error("Voice note transcription failed", media_id=media_id, error=str(e))
            raise TranscriptionError(str(e)) from e

        if not text:
            raise TranscriptionError("Empty transcription")

        logger.info("Voice note transcribed", media_id=media_id, characters=len(text))
        return text
