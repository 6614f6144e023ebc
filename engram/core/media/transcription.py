"""
Speech-to-text providers.
"""

from openai import AsyncOpenAI

from engram.core.media.base import Transcriber
from engram.utils.exceptions import provider_error
from engram.utils.logger import get_logger

logger = get_logger(__name__)


class OpenAITranscriber(Transcriber):
    """Transcription through the OpenAI audio API (whisper-1, gpt-4o-transcribe)."""

    def __init__(
        self,
        api_key: str,
        model: str = "whisper-1",
        base_url: str | None = None,
        timeout: float = 300.0,
    ):
        self.model = model
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    async def transcribe(self, audio: bytes, filename: str = "audio.mp3") -> str:
        try:
            response = await self.client.audio.transcriptions.create(
                model=self.model,
                file=(filename, audio),
            )
        except Exception as e:
            logger.error("OpenAI transcription error: {}", e, extra={"model": self.model})
            raise provider_error(e, "openai", "transcribe", {"model": self.model}) from e

        return (response.text or "").strip()

    async def close(self):
        await self.client.close()
