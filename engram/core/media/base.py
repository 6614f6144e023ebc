"""
Abstract bases for image text recognition and audio transcription.
"""

from abc import ABC, abstractmethod


class OCRProvider(ABC):
    """Turns an image into the text it shows."""

    @abstractmethod
    async def recognize(self, image: bytes, mime_type: str = "image/png") -> str:
        """
        Recognize text in an image.

        Args:
            image: Raw image bytes
            mime_type: Image MIME type

        Returns:
            Recognized text (may be empty)

        Raises:
            ProviderTransientError: Retryable provider failure
            ProviderPermanentError: Non-retryable provider failure
        """
        pass

    async def close(self):
        """Release resources held by the provider."""


class Transcriber(ABC):
    """Turns speech in an audio or video file into text."""

    @abstractmethod
    async def transcribe(self, audio: bytes, filename: str = "audio.mp3") -> str:
        """
        Transcribe audio.

        Args:
            audio: Raw audio/video bytes
            filename: Name hinting the container format to the provider

        Returns:
            Transcript text

        Raises:
            ProviderTransientError: Retryable provider failure
            ProviderPermanentError: Non-retryable provider failure
        """
        pass

    async def close(self):
        """Release resources held by the provider."""
