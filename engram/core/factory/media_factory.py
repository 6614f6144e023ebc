"""
Factory for OCR and transcription providers.
"""

from engram.config import OCRConfig, TranscriptionConfig
from engram.core.media.base import OCRProvider, Transcriber
from engram.core.media.ocr import OllamaOCR, OpenAIOCR
from engram.core.media.transcription import OpenAITranscriber
from engram.utils.exceptions import ConfigurationError


class MediaFactory:
    """Factory for media providers. Unset providers yield None."""

    @staticmethod
    def create_ocr(config: OCRConfig) -> OCRProvider | None:
        if not config.provider:
            return None
        if config.provider == "openai":
            if not config.api_key:
                raise ConfigurationError("OpenAI API key is required", {"section": "ocr"})
            return OpenAIOCR(
                api_key=config.api_key,
                model=config.model,
                base_url=config.base_url,
                timeout=config.timeout,
            )
        if config.provider == "ollama":
            return OllamaOCR(
                host=config.base_url or "http://localhost:11434",
                model=config.model,
                timeout=config.timeout,
            )
        raise ConfigurationError(f"Unsupported OCR provider: {config.provider}")

    @staticmethod
    def create_transcriber(config: TranscriptionConfig) -> Transcriber | None:
        if not config.provider:
            return None
        if config.provider == "openai":
            if not config.api_key:
                raise ConfigurationError(
                    "OpenAI API key is required", {"section": "transcription"}
                )
            return OpenAITranscriber(
                api_key=config.api_key,
                model=config.model,
                base_url=config.base_url,
                timeout=config.timeout,
            )
        raise ConfigurationError(f"Unsupported transcription provider: {config.provider}")
