"""
Extractors that delegate to OCR and transcription providers.
"""

from pathlib import PurePosixPath

from engram.core.extractors.base import DocumentExtractor
from engram.core.extractors.detection import image_mime_type
from engram.core.media.base import OCRProvider, Transcriber
from engram.models.document import DocumentType, ExtractedContent
from engram.utils.exceptions import ProviderPermanentError
from engram.utils.logger import get_logger

logger = get_logger(__name__)

_DEFAULT_FILENAMES = {
    DocumentType.AUDIO: "audio.mp3",
    DocumentType.VIDEO: "video.mp4",
}


class ImageExtractor(DocumentExtractor):
    """Images: text comes from the OCR provider."""

    def __init__(self, ocr: OCRProvider | None):
        self.ocr = ocr

    async def extract(
        self,
        data: bytes,
        doc_type: DocumentType,
        source_path: str | None = None,
        url: str | None = None,
    ) -> ExtractedContent:
        if self.ocr is None:
            raise ProviderPermanentError(
                "No OCR provider configured for image documents",
                {"source_path": source_path},
            )

        mime_type = image_mime_type(data) or "image/png"
        text = await self.ocr.recognize(data, mime_type=mime_type)
        logger.debug(
            f"OCR recognized {len(text)} chars",
            extra={"mime_type": mime_type, "source_path": source_path},
        )

        title = PurePosixPath(source_path).name if source_path else None
        return self._build(text, doc_type, title, source_path, url, mime_type=mime_type)


class TranscriptionExtractor(DocumentExtractor):
    """Audio and video: text comes from the transcription provider."""

    def __init__(self, transcriber: Transcriber | None):
        self.transcriber = transcriber

    async def extract(
        self,
        data: bytes,
        doc_type: DocumentType,
        source_path: str | None = None,
        url: str | None = None,
    ) -> ExtractedContent:
        if self.transcriber is None:
            raise ProviderPermanentError(
                f"No transcription provider configured for {doc_type.value} documents",
                {"source_path": source_path},
            )

        filename = PurePosixPath(source_path).name if source_path else _DEFAULT_FILENAMES[doc_type]
        text = await self.transcriber.transcribe(data, filename=filename)
        logger.debug(
            f"Transcribed {len(text)} chars",
            extra={"doc_type": doc_type.value, "source_path": source_path},
        )

        title = filename if source_path else None
        return self._build(text, doc_type, title, source_path, url)


class AudioExtractor(TranscriptionExtractor):
    """Audio files."""


class VideoExtractor(TranscriptionExtractor):
    """Video files; the provider extracts the audio track."""
