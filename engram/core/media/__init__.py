"""
Media providers: OCR for images, transcription for audio and video.
"""
from engram.core.media.base import OCRProvider, Transcriber
from engram.core.media.ocr import OllamaOCR, OpenAIOCR
from engram.core.media.transcription import OpenAITranscriber

__all__ = [
    "OCRProvider",
    "Transcriber",
    "OpenAIOCR",
    "OllamaOCR",
    "OpenAITranscriber",
]
