"""
Dispatch from document type to extractor.
"""

from engram.core.extractors.base import DocumentExtractor
from engram.core.extractors.detection import detect_type
from engram.core.extractors.media import AudioExtractor, ImageExtractor, VideoExtractor
from engram.core.extractors.office import DocxExtractor, PptxExtractor
from engram.core.extractors.structured import CsvExtractor, XlsxExtractor
from engram.core.extractors.text import PlainTextExtractor, WebpageExtractor
from engram.core.media.base import OCRProvider, Transcriber
from engram.models.document import DocumentType, ExtractedContent
from engram.utils.exceptions import ValidationError
from engram.utils.logger import get_logger

logger = get_logger(__name__)


class ExtractorRegistry:
    """
    Holds one extractor per document family.

    The set of document types is closed; every DocumentType maps to exactly
    one extractor.
    """

    def __init__(
        self,
        ocr: OCRProvider | None = None,
        transcriber: Transcriber | None = None,
    ):
        plain = PlainTextExtractor()
        self._extractors: dict[DocumentType, DocumentExtractor] = {
            DocumentType.TEXT: plain,
            DocumentType.CODE: plain,
            DocumentType.MARKDOWN: plain,
            DocumentType.WEBPAGE: WebpageExtractor(),
            DocumentType.CSV: CsvExtractor(),
            DocumentType.XLSX: XlsxExtractor(),
            DocumentType.DOCX: DocxExtractor(),
            DocumentType.PPTX: PptxExtractor(),
            DocumentType.IMAGE: ImageExtractor(ocr),
            DocumentType.AUDIO: AudioExtractor(transcriber),
            DocumentType.VIDEO: VideoExtractor(transcriber),
        }

    def get_extractor(self, doc_type: DocumentType) -> DocumentExtractor:
        return self._extractors[doc_type]

    def resolve_type(
        self,
        data: bytes,
        declared_type: DocumentType | None = None,
        source_path: str | None = None,
    ) -> DocumentType:
        """
        Resolve the document type: declared type wins, otherwise detect it.

        Raises:
            ValidationError: If the data is empty or its type can't be determined
        """
        if not data:
            raise ValidationError("Document content is empty", {"source_path": source_path})
        if declared_type is not None:
            return declared_type

        detected = detect_type(data, source_path)
        if detected is None:
            raise ValidationError(
                "Unable to determine document type",
                {"source_path": source_path, "size": len(data)},
            )
        return detected

    async def extract(
        self,
        data: bytes,
        declared_type: DocumentType | None = None,
        source_path: str | None = None,
        url: str | None = None,
    ) -> ExtractedContent:
        """
        Extract text from raw document bytes.

        Args:
            data: Raw bytes
            declared_type: Caller-declared type; detected when None
            source_path: Original file path, used for detection and titles
            url: Origin URL

        Returns:
            ExtractedContent

        Raises:
            ValidationError: Empty data, unknown type or unparseable content
            ProviderError: OCR/transcription failures
        """
        doc_type = self.resolve_type(data, declared_type, source_path)
        extractor = self.get_extractor(doc_type)
        content = await extractor.extract(data, doc_type, source_path=source_path, url=url)

        logger.debug(
            f"Extracted {content.word_count} words from {doc_type.value} document",
            extra={"doc_type": doc_type.value, "source_path": source_path},
        )
        return content
