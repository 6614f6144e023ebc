"""
Dispatch from document type to chunker.
"""

from engram.config import ProcessingConfig
from engram.core.chunking.base import Chunker
from engram.core.chunking.code import CodeChunker
from engram.core.chunking.markdown import MarkdownChunker
from engram.core.chunking.structured import StructuredDataChunker
from engram.core.chunking.text import TextChunker, WebpageChunker
from engram.core.extractors.detection import detect_language
from engram.core.tokenizer import Tokenizer
from engram.models.document import DocumentType


class ChunkerRegistry:
    """
    Selects a chunker for a document.

    Chunkers are stateless, so one instance of each is shared.
    """

    def __init__(self, config: ProcessingConfig | None = None, tokenizer: Tokenizer | None = None):
        config = config or ProcessingConfig()
        tokenizer = tokenizer or Tokenizer()

        self.text = TextChunker(config, tokenizer)
        self.code = CodeChunker(config, tokenizer)
        self.markdown = MarkdownChunker(config, tokenizer)
        self.structured = StructuredDataChunker(config, tokenizer)
        self.webpage = WebpageChunker(config, tokenizer)

    def get_chunker(self, doc_type: DocumentType, source_path: str | None = None) -> Chunker:
        """
        Pick the chunker for a document type.

        Code (and text whose path has a code extension) goes to the code
        chunker only when the language is known; otherwise it falls back to
        sentence chunking.
        """
        if doc_type in (DocumentType.CODE, DocumentType.TEXT) and detect_language(source_path):
            return self.code
        if doc_type == DocumentType.MARKDOWN:
            return self.markdown
        if doc_type in (DocumentType.CSV, DocumentType.XLSX):
            return self.structured
        if doc_type == DocumentType.WEBPAGE:
            return self.webpage
        return self.text
