"""PDF text extraction with a raw-byte fallback chain.

Handles:
- Structured parsing with pypdf (including empty-password decryption)
- Raw fallback strategies for malformed or protection-hostile files
- Page count and title estimation from raw bytes
- A sentinel result when nothing readable is found
"""
import re
from io import BytesIO
from dataclasses import dataclass
from typing import Optional

from pypdf import PdfReader
import structlog

from docqa.errors import ExtractionError
from docqa.rag import pdf_fallback

logger = structlog.get_logger()

FAILED_TITLE = "Extraction Failed"
FAILED_TEXT = (
    "Text could not be extracted from this PDF. The file may be scanned, "
    "image-only, encrypted or damaged. Try uploading a text-based copy."
)


@dataclass
class ExtractedText:
    """Text recovered from a PDF with document-level metadata."""

    text: str
    page_count: int
    word_count: int
    title: Optional[str] = None
    method: str = "structured"

    @property
    def failed(self) -> bool:
        return self.method == "failed"

    def as_metadata(self) -> dict:
        """Flatten into chunk metadata fields (None values dropped)."""
        metadata = {
            "totalPages": self.page_count,
            "totalWords": self.word_count,
            "title": self.title,
            "extractionMethod": self.method,
        }
        return {key: value for key, value in metadata.items() if value is not None}


class PDFTextExtractor:
    """Turns raw PDF bytes into text, never raising."""

    PAGE_PATTERN = re.compile(rb"/Type\s*/Page\b")
    KIDS_PATTERN = re.compile(rb"/Kids\s*\[")
    INFO_TITLE_PATTERN = re.compile(
        rb"/Title\s*\(((?:\\.|[^\\()]|\((?:\\.|[^\\()])*\))*)\)", re.DOTALL
    )
    XMP_TITLE_PATTERN = re.compile(rb"<dc:title>(.*?)</dc:title>", re.DOTALL)
    TAG_PATTERN = re.compile(r"<[^>]+>")

    def __init__(self, strategies=None):
        """Initialize the extractor.

        Args:
            strategies: Ordered (name, function) fallback strategies
                (default pdf_fallback.FALLBACK_STRATEGIES)
        """
        self.strategies = strategies

    def extract(self, data: bytes) -> ExtractedText:
        """Extract text from PDF bytes.

        Args:
            data: Raw PDF file contents

        Returns:
            ExtractedText; the failure sentinel if no strategy found text
        """
        data = data or b""

        try:
            return self._parse_structured(data)
        except ExtractionError as e:
            logger.warning("pdf_structured_parse_failed", error=str(e), size=len(data))

        method, text = pdf_fallback.run_fallback_chain(data, self.strategies)

        if not text:
            logger.error("pdf_extraction_failed", size=len(data))
            return self.failure_sentinel()

        result = ExtractedText(
            text=text,
            page_count=self.estimate_page_count(data),
            word_count=len(text.split()),
            title=self.find_title(data),
            method=method,
        )

        logger.info(
            "pdf_text_extracted",
            method=method,
            page_count=result.page_count,
            word_count=result.word_count,
        )
        return result

    def _parse_structured(self, data: bytes) -> ExtractedText:
        """Parse with pypdf.

        Raises:
            ExtractionError: If pypdf cannot read the file or finds no text
        """
        try:
            reader = PdfReader(BytesIO(data), strict=False)
            if reader.is_encrypted:
                # Owner-password-only files open with an empty user password
                reader.decrypt("")

            page_texts = []
            for page_number, page in enumerate(reader.pages, 1):
                try:
                    page_texts.append(page.extract_text() or "")
                except Exception as e:
                    logger.debug("pdf_page_extract_failed", page=page_number, error=str(e))
                    page_texts.append("")

            page_count = len(reader.pages)
            title = self._reader_title(reader)
        except Exception as e:
            raise ExtractionError(f"pypdf could not read document: {e}") from e

        text = self._normalize("\n\n".join(page_texts))
        if not text:
            raise ExtractionError("pypdf found no text content")

        result = ExtractedText(
            text=text,
            page_count=page_count or 1,
            word_count=len(text.split()),
            title=title or self.find_title(data),
            method="structured",
        )

        logger.info(
            "pdf_text_extracted",
            method="structured",
            page_count=result.page_count,
            word_count=result.word_count,
        )
        return result

    @staticmethod
    def _reader_title(reader: PdfReader) -> Optional[str]:
        try:
            metadata = reader.metadata
        except Exception:
            return None
        if metadata is None or not metadata.title:
            return None
        return str(metadata.title).strip() or None

    @staticmethod
    def _normalize(text: str) -> str:
        """Light cleanup for parser output (keeps non-ASCII text intact)."""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = "".join(ch for ch in text if ch.isprintable() or ch in "\n\t")
        text = re.sub(r"[ \t]+", " ", text)
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()

    def estimate_page_count(self, data: bytes) -> int:
        """Estimate page count from raw page and kids-array markers."""
        pages = len(self.PAGE_PATTERN.findall(data))
        kids = len(self.KIDS_PATTERN.findall(data))
        return max(pages, kids, 1)

    def find_title(self, data: bytes) -> Optional[str]:
        """Find a title in the info dictionary, then in XMP metadata."""
        match = self.INFO_TITLE_PATTERN.search(data)
        if match:
            title = pdf_fallback.decode_escapes(match.group(1).decode("latin-1"))
            title = pdf_fallback.clean_text(title)
            if title:
                return title

        match = self.XMP_TITLE_PATTERN.search(data)
        if match:
            inner = match.group(1).decode("utf-8", errors="ignore")
            title = " ".join(self.TAG_PATTERN.sub(" ", inner).split())
            if title:
                return title

        return None

    @staticmethod
    def failure_sentinel() -> ExtractedText:
        """Result used when every extraction strategy came back empty."""
        return ExtractedText(
            text=FAILED_TEXT,
            page_count=1,
            word_count=0,
            title=FAILED_TITLE,
            method="failed",
        )


# Singleton instance for convenience
_extractor_instance: Optional[PDFTextExtractor] = None


def get_extractor() -> PDFTextExtractor:
    """Get a singleton PDF text extractor.

    Returns:
        PDFTextExtractor instance with the default strategy chain
    """
    global _extractor_instance
    if _extractor_instance is None:
        _extractor_instance = PDFTextExtractor()
    return _extractor_instance


def extract_text(data: bytes) -> ExtractedText:
    """Extract text using the default extractor (convenience function).

    Args:
        data: Raw PDF bytes

    Returns:
        ExtractedText result
    """
    return get_extractor().extract(data)
