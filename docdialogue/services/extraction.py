"""Format-specific text extraction with ordered fallback strategies."""

import io
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import fitz  # PyMuPDF
from bs4 import BeautifulSoup
from docx import Document as DocxDocument
from pypdf import PdfReader

logger = logging.getLogger(__name__)

_EXT_RE = re.compile(r"\.([a-z0-9]+)$")
_SPACE_BEFORE_NEWLINE_RE = re.compile(r"\s+\n")
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_WHITESPACE_RE = re.compile(r"\s+")

PDF_MIN_CHARS = 20


def guess_ext(path: str) -> str:
    """Lowercase extension of an object path, or "" when there is none."""
    match = _EXT_RE.search((path or "").lower())
    return match.group(1) if match else ""


def decode_utf8(data: bytes) -> str:
    """Strict UTF-8 decode; a leading BOM is dropped."""
    return data.decode("utf-8-sig").strip()


def extract_pdf_text(data: bytes) -> str:
    """Whole-document text via pypdf."""
    reader = PdfReader(io.BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages).strip()


def extract_pdf_pages(data: bytes) -> str:
    """Page-by-page text via PyMuPDF, pages separated by blank lines."""
    pages: List[str] = []
    with fitz.open(stream=data, filetype="pdf") as doc:
        for page in doc:
            pages.append(page.get_text("text"))
    text = "\n\n".join(pages)
    text = _SPACE_BEFORE_NEWLINE_RE.sub("\n", text)
    return _BLANK_LINES_RE.sub("\n\n", text).strip()


def extract_docx_text(data: bytes) -> str:
    """Raw paragraph and table text from a Word document."""
    doc = DocxDocument(io.BytesIO(data))
    parts = [p.text.strip() for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return "\n\n".join(parts).strip()


def strip_html(html: str) -> str:
    """Drop script/style blocks and all tags, collapsing whitespace."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return _WHITESPACE_RE.sub(" ", soup.get_text(" "))


def extract_html_text(data: bytes) -> str:
    return strip_html(data.decode("utf-8", errors="replace")).strip()


@dataclass
class ExtractionStrategy:
    """
    One way of turning bytes into text.

    A result is acceptable when it is longer than ``min_chars`` characters;
    ``min_chars`` guards extractors that "succeed" with near-empty output.
    """

    name: str
    func: Callable[[bytes], str]
    min_chars: int = 0

    def accepts(self, text: Optional[str]) -> bool:
        return bool(text) and len(text) > self.min_chars


STRATEGIES: Dict[str, List[ExtractionStrategy]] = {
    "pdf": [
        ExtractionStrategy("pypdf", extract_pdf_text, min_chars=PDF_MIN_CHARS),
        ExtractionStrategy("pymupdf", extract_pdf_pages),
        ExtractionStrategy("utf8", decode_utf8),
    ],
    "docx": [
        ExtractionStrategy("python-docx", extract_docx_text),
        ExtractionStrategy("utf8", decode_utf8),
    ],
    "html": [ExtractionStrategy("html", extract_html_text)],
    "htm": [ExtractionStrategy("html", extract_html_text)],
}
DEFAULT_STRATEGIES = [ExtractionStrategy("utf8", decode_utf8)]


def strategies_for(ext: str) -> List[ExtractionStrategy]:
    return STRATEGIES.get(ext, DEFAULT_STRATEGIES)


def first_acceptable(strategies: Sequence[ExtractionStrategy], data: bytes) -> str:
    """
    Run strategies in order and return the first acceptable text.

    Failures and rejected outputs are logged and the next strategy is tried.
    Returns "" when every strategy is exhausted.
    """
    for strategy in strategies:
        try:
            text = strategy.func(data)
        except Exception as e:
            logger.warning(f"[extract] {strategy.name} failed: {str(e)}")
            continue
        if strategy.accepts(text):
            return text
        logger.info(
            f"[extract] {strategy.name} rejected output "
            f"({len(text or '')} chars)")
    return ""


class ExtractionService:
    """Extract plain text from uploaded document bytes."""

    def extract(self, ext: str, data: bytes) -> str:
        """
        Extract text for a filename-derived extension.

        Args:
            ext: Lowercase extension without the dot ("" if none).
            data: Raw file bytes.

        Returns:
            Extracted text, or "" when nothing usable was found.
        """
        return first_acceptable(strategies_for(ext), data)
