"""Document chunking service."""

import re
from typing import List, Optional

from docdialogue.core.config import settings
from docdialogue.models.document import Chunk

_PARAGRAPH_BREAK_RE = re.compile(r"\n{2,}")

ROOT_PATH = "root"


class ChunkingService:
    """Split sanitized text into overlapping, size-bounded chunks."""

    def __init__(
        self, max_chars: Optional[int] = None, overlap: Optional[int] = None
    ) -> None:
        """
        Initialize the chunking service.

        Args:
            max_chars: Maximum characters per chunk.
            overlap: Characters shared by consecutive hard-sliced windows.
        """
        self.max_chars = max_chars or settings.chunk_max_chars
        self.overlap = settings.chunk_overlap if overlap is None else overlap
        if not 0 <= self.overlap < self.max_chars:
            raise ValueError(
                f"overlap must be in [0, {self.max_chars}), got {self.overlap}")

    def split_paragraphs(self, text: str) -> List[str]:
        """Split on blank lines, dropping empty paragraphs."""
        text = text.replace("\r\n", "\n")
        paragraphs = (p.strip() for p in _PARAGRAPH_BREAK_RE.split(text))
        return [p for p in paragraphs if p]

    def hard_slice(self, text: str) -> List[str]:
        """
        Cut oversized text into fixed windows of ``max_chars``.

        Each window starts ``max_chars - overlap`` characters after the
        previous one, so neighbours share ``overlap`` characters.
        """
        windows = []
        start = 0
        while start < len(text):
            end = min(start + self.max_chars, len(text))
            windows.append(text[start:end])
            if end == len(text):
                break
            start = end - self.overlap
        return windows

    def chunk_text(self, text: str) -> List[Chunk]:
        """
        Chunk a document along paragraph boundaries.

        Args:
            text: Sanitized document text.

        Returns:
            Ordered chunks, each at most ``max_chars`` long. Empty input
            yields no chunks.
        """
        pieces: List[str] = []
        buffer = ""

        def flush() -> None:
            nonlocal buffer
            body = buffer.strip()
            buffer = ""
            if not body:
                return
            if len(body) > self.max_chars:
                pieces.extend(self.hard_slice(body))
            else:
                pieces.append(body)

        for paragraph in self.split_paragraphs(text):
            candidate = f"{buffer}\n\n{paragraph}" if buffer else paragraph
            if len(candidate) > self.max_chars:
                flush()
                buffer = paragraph
                if len(buffer) > self.max_chars * 1.5:
                    flush()
            else:
                buffer = candidate
        flush()

        return [
            Chunk(index=idx, text=body, path=ROOT_PATH)
            for idx, body in enumerate(pieces)
        ]
