"""Unicode sanitation for extracted document text.

The same ``sanitize`` is applied at ingest time to the full text and at
snippet time to index metadata, so both sides agree on the canonical form:
invalid code points are stripped first, then the text is NFC-composed, then
whitespace is tidied.
"""

import re
import unicodedata

_SURROGATES_RE = re.compile("[\ud800-\udfff]")
_CONTROL_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_NONCHAR_BLOCK_RE = re.compile("[\ufdd0-\ufdef]")
_TRAILING_WS_RE = re.compile(r"[ \t]+\n")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def _is_plane_nonchar(ch: str) -> bool:
    return (ord(ch) & 0xFFFF) in (0xFFFE, 0xFFFF)


def strip_invalid(text: str) -> str:
    """Remove surrogates, control characters and Unicode non-characters."""
    text = _SURROGATES_RE.sub("", text)
    text = _CONTROL_RE.sub("", text)
    text = _NONCHAR_BLOCK_RE.sub("", text)
    return "".join(ch for ch in text if not _is_plane_nonchar(ch))


def tidy_whitespace(text: str) -> str:
    """Drop trailing blanks before newlines and cap blank runs at one line."""
    text = _TRAILING_WS_RE.sub("\n", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


def sanitize(text: str) -> str:
    """
    Make arbitrary decoded text safe for storage, indexing and display.

    Args:
        text: Decoded text, possibly containing decode debris.

    Returns:
        NFC-normalized text without invalid code points. Idempotent.
    """
    if not text:
        return ""
    text = strip_invalid(text)
    text = unicodedata.normalize("NFC", text)
    return tidy_whitespace(text)


def truncate_codepoints(text: str, max_chars: int) -> str:
    """
    Truncate to at most ``max_chars`` code points.

    A dangling high surrogate at the cut is dropped so a pair is never split.
    """
    if max_chars <= 0:
        return ""
    out = text[:max_chars]
    if out and "\ud800" <= out[-1] <= "\udbff":
        out = out[:-1]
    return out


def safe_snippet(text: str, max_chars: int = 500) -> str:
    """Sanitized, length-capped excerpt for citation display."""
    return truncate_codepoints(sanitize(text), max_chars)
