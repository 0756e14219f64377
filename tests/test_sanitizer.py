"""Tests for Unicode sanitation of extracted text."""

import unicodedata

import pytest

from docdialogue.services.sanitizer import (
    safe_snippet,
    sanitize,
    strip_invalid,
    tidy_whitespace,
    truncate_codepoints,
)

LONE_HIGH = chr(0xD83D)
LONE_LOW = chr(0xDE00)
NONCHAR_BLOCK = chr(0xFDD0)
PLANE_NONCHARS = chr(0xFFFE) + chr(0xFFFF) + chr(0x1FFFF)


class TestStripInvalid:
    """Invalid code points are removed, valid text is untouched."""

    def test_removes_lone_surrogates(self):
        assert strip_invalid(f"a{LONE_HIGH}b{LONE_LOW}c") == "abc"

    def test_removes_control_characters_but_keeps_layout(self):
        text = "line\x00one\x07\tstill\nnext\r\n\x7f\x85end"
        assert strip_invalid(text) == "lineone\tstill\nnext\r\nend"

    def test_removes_noncharacters(self):
        assert strip_invalid(f"x{NONCHAR_BLOCK}y{PLANE_NONCHARS}z") == "xyz"

    def test_keeps_astral_characters(self):
        emoji = chr(0x1F600)
        assert strip_invalid(f"smile {emoji}") == f"smile {emoji}"


class TestSanitize:
    """Full sanitation pipeline."""

    def test_empty(self):
        assert sanitize("") == ""

    def test_composes_to_nfc(self):
        decomposed = "Cafe\u0301"
        result = sanitize(decomposed)
        assert result == "Caf\u00e9"
        assert unicodedata.is_normalized("NFC", result)

    def test_tidies_whitespace(self):
        assert tidy_whitespace("a  \t\nb\n\n\n\nc  ") == "a\nb\n\nc"

    @pytest.mark.parametrize(
        "text",
        [
            "plain text",
            f"mixed{LONE_HIGH} debris\x00 and \n\n\n\n blank runs  \n",
            "Cafe\u0301 " + NONCHAR_BLOCK + " \t\n" + chr(0x1F600),
            "\n\n  leading and trailing  \n\n",
        ],
    )
    def test_idempotent(self, text):
        once = sanitize(text)
        assert sanitize(once) == once

    @pytest.mark.parametrize(
        "text",
        [
            f"{LONE_HIGH}{LONE_LOW}{NONCHAR_BLOCK}",
            "ok\x01\x02" + PLANE_NONCHARS,
        ],
    )
    def test_output_has_no_invalid_code_points(self, text):
        result = sanitize(text)
        for ch in result:
            cp = ord(ch)
            assert not 0xD800 <= cp <= 0xDFFF
            assert not 0xFDD0 <= cp <= 0xFDEF
            assert (cp & 0xFFFF) not in (0xFFFE, 0xFFFF)


class TestTruncation:
    """Code point truncation for snippets and excerpts."""

    def test_truncates_to_limit(self):
        assert truncate_codepoints("abcdef", 3) == "abc"

    def test_non_positive_limit(self):
        assert truncate_codepoints("abc", 0) == ""

    def test_drops_dangling_high_surrogate(self):
        assert truncate_codepoints(f"ab{LONE_HIGH}{LONE_LOW}", 3) == "ab"

    def test_safe_snippet_is_sanitized_and_capped(self):
        snippet = safe_snippet("x\x00" * 400, 500)
        assert snippet == "x" * 400
        assert len(safe_snippet("y" * 900)) == 500
