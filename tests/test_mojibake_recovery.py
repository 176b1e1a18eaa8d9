#!/usr/bin/env python3
"""
Tests for mojibake_recovery.py - repairing UTF-8 read through a legacy code page.

Corrupted fixtures are produced the same way the damage happens in the wild:
encode clean text as UTF-8, then decode the bytes with the wrong code page.
"""

import logging
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from mojibake_recovery import (
    CLEAN,
    CODEPAGES,
    RECOVERED,
    UNRECOVERABLE,
    anomaly_score,
    recover,
    repair,
)
from tui_filters import box_glyph_count, clean_text


BOX = (
    "╭────────╮\n"
    "│ line 1 │\n"
    "│ line 2 │\n"
    "╰────────╯"
)


def corrupt(text: str, codepage: str) -> str:
    return text.encode('utf-8').decode(codepage)


def page(name: str):
    return next(cp for cp in CODEPAGES if cp.name == name)


class TestRecovery:
    """Corrupted frames come back as real box-drawing glyphs."""

    @pytest.mark.parametrize("codepage", ["cp1252", "latin-1", "cp437"])
    def test_box_round_trip(self, codepage):
        corrupted = corrupt(BOX, codepage)
        assert corrupted != BOX

        verdict, text, score, detected = recover(corrupted)

        assert verdict == RECOVERED
        assert detected == codepage
        assert score == 1.0
        assert text == BOX

    def test_recovered_glyph_count_matches_clean(self):
        verdict, text, _, _ = recover(corrupt(BOX, "cp1252"))
        assert verdict == RECOVERED
        assert box_glyph_count(text) == box_glyph_count(BOX)

    def test_recovered_box_is_then_stripped(self):
        """Without recovery the frame would not be recognized at all."""
        corrupted = corrupt(BOX, "cp1252")
        assert clean_text(corrupted) == corrupted

        _, text, _, _ = recover(corrupted)
        assert clean_text(text) == "line 1\nline 2"

    def test_cp1252_punctuation(self):
        original = "don’t stop… it’s fine – really"
        verdict, text, _, detected = recover(corrupt(original, "cp1252"))
        assert verdict == RECOVERED
        assert detected == "cp1252"
        assert text == original

    def test_cp1252_undefined_bytes_as_c1_controls(self):
        """═ is E2 95 90; 0x90 has no cp1252 glyph and arrives as U+0090."""
        corrupted = "â•\x90â•\x90"
        verdict, text, _, detected = recover(corrupted)
        assert verdict == RECOVERED
        assert detected == "cp1252"
        assert text == "══"

    def test_emoji_four_byte_sequence(self):
        verdict, text, _, _ = recover(corrupt("done ✅ 🎉", "cp1252"))
        assert verdict == RECOVERED
        assert text == "done ✅ 🎉"

    def test_extended_latin(self):
        verdict, text, _, _ = recover(corrupt("café naïve", "cp1252"))
        assert verdict == RECOVERED
        assert text == "café naïve"


class TestNoFalsePositives:
    """Legitimate non-ASCII text is left alone."""

    @pytest.mark.parametrize("text", [
        "café naïve résumé\nÇa va? Über die Straße\nniño, señor, açaí",
        BOX,
        "plain ascii only",
        "Ωμέγα and ∑ and → arrows",
        # French spacing: no-break space before ':' and '!'
        "RÉSUMÉ\xa0: voilà\nCAFÉ\xa0!",
        "Il a dit «ÉTÉ»",
        "",
    ])
    def test_clean_text(self, text):
        verdict, out, score, codepage = recover(text)
        assert verdict == CLEAN
        assert out == text
        assert codepage is None

    def test_below_threshold_is_clean(self):
        """One stray corrupted quote in a long paste does not trigger repair."""
        lines = [f"line {i}" for i in range(30)] + [corrupt("don’t", "cp1252")]
        text = "\n".join(lines)

        verdict, out, score, _ = recover(text)
        assert verdict == CLEAN
        assert out == text
        assert 0 < score < 0.05

    def test_threshold_is_tunable(self):
        lines = [f"line {i}" for i in range(30)] + [corrupt("don’t", "cp1252")]
        verdict, out, _, _ = recover("\n".join(lines), min_score=0.01)
        assert verdict == RECOVERED
        assert out.endswith("don’t")


class TestUnrecoverable:
    """Marker-looking sequences that are not valid UTF-8 are never half-fixed."""

    def test_invalid_utf8_left_unmodified(self):
        # E0 80 80 is an overlong encoding, rejected by a strict decoder
        text = "price: à€€ total"
        verdict, out, score, codepage = recover(text)

        assert verdict == UNRECOVERABLE
        assert out == text
        assert score == 1.0
        assert codepage == "cp1252"

    def test_unlikely_character_not_substituted(self):
        """CB BB is valid UTF-8 (U+02FB), but no terminal emits it."""
        text = "NOË» NOË»"
        verdict, out, _, _ = recover(text)
        assert verdict == UNRECOVERABLE
        assert out == text

    def test_repair_never_loses_box_glyphs(self):
        """Under cp437 a lone │ can be the tail of a marker; keeping the frame wins."""
        text = "Γ£│"
        verdict, out, score, codepage = recover(text)
        assert verdict == UNRECOVERABLE
        assert out == text
        assert codepage == "cp437"

    def test_failed_sequences_logged(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="mojibake_recovery"):
            recover("à€€")
        assert "not UTF-8" in caplog.text


class TestScoring:
    """Tests for anomaly_score and repair."""

    def test_score_is_fraction_of_lines(self):
        text = corrupt("│ a │", "cp1252") + "\nclean\nclean\nclean"
        assert anomaly_score(text, page("cp1252")) == 0.25

    def test_blank_lines_not_counted(self):
        text = corrupt("│ a │", "cp1252") + "\n\n   \n"
        assert anomaly_score(text, page("cp1252")) == 1.0

    def test_repair_reports_failures(self):
        repaired, failed = repair("â”€ à€€", page("cp1252"))
        assert repaired == "─ à€€"
        assert failed == ["à€€"]

    def test_codepage_order(self):
        assert [cp.name for cp in CODEPAGES] == ["cp1252", "latin-1", "cp437"]
