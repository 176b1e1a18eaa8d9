"""
mojibake_recovery.py — Detect and undo UTF-8 text decoded through an 8-bit code page.

When a clipboard bridge reads UTF-8 bytes as Windows-1252 (or Latin-1, or the
cp437 OEM page a PowerShell console defaults to), every multi-byte character
turns into a run of 2-4 legacy characters:

    ─  (E2 94 80)  ->  "â”€"   cp1252
                   ->  "ΓöÇ" cp437
    é  (C3 A9)     ->  "Ã©"    cp1252

Runs before border stripping: a corrupted frame is not recognizable as a
frame until its glyphs are put back together.

Pure functions only. Nothing here touches the clipboard.
"""
import logging
import re

from tui_filters import box_glyph_count

log = logging.getLogger("mojibake_recovery")

CLEAN = "CLEAN"
RECOVERED = "RECOVERED"
UNRECOVERABLE = "UNRECOVERABLE"

DEFAULT_MIN_SCORE = 0.05

# Order matters: ties on score go to the earlier page
CANDIDATE_CODEPAGES = ("cp1252", "latin-1", "cp437")
# Under cp437 the two-byte lead bytes (C2-DF) are ordinary box glyphs, so
# only the 8859/1252 family gets two-byte markers
TWO_BYTE_CODEPAGES = ("cp1252", "latin-1")
# Two-byte leads a real round trip produces: C2/C3 for U+0080..U+00FF,
# C4/C5 for Latin Extended-A, C6 for ƒ, CB for ˆ and ˜. The rest of C2-DF
# is ordinary accented text ("É»", "É\xa0") far more often than mojibake.
TWO_BYTE_LEADS = (0xC2, 0xC3, 0xC4, 0xC5, 0xC6, 0xCB)

# What a repaired sequence may decode to. Anything else (CJK, Cyrillic, ...)
# means the match was a coincidence in legitimate text.
PLAUSIBLE_RANGES = (
    (0x0080, 0x017F),    # Latin-1 Supplement, Latin Extended-A
    (0x0192, 0x0192),    # ƒ
    (0x02C6, 0x02DC),    # ˆ ˜
    (0x2000, 0x206F),    # General Punctuation
    (0x20A0, 0x20CF),    # currency signs
    (0x2100, 0x21FF),    # letterlike symbols, arrows
    (0x2500, 0x27BF),    # box drawing, blocks, shapes, symbols, dingbats
    (0xFE00, 0xFE0F),    # variation selectors
    (0x1F000, 0x1FAFF),  # emoji
)


def is_plausible(char: str) -> bool:
    """Return True if char is something a terminal or editor would have emitted."""
    cp = ord(char)
    return any(low <= cp <= high for low, high in PLAUSIBLE_RANGES)


def _byte_char(byte: int, codepage: str) -> str:
    """Character a single byte decodes to under codepage."""
    try:
        return bytes([byte]).decode(codepage)
    except UnicodeDecodeError:
        # cp1252 leaves 0x81, 0x8D, 0x8F, 0x90, 0x9D undefined; Windows maps
        # them straight to the C1 control with the same number
        return chr(byte)


def _char_class(byte_range, codepage: str) -> str:
    return "[" + "".join(re.escape(_byte_char(b, codepage)) for b in byte_range) + "]"


class Codepage:
    """Marker pattern and reverse byte map for one legacy code page."""

    def __init__(self, name: str, two_byte: bool):
        self.name = name
        cont = _char_class(range(0x80, 0xC0), name)
        lead2 = _char_class(TWO_BYTE_LEADS, name)
        lead3 = _char_class(range(0xE0, 0xF0), name)
        lead4 = _char_class(range(0xF0, 0xF5), name)

        # Longest first so a 4-byte emoji is not split into a 3-byte match
        parts = [f"{lead4}{cont}{{3}}", f"{lead3}{cont}{{2}}"]
        if two_byte:
            parts.append(f"{lead2}{cont}")
        self.marker_re = re.compile("|".join(parts))

        self.byte_map = {_byte_char(b, name): b for b in range(0x80, 0x100)}

    def to_bytes(self, sequence: str) -> bytes:
        return bytes(self.byte_map[ch] for ch in sequence)

    def __repr__(self):
        return f"Codepage({self.name!r})"


# Compiled once at import; read-only afterwards
CODEPAGES = [Codepage(name, name in TWO_BYTE_CODEPAGES) for name in CANDIDATE_CODEPAGES]


def anomaly_score(text: str, codepage: Codepage) -> float:
    """Fraction of non-blank lines holding at least one corruption marker."""
    lines = [line for line in text.split('\n') if line.strip()]
    if not lines:
        return 0.0
    hits = sum(1 for line in lines if codepage.marker_re.search(line))
    return hits / len(lines)


def repair(text: str, codepage: Codepage) -> tuple[str, list[str]]:
    """Re-encode every marker sequence to bytes and decode it as UTF-8.

    Returns (repaired_text, failed_sequences). A sequence that is not valid
    UTF-8 once turned back into bytes, or that decodes to a character no
    terminal would have produced, is left as it was and reported.
    """
    failed = []

    def fix(match):
        sequence = match.group(0)
        try:
            char = codepage.to_bytes(sequence).decode('utf-8')
        except UnicodeDecodeError:
            failed.append(sequence)
            return sequence
        if not is_plausible(char):
            failed.append(sequence)
            return sequence
        return char

    return codepage.marker_re.sub(fix, text), failed


def recover(text: str, min_score: float = DEFAULT_MIN_SCORE) -> tuple:
    """Detect and reverse an encoding round-trip.

    Returns (verdict, text, score, codepage_name):
      CLEAN          no candidate page scores at least min_score; text untouched
      RECOVERED      text is the repaired version
      UNRECOVERABLE  corruption found but no candidate repaired it cleanly;
                     text untouched so border stripping still runs

    A repair is accepted only if every sequence decodes to a plausible
    character, the score drops, and no box-drawing glyph is lost.
    """
    scored = sorted(
        ((anomaly_score(text, cp), cp) for cp in CODEPAGES),
        key=lambda pair: pair[0],
        reverse=True,
    )
    best_score, best_page = scored[0]
    if best_score == 0.0 or best_score < min_score:
        return (CLEAN, text, best_score, None)

    for score, codepage in scored:
        if score == 0.0 or score < min_score:
            break
        repaired, failed = repair(text, codepage)
        if failed:
            log.debug(f"{codepage.name}: {len(failed)} sequence(s) are not UTF-8 "
                      f"or decode to unlikely characters, e.g. {failed[0]!r}")
            continue
        new_score = anomaly_score(repaired, codepage)
        if new_score >= score:
            log.debug(f"{codepage.name}: repair did not lower score ({score:.2f} -> {new_score:.2f})")
            continue
        # A genuine repair only ever reassembles frame glyphs, never loses them
        glyphs_before, glyphs_after = box_glyph_count(text), box_glyph_count(repaired)
        if glyphs_after < glyphs_before:
            log.debug(f"{codepage.name}: repair lost box glyphs ({glyphs_before} -> {glyphs_after})")
            continue
        log.info(f"Recovered {codepage.name} mojibake (score {score:.2f} -> {new_score:.2f}, "
                 f"box glyphs {glyphs_before} -> {glyphs_after})")
        return (RECOVERED, repaired, score, codepage.name)

    return (UNRECOVERABLE, text, best_score, best_page.name)
