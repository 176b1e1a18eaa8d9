"""
tui_filters.py — Border/padding removal for text copied out of terminal UIs.

Single source of truth for TUI frame detection. Used by:
- clipboard_txn.py (the Transform phase of a clipboard run)
- reprompt.py --dry-run

Every line is classified independently:
    PURE_BORDER      top/bottom rules, separators, corners      -> deleted
    CONTENT_WRAPPER  "│ content │" side rails around real text   -> content kept
    PLAIN            everything else                             -> untouched

Plain ASCII pipes are only ever a rail when they sit at the edge of the line
and nothing else on the line looks like a table column separator, so Markdown
tables, `a || b` and shell pipelines survive.
"""
import re

PURE_BORDER = "PURE_BORDER"
CONTENT_WRAPPER = "CONTENT_WRAPPER"
PLAIN = "PLAIN"

DEFAULT_TABLE_PIPE_MIN = 3

# U+2500..U+257F
BOX_DRAWING = "".join(chr(cp) for cp in range(0x2500, 0x2580))
# Side rails: frame a line, never a rule on their own
VERTICAL_RAILS = "│┃║┆┇┊┋╎╏╵╷╹╻╽╿"
# Horizontal runs, corners, tees, crosses, double-line variants
BORDER_GLYPHS = "".join(ch for ch in BOX_DRAWING if ch not in VERTICAL_RAILS)
# Rails a content wrapper may use (single, heavy, double)
WRAPPER_RAILS = "│┃║"

# --- Compiled patterns ---

# Terminal escape sequences. [\x20-\x3f]* covers the ECMA-48 parameter and
# intermediate bytes, so private modes (\x1b[?25h) go too.
ANSI_RE = re.compile(
    r'\x1b\[[\x20-\x3f]*[\x40-\x7e]'        # CSI: colors, cursor moves, erase
    r'|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)'   # OSC: titles, hyperlinks (BEL or ST)
    r'|\x1b[()][AB012]'                      # character set selection
    r'|\x1b[A-Za-z=>]'                       # two-char ESC sequences
)
# Control chars left behind by the TUI. Tab, \n and \r are handled elsewhere.
CONTROL_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

# A rule line: at least one border glyph, nothing but glyphs, rails and whitespace
BORDER_LINE_RE = re.compile(
    rf'^[\s{VERTICAL_RAILS}]*[{BORDER_GLYPHS}][\s{BORDER_GLYPHS}{VERTICAL_RAILS}]*$'
)

CONTENT_WRAPPER_RE = re.compile(
    rf"""
    ^
    \s*                     # indentation in front of the box
    [{WRAPPER_RAILS}]       # left rail
    \x20?                   # single padding space
    (?P<content>.*?)        # lazy, so the right padding is left to the groups below
    \x20?                   # single padding space
    [{WRAPPER_RAILS}]?      # right rail, missing when the copy cut the box
    \s*
    $
    """,
    re.VERBOSE,
)

INDENT_RE = re.compile(r'^[ \t]*')


def strip_ansi(line: str) -> str:
    """Remove terminal escape sequences and stray control characters.

    Repeats until nothing changes: removing one sequence can splice the
    pieces of another together.
    """
    while True:
        stripped = CONTROL_RE.sub('', ANSI_RE.sub('', line))
        if stripped == line:
            return stripped
        line = stripped


def is_border(line: str) -> bool:
    """Return True if line is a decorative rule that should be removed."""
    return BORDER_LINE_RE.match(line) is not None


def _unwrap_ascii_pipes(line: str, table_pipe_min: int):
    """Return the content between edge `|` rails, or None if the pipes are real.

    A pipe is only a rail when it is the first or last non-whitespace
    character. Any pipe elsewhere, or table_pipe_min pipes in total, means
    the line is a table row or code and must be kept as is.
    """
    stripped = line.strip()
    pipes = stripped.count('|')
    if pipes == 0 or pipes >= table_pipe_min:
        return None

    leading = stripped.startswith('|')
    trailing = stripped.endswith('|') and (len(stripped) > 1 or not leading)
    if int(leading) + int(trailing) != pipes:
        return None

    body = line
    if leading:
        body = body.lstrip()[1:]
        if body.startswith(' '):
            body = body[1:]
    if trailing:
        body = body.rstrip()[:-1]
    return body.rstrip()


def _indent_of(content: str) -> str:
    return INDENT_RE.match(content).group(0)


def classify_line(line: str, table_pipe_min: int = DEFAULT_TABLE_PIPE_MIN) -> tuple:
    """Classify one escape-free line.

    Returns (line_class, content, indent). content and indent are None
    unless the line is a CONTENT_WRAPPER; content keeps its own leading
    indentation and drops trailing padding.
    """
    if is_border(line):
        return (PURE_BORDER, None, None)

    match = CONTENT_WRAPPER_RE.match(line)
    if match:
        content = match.group('content').rstrip()
        return (CONTENT_WRAPPER, content, _indent_of(content))

    content = _unwrap_ascii_pipes(line, table_pipe_min)
    if content is not None:
        return (CONTENT_WRAPPER, content, _indent_of(content))

    return (PLAIN, None, None)


def clean_line(line: str, table_pipe_min: int = DEFAULT_TABLE_PIPE_MIN):
    """Return the cleaned line, or None if the whole line is decoration.

    Wrapper content is peeled again until it classifies as PLAIN, so boxes
    nested inside boxes come out in one pass.
    """
    line = strip_ansi(line)
    while True:
        line_class, content, _ = classify_line(line, table_pipe_min)
        if line_class == PURE_BORDER:
            return None
        if line_class == PLAIN:
            return line
        line = content


def normalize_newlines(text: str) -> str:
    return text.replace('\r\n', '\n').replace('\r', '\n')


def clean_text_stats(text: str, table_pipe_min: int = DEFAULT_TABLE_PIPE_MIN) -> tuple[str, dict]:
    """Clean a block of copied TUI text. Returns (cleaned_text, stats)."""
    lines = normalize_newlines(text).split('\n')
    kept = []
    borders = 0
    unwrapped = 0

    for line in lines:
        cleaned = clean_line(line, table_pipe_min)
        if cleaned is None:
            borders += 1
            continue
        if cleaned != line:
            unwrapped += 1
        kept.append(cleaned)

    stats = {
        'total_lines': len(lines),
        'borders_removed': borders,
        'lines_rewritten': unwrapped,
        'kept': len(kept),
    }
    return '\n'.join(kept), stats


def clean_text(text: str, table_pipe_min: int = DEFAULT_TABLE_PIPE_MIN) -> str:
    """Strip TUI frames from text. Deterministic and idempotent."""
    return clean_text_stats(text, table_pipe_min)[0]


def box_glyph_count(text: str) -> int:
    """Count box-drawing characters (U+2500..U+257F) in text."""
    return sum(1 for ch in text if '─' <= ch <= '╿')


def significant_length(text: str) -> int:
    """Count characters that carry content.

    Whitespace, box-drawing glyphs, ASCII pipes and escape sequences are
    decoration as far as cleaning is concerned; everything else is content
    a clean must never lose.
    """
    total = 0
    for line in normalize_newlines(text).split('\n'):
        for ch in strip_ansi(line):
            if ch.isspace() or ch == '|' or '─' <= ch <= '╿':
                continue
            total += 1
    return total
