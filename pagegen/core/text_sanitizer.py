"""Text sanitization for knowledge-base passages.

Retrieved passages are often scraped web pages: navigation menus, logo alt
text, markdown image tags, copyright footers and table fragments come back
mixed with the body copy. sanitize_kb_text() keeps only the prose lines and
returns "" when too little survives. It is pure and idempotent:
sanitize_kb_text(sanitize_kb_text(x, m), m) == sanitize_kb_text(x, m).
"""

import re

# Guide citations survive with a lower length bar ("See B3-3.1-08", "Form 1007").
GUIDE_TOKEN_RE = re.compile(
    r"\bB\d-[\d.]+|\bForm\s+10(?:07|25)\b|\bSchedule\s+E\b",
    re.IGNORECASE,
)

_IMAGE_RE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_HEADING_RE = re.compile(r"^[ \t]*(?:#{1,6}[ \t]+)+", re.MULTILINE)
_INLINE_WS_RE = re.compile(r"[^\S\n]+")

BOILERPLATE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bskip\s+to\s+(?:the\s+)?(?:main\s+)?content\b",
        r"\btoggle\s+navigation\b",
        r"\b(?:site|platform|main|primary|footer)\s+nav(?:igation)?\b",
        r"\bhomepage\b",
        r"\blogin\b",
        r"\bsign\s+in\b",
        r"\b(?:[\w&'.-]+\s+){1,2}logo\b",
        r"(?:©|\bcopyright\b)[^\n]*",
        r"\ball\s+rights\s+reserved\b",
        r"\bback\s+to\s+top\b",
        r"\bcontact\s+us\b",
    )
)

# A bullet is a list glyph anywhere, or a -, * or + marker opening a line.
# Spaced dashes inside a sentence are punctuation.
_BULLET_RE = re.compile(r"[•·▪▸►‣◦]|^[-*+](?=\s)", re.MULTILINE)
_BULLET_STRIP_RE = re.compile(r"[•·▪▸►‣◦]|^(?:[-*+](?:[^\S\n]+|$))+", re.MULTILINE)
_MENU_WORD_RE = re.compile(
    r"\b(?:home|menu|about\s+us|products|solutions|resources|news|careers|search|"
    r"events|support|subscribe|sign\s+up)\b",
    re.IGNORECASE,
)

MIN_LINE_WITH_TOKEN = 20
MIN_LINE_RELAXED = 24
MIN_LINE_STRICT = 50
MIN_TEXT_RELAXED = 60
MIN_TEXT_STRICT = 80
BULLET_HEAVY_COUNT = 3

_MAX_NORMALIZE_PASSES = 8


def has_guide_token(text: str) -> bool:
    """True when text cites a guide section or form (B3-3.1-08, Form 1007, Schedule E)."""
    return bool(GUIDE_TOKEN_RE.search(text or ""))


def _normalize(text: str) -> str:
    """Strip images, heading markers and boilerplate phrases until stable."""
    for _ in range(_MAX_NORMALIZE_PASSES):
        previous = text
        text = _IMAGE_RE.sub(" ", text)
        text = _HEADING_RE.sub("", text)
        for pattern in BOILERPLATE_PATTERNS:
            text = pattern.sub(" ", text)
        text = _INLINE_WS_RE.sub(" ", text)
        text = "\n".join(line.strip() for line in text.split("\n"))
        if text == previous:
            break
    return text


def _strip_bullets(text: str) -> str:
    text = _INLINE_WS_RE.sub(" ", _BULLET_STRIP_RE.sub(" ", text))
    return "\n".join(line.strip() for line in text.split("\n"))


def _min_line_length(line: str, relaxed: bool) -> int:
    if has_guide_token(line):
        return MIN_LINE_WITH_TOKEN
    return MIN_LINE_RELAXED if relaxed else MIN_LINE_STRICT


def _is_menu_line(line: str) -> bool:
    return len(_BULLET_RE.findall(line)) >= BULLET_HEAVY_COUNT and bool(
        _MENU_WORD_RE.search(line)
    )


def _keep_line(line: str, relaxed: bool) -> bool:
    """Line-level filter shared by the per-line pass and the final check."""
    if len(line) < _min_line_length(line, relaxed):
        return False
    # Table fragments, unless they carry a guide citation
    if "|" in line and not has_guide_token(line):
        return False
    if not relaxed and _is_menu_line(line):
        return False
    return True


def sanitize_kb_text(text: str, relaxed: bool = False) -> str:
    """
    Clean raw KB passage text.

    Processing order:
    1. Remove markdown images, heading markers and navigation/boilerplate phrases
    2. Split into lines, collapse whitespace, drop short / tabular / menu lines
       and strip bullet markers from the survivors
    3. Rejoin survivors with single spaces
    4. Return "" when the result is shorter than the overall minimum

    Args:
        text: Raw passage text
        relaxed: Use the lower line-length bar (24 instead of 50 chars) and
            skip the menu-line check

    Returns:
        Sanitized single-line text, or "" if nothing usable survives
    """
    if not text:
        return ""

    normalized = _normalize(text.replace("\r\n", "\n").replace("\r", "\n"))

    kept = [
        _strip_bullets(line)
        for line in normalized.split("\n")
        if line and _keep_line(line, relaxed)
    ]
    if not kept:
        return ""

    # Joining can surface new phrase matches across former line breaks, and
    # removing a phrase can expose a marker (or the reverse)
    joined = " ".join(kept)
    for _ in range(_MAX_NORMALIZE_PASSES):
        cleaned = _strip_bullets(_normalize(joined))
        if cleaned == joined:
            break
        joined = cleaned

    min_total = MIN_TEXT_RELAXED if relaxed else MIN_TEXT_STRICT
    if len(joined) < min_total or not _keep_line(joined, relaxed):
        return ""
    return joined
