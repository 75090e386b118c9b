"""Deterministic clean-up applied to prompt text after a rewrite step."""

from __future__ import annotations

import re
from typing import Optional

from loguru import logger

from ..app.models import PromptMode
from .fields import (
    MAX_MODE_HEADER,
    format_field_line,
    get_field,
    is_signature_line,
    parse_field_line,
    parse_prompt,
    replace_field,
)

ELLIPSIS = "..."
MIN_CONTENT_WORD_LENGTH = 4
DEFAULT_HEADER_MOOD = "Evocative"
DEFAULT_HEADER_GENRE = "Cinematic"
DEFAULT_HEADER_KEY = "C Major"

LEAKED_META_SUBSTRINGS = (
    "remove word repetition",
    "remove repetition",
    "these words repeat",
    "output only",
    "condense to under",
    "strict constraints",
    "here's the revised prompt",
    "here is the revised prompt",
)

_META_LINE_PATTERNS = (
    re.compile(r"^\s*\[\s*note:.*\]\s*$", re.IGNORECASE),
    re.compile(r"^\s*\(\s*note:.*\)\s*$", re.IGNORECASE),
    re.compile(r"^\s*note:", re.IGNORECASE),
    re.compile(r"^\s*\*\*note\*\*:", re.IGNORECASE),
    re.compile(r"^\s*instructions?:", re.IGNORECASE),
    re.compile(r"^\s*output:", re.IGNORECASE),
    re.compile(r"^\s*response:", re.IGNORECASE),
    re.compile(r"^\s*here(?: is|'s)\b.*:\s*$", re.IGNORECASE),
)
_INLINE_NOTE = re.compile(r"[ \t]*(?:\[\s*note:[^\]]*\]|\(\s*note:[^)]*\))", re.IGNORECASE)
_BRACKET_LINE = re.compile(r"^\s*\[[^\]]*\]?\s*$")
_SECTION_TAG = re.compile(
    r"^\s*\[\s*(?P<name>[A-Za-z][A-Za-z \-]*?)\s*(?P<number>\d+)?\s*\]?\s*$"
)
_WORD_SPLIT = re.compile(r"[^a-z0-9'\-]+")
_TAG_SPAN = re.compile(r"\[[^\]\n]*\]")
_BOUNDARY_CHARS = " \t\r\n,"

SECTION_NAMES = frozenset(
    {
        "INTRO",
        "VERSE",
        "PRE-CHORUS",
        "CHORUS",
        "POST-CHORUS",
        "HOOK",
        "BRIDGE",
        "BREAKDOWN",
        "DROP",
        "INTERLUDE",
        "INSTRUMENTAL",
        "SOLO",
        "OUTRO",
    }
)

STOP_WORDS = frozenset(
    {
        "about",
        "after",
        "again",
        "also",
        "been",
        "before",
        "being",
        "between",
        "both",
        "each",
        "from",
        "have",
        "into",
        "just",
        "like",
        "more",
        "most",
        "only",
        "over",
        "some",
        "such",
        "than",
        "that",
        "their",
        "them",
        "then",
        "there",
        "these",
        "they",
        "this",
        "those",
        "through",
        "under",
        "very",
        "were",
        "what",
        "when",
        "where",
        "which",
        "while",
        "will",
        "with",
        "would",
        "your",
    }
)


def _section_name(line: str) -> Optional[tuple[str, Optional[str]]]:
    match = _SECTION_TAG.match(line)
    if match is None:
        return None
    name = "-".join(match.group("name").upper().split())
    if name == "PRECHORUS":
        name = "PRE-CHORUS"
    if name not in SECTION_NAMES:
        return None
    return name, match.group("number")


def _is_structural(line: str) -> bool:
    if is_signature_line(line) or parse_field_line(line) is not None:
        return True
    if _BRACKET_LINE.match(line) and not line.strip()[1:].lstrip().casefold().startswith("note:"):
        return True
    return False


def has_leaked_meta(text: str) -> bool:
    folded = text.casefold()
    return any(fragment in folded for fragment in LEAKED_META_SUBSTRINGS)


def _is_meta_line(line: str) -> bool:
    folded = line.casefold()
    if any(fragment in folded for fragment in LEAKED_META_SUBSTRINGS):
        return True
    return any(pattern.match(line) for pattern in _META_LINE_PATTERNS)


def strip_leaked_meta_lines(text: str) -> str:
    """Drop whole lines that are instructions to a model rather than prompt content.

    Field lines, section tags and Max signature lines are never removed.
    """
    kept = [line for line in text.split("\n") if _is_structural(line) or not _is_meta_line(line)]
    return "\n".join(kept)


def strip_inline_notes(text: str) -> str:
    lines = []
    for line in text.split("\n"):
        cleaned = _INLINE_NOTE.sub("", line)
        if line.strip() and not cleaned.strip():
            continue
        lines.append(cleaned.rstrip() if cleaned != line else line)
    return "\n".join(lines)


def dedup_lines(text: str) -> str:
    """Remove exact repeats of non-blank lines; section tags may repeat."""
    seen: set[str] = set()
    lines = []
    for line in text.split("\n"):
        stripped = line.strip()
        if stripped and _section_name(stripped) is None:
            if stripped in seen:
                continue
            seen.add(stripped)
        lines.append(line)
    return "\n".join(lines)


def _collapse_blank_lines(text: str) -> str:
    return re.sub(r"\n{3,}", "\n\n", text)


def detect_repeated_words(text: str, threshold: int = 2) -> list[str]:
    """Content words occurring at least ``threshold`` times, in first-seen order."""
    counts: dict[str, int] = {}
    for word in _WORD_SPLIT.split(_TAG_SPAN.sub(" ", text).casefold()):
        word = word.strip("'-")
        if len(word) < MIN_CONTENT_WORD_LENGTH or word in STOP_WORDS:
            continue
        counts[word] = counts.get(word, 0) + 1
    return [word for word, count in counts.items() if count >= max(2, threshold)]


def is_valid_locked_phrase(phrase: Optional[str]) -> bool:
    if not phrase:
        return True
    return "{{" not in phrase and "}}" not in phrase


def inject_locked_phrase(prompt: str, phrase: Optional[str]) -> str:
    """Append ``phrase`` to the Instruments field, or to the end when there is none."""
    if not phrase or not phrase.strip() or not is_valid_locked_phrase(phrase):
        return prompt
    if phrase in prompt:
        return prompt
    instruments = get_field(prompt, "instruments")
    if instruments is not None:
        combined = f"{instruments}, {phrase}" if instruments else phrase
        updated = replace_field(prompt, "instruments", combined)
        if phrase in updated:
            return updated
    return f"{prompt.rstrip()}\n{phrase}" if prompt.strip() else phrase


def _cut_at_boundary(text: str, budget: int) -> str:
    if budget <= 0:
        return ""
    if len(text) <= budget:
        return text
    head = text[:budget]
    if text[budget] in _BOUNDARY_CHARS:
        return head.rstrip(_BOUNDARY_CHARS)
    cut = max(head.rfind(char) for char in _BOUNDARY_CHARS)
    if cut >= budget // 2:
        return head[:cut].rstrip(_BOUNDARY_CHARS)
    return head


def _truncate_plain(text: str, max_chars: int) -> str:
    if max_chars <= len(ELLIPSIS):
        return text[:max_chars]
    return _cut_at_boundary(text, max_chars - len(ELLIPSIS)) + ELLIPSIS


def _truncate_around(text: str, phrase: str, max_chars: int) -> str:
    start = text.index(phrase)
    before = text[:start]
    after = text[start + len(phrase) :]
    budget = max_chars - len(phrase)

    if len(before) <= budget:
        kept_before = before
    else:
        head = _cut_at_boundary(before, budget - 1)
        kept_before = f"{head} " if head else ""

    remaining = budget - len(kept_before)
    kept_after = after if len(after) <= remaining else _cut_at_boundary(after, remaining)
    return f"{kept_before}{phrase}{kept_after}"


def truncate_to_limit(
    text: str, max_chars: int, locked_phrase: Optional[str] = None
) -> str:
    """Fit ``text`` into ``max_chars`` at a word boundary.

    A locked phrase present in ``text`` survives intact whenever it fits on its
    own; the surrounding content is trimmed instead.
    """
    if len(text) <= max_chars:
        return text
    if max_chars <= 0:
        return ""
    plain = _truncate_plain(text, max_chars)
    if not locked_phrase or locked_phrase not in text or len(locked_phrase) > max_chars:
        return plain
    if locked_phrase in plain:
        return plain
    return _truncate_around(text, locked_phrase, max_chars)


def _fix_max(text: str) -> str:
    parsed = parse_prompt(text)
    lines = list(parsed.lines)
    for item in parsed.fields:
        if item.mode is PromptMode.STANDARD:
            lines[item.index] = format_field_line(item.key, item.value, PromptMode.MAX)
        elif not item.terminated:
            lines[item.index] = item.render()
    fixed = "\n".join(lines)
    if not parsed.has_signature:
        fixed = f"{MAX_MODE_HEADER}\n{fixed}"
    return fixed


def _fix_standard(text: str) -> str:
    parsed = parse_prompt(text)
    lines = list(parsed.lines)
    has_section = False
    for index, line in enumerate(lines):
        section = _section_name(line)
        if section is None:
            continue
        name, number = section
        lines[index] = f"[{name} {number}]" if number else f"[{name}]"
        has_section = True

    if parsed.fields and not has_section:
        last_field = parsed.fields[-1].index
        for index in range(last_field + 1, len(lines)):
            line = lines[index]
            if line.strip() and not _BRACKET_LINE.match(line) and parse_field_line(line) is None:
                lines.insert(index, "[VERSE]")
                break

    fixed = "\n".join(lines)
    first = next((line for line in lines if line.strip()), "")
    if parsed.fields and not first.lstrip().startswith("["):
        mood = (get_field(fixed, "mood") or "").split(",")[0].strip() or DEFAULT_HEADER_MOOD
        genre = get_field(fixed, "genre") or DEFAULT_HEADER_GENRE
        key = get_field(fixed, "key") or DEFAULT_HEADER_KEY
        fixed = f"[{mood}, {genre}, Key: {key}]\n\n{fixed}"
    return fixed


def validate_and_fix_format(text: str) -> str:
    """Repair structural markers for the detected encoding.

    Max prompts get the signature header, quoted fields and closed quotes.
    Standard prompts get normalised section tags, a ``[VERSE]`` tag before an
    untagged lyric body and a ``[Mood, Genre, Key: ...]`` header line.
    """
    trimmed = text.strip()
    if not trimmed:
        return trimmed
    if parse_prompt(trimmed).mode is PromptMode.MAX:
        return _fix_max(trimmed)
    return _fix_standard(trimmed)


def post_process_prompt(
    text: str,
    max_chars: int,
    min_chars: int = 0,
    locked_phrase: Optional[str] = None,
) -> str:
    """Run the deterministic clean-up steps in order.

    When the cleaned result is shorter than ``min_chars`` the trimmed input is
    used instead, still bounded by ``max_chars``.
    """
    original = text.strip()
    phrase = locked_phrase if locked_phrase and is_valid_locked_phrase(locked_phrase) else None
    if locked_phrase and phrase is None:
        logger.warning("Ignoring locked phrase with template syntax: {}", locked_phrase)

    result = strip_leaked_meta_lines(original)
    result = strip_inline_notes(result)
    result = validate_and_fix_format(result)
    result = dedup_lines(result)
    result = _collapse_blank_lines(result).strip()
    if phrase and phrase in original:
        result = inject_locked_phrase(result, phrase)
    result = truncate_to_limit(result, max_chars, phrase)
    result = strip_leaked_meta_lines(result).strip()

    if len(result) < min_chars:
        logger.debug(
            "Post-processed prompt too short ({} < {}); keeping input", len(result), min_chars
        )
        return truncate_to_limit(original, max_chars, phrase)
    return result
