"""Locate, replace and insert named fields in Standard and Max prompt text.

Standard lines read ``Genre: jazz`` while Max lines quote their value,
``genre: "jazz"``. A prompt is parsed once into :class:`FieldLine` records that
carry the detected encoding, and every edit goes through those records.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from ..app.models import PromptMode

MAX_MODE_HEADER = (
    "[Is_MAX_MODE: MAX](MAX)\n"
    "[QUALITY: MAX](MAX)\n"
    "[REALISM: MAX](MAX)\n"
    "[REAL_INSTRUMENTS: MAX](MAX)"
)
MAX_TAGS_HEADER = "::tags realistic music ::"

FIELD_ALIASES = {
    "genre": "genre",
    "genres": "genre",
    "mood": "mood",
    "moods": "mood",
    "instruments": "instruments",
    "instrument": "instruments",
    "instrumentation": "instruments",
    "bpm": "bpm",
    "tempo": "bpm",
    "key": "key",
    "recording": "recording",
    "style tags": "style tags",
    "style": "style tags",
}

STANDARD_LABELS = {
    "genre": "Genre",
    "mood": "Mood",
    "instruments": "Instruments",
    "bpm": "BPM",
    "key": "Key",
    "recording": "Recording",
    "style tags": "Style Tags",
}

STANDARD_ORDER = ("genre", "mood", "instruments", "bpm", "key", "recording")
MAX_ORDER = ("genre", "mood", "bpm", "instruments", "key", "style tags", "recording")

_FIELD_LINE = re.compile(
    r"^(?P<head>\s*(?P<name>[A-Za-z][A-Za-z _-]{0,30}?)\s*:[ \t]*)(?P<body>.*?)(?P<trail>\s*)$"
)
_SIGNATURE_LINE = re.compile(r"^\s*(?:\[[A-Za-z_]+:\s*MAX\]\(MAX\)|::\s*tags\b.*::)\s*$")


def canonical_field(name: str) -> Optional[str]:
    folded = " ".join(name.replace("_", " ").replace("-", " ").split()).casefold()
    return FIELD_ALIASES.get(folded)


@dataclass(frozen=True)
class FieldLine:
    key: str
    label: str
    mode: PromptMode
    index: int
    prefix: str
    value: str
    suffix: str

    @property
    def terminated(self) -> bool:
        return self.mode is PromptMode.STANDARD or self.suffix.startswith('"')

    def render(self, value: Optional[str] = None) -> str:
        suffix = self.suffix
        if not self.terminated:
            suffix = '"' + suffix
        return f"{self.prefix}{self.value if value is None else value}{suffix}"


@dataclass(frozen=True)
class ParsedPrompt:
    lines: tuple[str, ...]
    fields: tuple[FieldLine, ...]
    has_signature: bool

    @property
    def mode(self) -> PromptMode:
        if self.has_signature or any(item.mode is PromptMode.MAX for item in self.fields):
            return PromptMode.MAX
        return PromptMode.STANDARD

    def find(self, name: str) -> Optional[FieldLine]:
        key = canonical_field(name) or name.casefold()
        for item in self.fields:
            if item.key == key:
                return item
        return None

    def signature_end(self) -> int:
        index = 0
        while index < len(self.lines) and _SIGNATURE_LINE.match(self.lines[index]):
            index += 1
        return index


def parse_field_line(line: str, index: int = 0) -> Optional[FieldLine]:
    match = _FIELD_LINE.match(line)
    if match is None:
        return None
    key = canonical_field(match.group("name"))
    if key is None:
        return None

    head = match.group("head")
    body = match.group("body")
    trail = match.group("trail")
    label = match.group("name").strip()
    quotes = body.count('"')
    if body.startswith('"') and (quotes == 1 or (len(body) >= 2 and body.endswith('"'))):
        if quotes == 1:
            return FieldLine(key, label, PromptMode.MAX, index, head + '"', body[1:], trail)
        return FieldLine(key, label, PromptMode.MAX, index, head + '"', body[1:-1], '"' + trail)
    return FieldLine(key, label, PromptMode.STANDARD, index, head, body, trail)


def parse_prompt(text: str) -> ParsedPrompt:
    lines = tuple(text.split("\n"))
    fields = []
    has_signature = False
    for index, line in enumerate(lines):
        if _SIGNATURE_LINE.match(line):
            has_signature = True
            continue
        parsed = parse_field_line(line, index)
        if parsed is not None:
            fields.append(parsed)
    return ParsedPrompt(lines=lines, fields=tuple(fields), has_signature=has_signature)


def is_signature_line(line: str) -> bool:
    return _SIGNATURE_LINE.match(line) is not None


def detect_mode(text: str) -> PromptMode:
    return parse_prompt(text).mode


def is_max_format(text: str) -> bool:
    return detect_mode(text) is PromptMode.MAX


def strip_max_header(text: str) -> str:
    lines = [line for line in text.split("\n") if not _SIGNATURE_LINE.match(line)]
    while lines and not lines[0].strip():
        lines.pop(0)
    return "\n".join(lines)


def normalize_value(value: str, mode: PromptMode) -> str:
    cleaned = " ".join(value.split())
    if mode is PromptMode.MAX:
        return cleaned.replace('"', "'")
    # a leading quote would make the line parse as a Max field
    return cleaned.strip('"').strip()


def get_field(text: str, name: str) -> Optional[str]:
    found = parse_prompt(text).find(name)
    if found is None:
        return None
    return found.value.strip()


def replace_field(text: str, name: str, new_value: str) -> str:
    """Rewrite an existing field in its own encoding; absent fields are left alone."""
    parsed = parse_prompt(text)
    found = parsed.find(name)
    if found is None:
        return text
    lines = list(parsed.lines)
    lines[found.index] = found.render(normalize_value(new_value, found.mode))
    return "\n".join(lines)


def format_field_line(key: str, value: str, mode: PromptMode) -> str:
    cleaned = normalize_value(value, mode)
    if mode is PromptMode.MAX:
        return f'{key}: "{cleaned}"'
    return f"{STANDARD_LABELS.get(key, key.title())}: {cleaned}"


def insert_field(text: str, name: str, value: str, mode: PromptMode) -> str:
    """Insert a field line at its canonical position for ``mode``.

    The new line goes right after the closest preceding field in the canonical
    order; with no such anchor it goes first, below any Max signature lines.
    """
    key = canonical_field(name) or name.strip().casefold()
    parsed = parse_prompt(text)
    if parsed.find(key) is not None:
        return replace_field(text, key, value)

    new_line = format_field_line(key, value, mode)
    if not text:
        return new_line

    order = MAX_ORDER if mode is PromptMode.MAX else STANDARD_ORDER
    position = order.index(key) if key in order else len(order)
    anchor: Optional[FieldLine] = None
    for previous in reversed(order[:position]):
        anchor = parsed.find(previous)
        if anchor is not None:
            break

    lines = list(parsed.lines)
    if anchor is not None:
        reference = lines[anchor.index]
        if reference.endswith("\r"):
            new_line += "\r"
        lines.insert(anchor.index + 1, new_line)
    else:
        insert_at = parsed.signature_end()
        if insert_at < len(lines) and lines[insert_at].endswith("\r"):
            new_line += "\r"
        lines.insert(insert_at, new_line)
    return "\n".join(lines)


def set_field(
    text: str, name: str, value: str, mode: Optional[PromptMode] = None
) -> str:
    if get_field(text, name) is not None:
        return replace_field(text, name, value)
    return insert_field(text, name, value, mode or detect_mode(text))
