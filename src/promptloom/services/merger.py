"""Merge instrument tags into comma-separated field values."""

from __future__ import annotations

import re
from typing import Iterable

from loguru import logger

from ..app.models import PromptMode
from .fields import get_field, insert_field, replace_field

DEFAULT_MAX_ITEMS = 6

VOCAL_TECHNIQUES = frozenset(
    {
        "stacked harmonies",
        "call and response",
        "group backing vocals",
        "ad libs",
        "occasional falsetto",
        "layered ooh harmonies",
        "double tracked lead",
        "gang vocals",
        "wordless vocalise",
        "tight three part harmonies",
        "gospel style backing",
        "doo wop backing",
        "singalong chorus",
        "shouted hooks",
        "whispered phrases",
        "scat fills",
    }
)

VOCAL_RANGES = frozenset(
    {"soprano", "mezzo soprano", "alto", "contralto", "tenor", "baritone", "bass"}
)

_VOCAL_KEYWORDS = re.compile(
    r"\b(?:vocals?|vocalists?|vocalise|voices?|singers?|singing|delivery|humming|"
    r"falsetto|harmonies|ad[- ]?libs?|scat|crooner|chant(?:s|ing)?|rap(?:ping)?)\b",
    re.IGNORECASE,
)
_DESCRIPTION_SPLIT = re.compile(r"[,;\n]+")


def is_vocal_style_item(tag: str) -> bool:
    """True for descriptors of vocal delivery or technique rather than instruments."""
    folded = " ".join(tag.split()).casefold()
    if not folded:
        return False
    if folded in VOCAL_TECHNIQUES:
        return True
    return _VOCAL_KEYWORDS.search(folded) is not None


def split_csv(value: str) -> list[str]:
    return [token.strip() for token in value.split(",") if token.strip()]


def _dedupe(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        folded = item.casefold()
        if folded in seen:
            continue
        seen.add(folded)
        result.append(item)
    return result


def merge_instrument_items(
    existing_csv: str,
    new_tags: Iterable[str],
    max_items: int = DEFAULT_MAX_ITEMS,
    strip_vocal_style: bool = False,
) -> list[str]:
    if max_items <= 0:
        return []
    existing = split_csv(existing_csv)
    if strip_vocal_style:
        existing = [item for item in existing if not is_vocal_style_item(item)]
    additions = [item for tag in new_tags if tag for item in split_csv(tag)]
    merged = _dedupe(existing + additions)
    if len(merged) <= max_items:
        return merged

    vocal = [item for item in merged if is_vocal_style_item(item)]
    other = [item for item in merged if not is_vocal_style_item(item)]
    if len(vocal) >= max_items:
        return vocal[:max_items]
    # vocal descriptors survive capping; instruments give way
    return other[: max_items - len(vocal)] + vocal


def merge_instrument_tags(
    existing_csv: str,
    new_tags: Iterable[str],
    max_items: int = DEFAULT_MAX_ITEMS,
    strip_vocal_style: bool = False,
) -> str:
    return ", ".join(
        merge_instrument_items(existing_csv, new_tags, max_items, strip_vocal_style)
    )


def parse_vocal_style_to_tags(description: str) -> list[str]:
    """Turn ``"Tenor, Smooth Delivery, Stacked Harmonies"`` into merge-ready tags."""
    tags: list[str] = []
    for part in _DESCRIPTION_SPLIT.split(description or ""):
        folded = " ".join(part.split()).casefold()
        if not folded:
            continue
        if folded in VOCAL_RANGES or not is_vocal_style_item(folded):
            folded = f"{folded} vocals"
        tags.append(folded)
    return _dedupe(tags)


def inject_vocal_style_into_instruments_csv(
    csv: str, vocal_style: str, max_items: int = DEFAULT_MAX_ITEMS
) -> str:
    tags = parse_vocal_style_to_tags(vocal_style)
    if not tags:
        return csv
    return merge_instrument_tags(csv, tags, max_items, strip_vocal_style=True)


def inject_instrument_tags(
    prompt: str,
    tags: Iterable[str],
    max_mode: bool,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> str:
    """Merge tags into the Instruments field, inserting the field when missing."""
    additions = [tag.strip() for tag in tags if tag and tag.strip()]
    if not additions:
        return prompt

    existing = get_field(prompt, "instruments")
    if existing is not None:
        merged = merge_instrument_tags(existing, additions, max_items, strip_vocal_style=True)
        logger.debug("Merging instruments '{}' -> '{}'", existing, merged)
        return replace_field(prompt, "instruments", merged)

    mode = PromptMode.MAX if max_mode else PromptMode.STANDARD
    value = merge_instrument_tags("", additions, max_items)
    return insert_field(prompt, "instruments", value, mode)
