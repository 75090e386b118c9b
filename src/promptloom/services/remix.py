"""Regenerate individual prompt fields from the genre the prompt already names."""

from __future__ import annotations

from typing import Optional

from loguru import logger

from ..app.models import PromptMode
from .blender import blended_bpm_range
from .catalog import GenreCatalog, GenreDefinition
from .fields import detect_mode, get_field, replace_field, set_field
from .merger import (
    DEFAULT_MAX_ITEMS,
    inject_instrument_tags,
    is_vocal_style_item,
    merge_instrument_tags,
    split_csv,
)
from .random import Rng, random_int_inclusive, select_random_n
from .selector import select_instruments, select_instruments_for_genres

MIN_REMIX_MOODS = 2
MAX_REMIX_MOODS = 3


def extract_genres(prompt: str, catalog: GenreCatalog) -> list[GenreDefinition]:
    genre_text = get_field(prompt, "genre")
    if not genre_text:
        return []
    return catalog.parse_components(genre_text)


def remix_instruments(
    prompt: str,
    catalog: GenreCatalog,
    rng: Rng,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> str:
    """Swap the instrument tags for a fresh selection, keeping vocal descriptors."""
    genres = extract_genres(prompt, catalog)
    if not genres:
        return prompt
    if len(genres) == 1:
        tags = select_instruments(genres[0], rng)
    else:
        tags = select_instruments_for_genres(genres, rng, max_items)
    if not tags:
        return prompt

    existing = get_field(prompt, "instruments")
    if existing is None:
        return inject_instrument_tags(
            prompt, tags, detect_mode(prompt) is PromptMode.MAX, max_items
        )
    vocal = [item for item in split_csv(existing) if is_vocal_style_item(item)]
    value = merge_instrument_tags(", ".join(tags), vocal, max_items)
    logger.debug("Remixed instruments for {}: {}", [genre.name for genre in genres], value)
    return replace_field(prompt, "instruments", value)


def inject_bpm_range(
    prompt: str, catalog: GenreCatalog, bpm_spread: Optional[int] = None
) -> str:
    bpm = blended_bpm_range(extract_genres(prompt, catalog), bpm_spread)
    if bpm is None:
        return prompt
    return set_field(prompt, "bpm", bpm.render())


def remix_mood(prompt: str, catalog: GenreCatalog, rng: Rng) -> str:
    moods: list[str] = []
    for genre in extract_genres(prompt, catalog):
        for mood in genre.moods:
            if mood not in moods:
                moods.append(mood)
    if not moods:
        return prompt
    count = random_int_inclusive(MIN_REMIX_MOODS, MAX_REMIX_MOODS, rng)
    return set_field(prompt, "mood", ", ".join(select_random_n(moods, count, rng)))
