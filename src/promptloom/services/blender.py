"""Blend BPM, harmony, meter and polyrhythm guidance across active genres."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from loguru import logger

from .catalog import GenreCatalog, GenreDefinition, get_catalog
from .random import Rng, create_rng, pick_random, unseeded_rng

NUANCE_HEADER = "MULTI-GENRE NUANCE:"
TOP_HALF_SELECTION_WEIGHT = 0.75


@dataclass(frozen=True)
class BpmRange:
    min: int
    max: int

    def render(self) -> str:
        return f"between {self.min} and {self.max}"


@dataclass(frozen=True)
class BlendedGuidance:
    genres: tuple[str, ...]
    bpm: Optional[BpmRange]
    harmonic_style: str
    time_signature: str
    polyrhythm: Optional[str] = None

    def render(self) -> str:
        lines = [NUANCE_HEADER]
        if self.bpm is not None:
            lines.append(f"- BPM Range: {self.bpm.render()}")
        lines.append(f"- Suggested harmonic style: {self.harmonic_style}")
        lines.append(f"- Suggested time signature: {self.time_signature}")
        if self.polyrhythm is not None:
            lines.append(f"- Suggested polyrhythm: {self.polyrhythm}")
        return "\n".join(lines)


def blended_bpm_range(
    genres: Sequence[GenreDefinition], spread: Optional[int] = None
) -> Optional[BpmRange]:
    """Intersect overlapping ranges, otherwise span from lowest min to highest max.

    When ``spread`` is set, a non-overlapping span wider than it is narrowed to
    ``spread`` BPM centred on the span's midpoint.
    """
    profiles = [genre.bpm for genre in genres if genre.bpm is not None]
    if not profiles:
        return None

    low = max(profile.min for profile in profiles)
    high = min(profile.max for profile in profiles)
    if low <= high:
        return BpmRange(low, high)

    span_low = min(profile.min for profile in profiles)
    span_high = max(profile.max for profile in profiles)
    if spread is None or span_high - span_low <= spread:
        return BpmRange(span_low, span_high)

    midpoint = (span_low + span_high) // 2
    half = spread // 2
    return BpmRange(max(span_low, midpoint - half), min(span_high, midpoint + spread - half))


def _weighted_pick(candidate_lists: Iterable[Sequence[str]], rng: Rng) -> Optional[str]:
    # insertion-ordered counts keep the ranking independent of hash seeds
    counts: dict[str, int] = {}
    for candidates in candidate_lists:
        for candidate in dict.fromkeys(candidates):
            counts[candidate] = counts.get(candidate, 0) + 1
    if not counts:
        return None

    ranked = sorted(counts, key=lambda candidate: -counts[candidate])
    top_half = ranked[: (len(ranked) + 1) // 2]
    pool = top_half if rng() < TOP_HALF_SELECTION_WEIGHT else ranked
    return pick_random(pool, rng)


def _resolve_tokens(
    genre_tokens: Iterable[str], catalog: GenreCatalog
) -> list[GenreDefinition]:
    resolved: list[GenreDefinition] = []
    names: set[str] = set()
    for token in genre_tokens:
        if not token or not token.strip():
            continue
        for genre in catalog.parse_components(token):
            if genre.name not in names:
                names.add(genre.name)
                resolved.append(genre)
    return resolved


def blend(
    genre_tokens: Sequence[str],
    rng: Optional[Rng] = None,
    *,
    catalog: Optional[GenreCatalog] = None,
    bpm_spread: Optional[int] = None,
) -> Optional[BlendedGuidance]:
    """Resolve tokens to genres and pick one suggestion per musical aspect.

    Unknown tokens are dropped; ``None`` is returned when nothing resolves.
    Picks consume ``rng`` in a fixed order (harmony, meter, polyrhythm) so a
    seeded generator always yields the same guidance.
    """
    active_catalog = catalog if catalog is not None else get_catalog()
    genres = _resolve_tokens(genre_tokens, active_catalog)
    if not genres:
        return None
    generator = rng if rng is not None else unseeded_rng()

    traits = [active_catalog.traits_for(genre.name) for genre in genres]
    harmonic_style = _weighted_pick((trait.harmonic_styles for trait in traits), generator)
    time_signature = _weighted_pick((trait.time_signatures for trait in traits), generator)
    rhythmic = [trait.polyrhythms for trait in traits if trait.polyrhythms]
    polyrhythm = _weighted_pick(rhythmic, generator) if rhythmic else None

    defaults = active_catalog.default_traits
    guidance = BlendedGuidance(
        genres=tuple(genre.name for genre in genres),
        bpm=blended_bpm_range(genres, bpm_spread),
        harmonic_style=harmonic_style or defaults.harmonic_styles[0],
        time_signature=time_signature or defaults.time_signatures[0],
        polyrhythm=polyrhythm,
    )
    logger.debug("Blended guidance for {}: {}", guidance.genres, guidance)
    return guidance


def get_multi_genre_nuance_guidance(
    genre_text: str,
    rng: Optional[Rng] = None,
    *,
    catalog: Optional[GenreCatalog] = None,
    bpm_spread: Optional[int] = None,
) -> Optional[str]:
    if not genre_text or not genre_text.strip():
        return None
    guidance = blend([genre_text], rng, catalog=catalog, bpm_spread=bpm_spread)
    return guidance.render() if guidance is not None else None


def blend_guidance(
    genre_tokens: Sequence[str],
    seed: Optional[int] = None,
    *,
    catalog: Optional[GenreCatalog] = None,
    bpm_spread: Optional[int] = None,
) -> Optional[str]:
    rng = create_rng(seed) if seed is not None else None
    guidance = blend(genre_tokens, rng, catalog=catalog, bpm_spread=bpm_spread)
    return guidance.render() if guidance is not None else None


def build_vocal_descriptor(
    genres: Sequence[GenreDefinition],
    rng: Rng,
    *,
    catalog: Optional[GenreCatalog] = None,
) -> Optional[str]:
    """Describe a blended vocal style, e.g. ``"Tenor, Smooth Delivery, Ad Libs"``."""
    active_catalog = catalog if catalog is not None else get_catalog()
    styles = [
        vocal
        for vocal in (active_catalog.traits_for(genre.name).vocal for genre in genres)
        if vocal is not None
    ]
    if not styles:
        return None

    parts: list[str] = []
    vocal_range = _weighted_pick((style.ranges for style in styles), rng)
    if vocal_range:
        parts.append(vocal_range)
    delivery = _weighted_pick((style.deliveries for style in styles), rng)
    if delivery:
        if not delivery.casefold().endswith("delivery"):
            delivery = f"{delivery} Delivery"
        parts.append(delivery)
    technique = _weighted_pick((style.techniques for style in styles), rng)
    if technique:
        parts.append(technique)
    return ", ".join(parts) or None
