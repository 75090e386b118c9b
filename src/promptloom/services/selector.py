"""Pool-driven instrument selection for catalog genres."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from loguru import logger

from .catalog import GenreCatalog, GenreDefinition, get_catalog
from .random import (
    Rng,
    create_rng,
    random_int_inclusive,
    roll_chance,
    shuffle,
    unseeded_rng,
)

PER_GENRE_SHARE = 2
DEFAULT_MULTI_GENRE_INSTRUMENTS = 3


def _eligible(
    instruments: Sequence[str], seen: set[str], excluded: set[str]
) -> list[str]:
    eligible: list[str] = []
    pool_seen: set[str] = set()
    for tag in instruments:
        folded = tag.casefold()
        if folded in seen or folded in excluded or folded in pool_seen:
            continue
        pool_seen.add(folded)
        eligible.append(tag)
    return eligible


def select_instruments(
    genre: GenreDefinition,
    rng: Rng,
    *,
    user_instruments: Iterable[str] = (),
    max_tags: Optional[int] = None,
) -> list[str]:
    """Pick an ordered, de-duplicated tag list honouring pools, caps and exclusions.

    Pools are visited in ``pool_order``. Each pool may be skipped by its
    inclusion roll, then contributes a random count of shuffled eligible tags.
    Tight constraints under-fill the result rather than raising.
    """
    limit = genre.max_tags if max_tags is None else max(0, min(max_tags, genre.max_tags))
    selected: list[str] = []
    seen: set[str] = set()
    excluded: set[str] = set()

    def _accept(tag: str) -> None:
        selected.append(tag)
        seen.add(tag.casefold())
        excluded.update(genre.exclusion_partners(tag))

    for raw in user_instruments:
        if len(selected) >= limit:
            break
        tag = raw.strip()
        folded = tag.casefold()
        if not tag or folded in seen or folded in excluded:
            continue
        _accept(tag)

    for pool in genre.ordered_pools():
        remaining = limit - len(selected)
        if remaining <= 0:
            break
        if not roll_chance(pool.chance_to_include, rng):
            logger.debug("Skipping pool {} for {} on inclusion roll", pool.name, genre.name)
            continue
        desired = random_int_inclusive(pool.pick.min, pool.pick.max, rng)
        eligible = _eligible(pool.instruments, seen, excluded)
        count = min(desired, len(eligible), remaining)
        if count <= 0:
            continue
        taken = 0
        for tag in shuffle(eligible, rng):
            if taken >= count:
                break
            # an earlier tag from this same pick may have excluded it
            if tag.casefold() in excluded:
                continue
            _accept(tag)
            taken += 1

    logger.debug("Selected {} for {}", selected, genre.name)
    return selected


def select_instruments_for_genres(
    genres: Sequence[GenreDefinition],
    rng: Rng,
    max_instruments: int = DEFAULT_MULTI_GENRE_INSTRUMENTS,
) -> list[str]:
    """Blend a couple of picks from each genre into one short, shuffled list."""
    if not genres or max_instruments <= 0:
        return []

    combined: list[str] = []
    seen: set[str] = set()
    excluded: set[str] = set()
    for genre in genres:
        for tag in select_instruments(genre, rng)[:PER_GENRE_SHARE]:
            folded = tag.casefold()
            if folded in seen or folded in excluded:
                continue
            combined.append(tag)
            seen.add(folded)
            for other in genres:
                excluded.update(other.exclusion_partners(tag))

    return shuffle(combined, rng)[:max_instruments]


class InstrumentSelector:
    """Seeded selection entry point over a catalog, keyed by genre name."""

    def __init__(self, catalog: Optional[GenreCatalog] = None) -> None:
        self._catalog = catalog if catalog is not None else get_catalog()

    @property
    def catalog(self) -> GenreCatalog:
        return self._catalog

    def select(
        self,
        genre_name: str,
        seed: Optional[int] = None,
        *,
        user_instruments: Iterable[str] = (),
        max_tags: Optional[int] = None,
    ) -> list[str]:
        genre = self._catalog.require(genre_name)
        rng = create_rng(seed) if seed is not None else unseeded_rng()
        return select_instruments(
            genre, rng, user_instruments=user_instruments, max_tags=max_tags
        )

    def select_for_text(
        self,
        genre_text: str,
        seed: Optional[int] = None,
        max_instruments: int = DEFAULT_MULTI_GENRE_INSTRUMENTS,
    ) -> list[str]:
        """Select for free genre text; a single genre uses its full pool walk."""
        genres = self._catalog.parse_components(genre_text)
        if not genres:
            return []
        rng = create_rng(seed) if seed is not None else unseeded_rng()
        if len(genres) == 1:
            return select_instruments(genres[0], rng)
        return select_instruments_for_genres(genres, rng, max_instruments)
