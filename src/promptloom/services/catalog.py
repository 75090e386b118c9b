"""Immutable genre catalog loaded from the packaged JSON rule tables."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

from loguru import logger

from ..app.settings import get_settings
from .exceptions import CatalogError, UnknownGenreError

_DATA_DIR = Path(__file__).resolve().parents[1] / "data"
GENRES_PATH = _DATA_DIR / "genres.json"
TRAITS_PATH = _DATA_DIR / "traits.json"

_TOKEN_SPLIT = re.compile(r"[\s,/]+")
_INNER_SPLIT = re.compile(r"[-&+]+")


@dataclass(frozen=True)
class PickRange:
    min: int
    max: int


@dataclass(frozen=True)
class InstrumentPool:
    name: str
    pick: PickRange
    instruments: tuple[str, ...]
    chance_to_include: Optional[float] = None


@dataclass(frozen=True)
class BpmProfile:
    min: int
    max: int
    typical: int


@dataclass(frozen=True)
class GenreDefinition:
    """Static rules for one genre: instrument pools, caps and exclusions."""

    name: str
    label: str
    keywords: tuple[str, ...]
    description: str
    pools: Mapping[str, InstrumentPool]
    pool_order: tuple[str, ...]
    max_tags: int
    exclusion_rules: tuple[tuple[str, str], ...]
    bpm: Optional[BpmProfile] = None
    moods: tuple[str, ...] = ()
    partners: Mapping[str, tuple[str, ...]] = field(
        default_factory=dict, repr=False, compare=False
    )

    def ordered_pools(self) -> list[InstrumentPool]:
        return [self.pools[name] for name in self.pool_order]

    def exclusion_partners(self, tag: str) -> tuple[str, ...]:
        """Lower-cased tags that may not appear alongside ``tag``."""
        return self.partners.get(tag.casefold(), ())


@dataclass(frozen=True)
class VocalStyle:
    ranges: tuple[str, ...]
    deliveries: tuple[str, ...]
    techniques: tuple[str, ...]


@dataclass(frozen=True)
class GenreTraits:
    """Display-ready harmonic, metric and rhythmic suggestions for a genre."""

    harmonic_styles: tuple[str, ...]
    time_signatures: tuple[str, ...]
    polyrhythms: tuple[str, ...] = ()
    vocal: Optional[VocalStyle] = None


@dataclass(frozen=True)
class GenreCatalog:
    version: int
    genres: Mapping[str, GenreDefinition]
    traits: Mapping[str, GenreTraits]
    default_traits: GenreTraits
    keyword_index: Mapping[str, str] = field(repr=False, compare=False)

    def names(self) -> list[str]:
        return list(self.genres.keys())

    def get(self, name: str) -> Optional[GenreDefinition]:
        return self.genres.get(name.strip().casefold())

    def resolve(self, token: str) -> Optional[GenreDefinition]:
        """Match a canonical name first, then any keyword alias."""
        folded = token.strip().casefold()
        if not folded:
            return None
        genre = self.genres.get(folded)
        if genre is not None:
            return genre
        canonical = self.keyword_index.get(folded)
        if canonical is None:
            return None
        return self.genres[canonical]

    def require(self, name: str) -> GenreDefinition:
        genre = self.resolve(name)
        if genre is None:
            raise UnknownGenreError(name)
        return genre

    def parse_components(self, text: str) -> list[GenreDefinition]:
        """Resolve free genre text such as ``"jazz rock"`` into known genres.

        The whole string is tried first so multi-word aliases survive; then each
        whitespace, comma or slash separated token, and finally the pieces of
        hyphenated or ampersand-joined tokens. Unknown parts are dropped.
        """
        if not text or not text.strip():
            return []
        whole = self.resolve(text)
        if whole is not None:
            return [whole]

        found: list[GenreDefinition] = []
        seen: set[str] = set()

        def _add(genre: Optional[GenreDefinition]) -> None:
            if genre is not None and genre.name not in seen:
                seen.add(genre.name)
                found.append(genre)

        for token in _TOKEN_SPLIT.split(text):
            if not token:
                continue
            genre = self.resolve(token)
            if genre is not None:
                _add(genre)
                continue
            for piece in _INNER_SPLIT.split(token):
                if piece:
                    _add(self.resolve(piece))
        return found

    def traits_for(self, name: str) -> GenreTraits:
        return self.traits.get(name, self.default_traits)


def _require_int(value: Any, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise CatalogError(f"{label} must be an integer, got {value!r}")
    return value


def _string_tuple(values: Any, label: str) -> tuple[str, ...]:
    if not isinstance(values, list) or not all(isinstance(item, str) for item in values):
        raise CatalogError(f"{label} must be a list of strings")
    return tuple(values)


def _build_pool(genre_name: str, pool_name: str, entry: dict) -> InstrumentPool:
    label = f"genre '{genre_name}' pool '{pool_name}'"
    pick_raw = entry["pick"]
    pick = PickRange(
        min=_require_int(pick_raw["min"], f"{label} pick.min"),
        max=_require_int(pick_raw["max"], f"{label} pick.max"),
    )
    if pick.min < 0:
        raise CatalogError(f"{label} has negative pick.min")
    if pick.min > pick.max:
        raise CatalogError(f"{label} has pick.min {pick.min} > pick.max {pick.max}")

    chance = entry.get("chance_to_include")
    if chance is not None:
        if isinstance(chance, bool) or not isinstance(chance, (int, float)):
            raise CatalogError(f"{label} chance_to_include must be numeric")
        if not 0.0 <= float(chance) <= 1.0:
            raise CatalogError(f"{label} chance_to_include {chance} outside [0, 1]")
        chance = float(chance)

    return InstrumentPool(
        name=pool_name,
        pick=pick,
        instruments=_string_tuple(entry["instruments"], f"{label} instruments"),
        chance_to_include=chance,
    )


def _build_partners(pairs: tuple[tuple[str, str], ...]) -> dict[str, tuple[str, ...]]:
    partners: dict[str, list[str]] = {}
    for first, second in pairs:
        a, b = first.casefold(), second.casefold()
        partners.setdefault(a, [])
        partners.setdefault(b, [])
        if b not in partners[a]:
            partners[a].append(b)
        if a not in partners[b]:
            partners[b].append(a)
    return {tag: tuple(values) for tag, values in partners.items()}


def _build_genre(name: str, entry: dict) -> GenreDefinition:
    pools_raw = entry["pools"]
    if not isinstance(pools_raw, dict):
        raise CatalogError(f"genre '{name}' pools must be an object")
    pools = {
        pool_name: _build_pool(name, pool_name, pool_entry)
        for pool_name, pool_entry in pools_raw.items()
    }

    pool_order = _string_tuple(entry["pool_order"], f"genre '{name}' pool_order")
    if len(set(pool_order)) != len(pool_order) or set(pool_order) != set(pools):
        raise CatalogError(
            f"genre '{name}' pool_order {list(pool_order)} is not a permutation of "
            f"pools {sorted(pools)}"
        )

    max_tags = _require_int(entry["max_tags"], f"genre '{name}' max_tags")
    if max_tags <= 0:
        raise CatalogError(f"genre '{name}' max_tags must be positive, got {max_tags}")

    known_tags = {
        instrument.casefold() for pool in pools.values() for instrument in pool.instruments
    }
    rules: list[tuple[str, str]] = []
    for pair in entry.get("exclusion_rules", []):
        if (
            not isinstance(pair, list)
            or len(pair) != 2
            or not all(isinstance(tag, str) and tag.strip() for tag in pair)
        ):
            raise CatalogError(f"genre '{name}' has malformed exclusion rule {pair!r}")
        if pair[0].casefold() == pair[1].casefold():
            raise CatalogError(f"genre '{name}' excludes '{pair[0]}' from itself")
        for tag in pair:
            if tag.casefold() not in known_tags:
                logger.warning(
                    "Genre {} exclusion rule references '{}' which is in no pool", name, tag
                )
        rules.append((pair[0], pair[1]))
    exclusion_rules = tuple(rules)

    bpm: Optional[BpmProfile] = None
    bpm_raw = entry.get("bpm")
    if bpm_raw is not None:
        bpm = BpmProfile(
            min=_require_int(bpm_raw["min"], f"genre '{name}' bpm.min"),
            max=_require_int(bpm_raw["max"], f"genre '{name}' bpm.max"),
            typical=_require_int(bpm_raw["typical"], f"genre '{name}' bpm.typical"),
        )
        if not 0 < bpm.min <= bpm.typical <= bpm.max:
            raise CatalogError(
                f"genre '{name}' bpm must satisfy 0 < min <= typical <= max, got "
                f"{bpm.min}/{bpm.typical}/{bpm.max}"
            )

    keywords = tuple(
        keyword.casefold()
        for keyword in _string_tuple(entry.get("keywords", []), f"genre '{name}' keywords")
    )

    return GenreDefinition(
        name=name,
        label=str(entry.get("label") or name.title()),
        keywords=keywords,
        description=str(entry.get("description", "")),
        pools=MappingProxyType(pools),
        pool_order=pool_order,
        max_tags=max_tags,
        exclusion_rules=exclusion_rules,
        bpm=bpm,
        moods=_string_tuple(entry.get("moods", []), f"genre '{name}' moods"),
        partners=MappingProxyType(_build_partners(exclusion_rules)),
    )


def _labels(
    ids: Any, table: Mapping[str, str], kind: str, owner: str
) -> tuple[str, ...]:
    labels = []
    for style_id in _string_tuple(ids, f"{owner} {kind}"):
        try:
            labels.append(table[style_id])
        except KeyError as exc:
            raise CatalogError(f"{owner} references unknown {kind} '{style_id}'") from exc
    return tuple(labels)


def _build_traits(
    raw: dict, genres: Mapping[str, GenreDefinition]
) -> tuple[dict[str, GenreTraits], GenreTraits]:
    harmonic_table = raw["harmonic_styles"]
    meter_table = raw["time_signatures"]
    rhythm_table = raw["polyrhythms"]

    defaults_raw = raw["defaults"]
    defaults = GenreTraits(
        harmonic_styles=_labels(
            defaults_raw["harmonic_styles"], harmonic_table, "harmonic style", "defaults"
        ),
        time_signatures=_labels(
            defaults_raw["time_signatures"], meter_table, "time signature", "defaults"
        ),
    )
    if not defaults.harmonic_styles or not defaults.time_signatures:
        raise CatalogError("trait defaults must name at least one style of each kind")

    traits: dict[str, GenreTraits] = {}
    for genre_name, entry in raw["genres"].items():
        if genre_name not in genres:
            raise CatalogError(f"traits reference unknown genre '{genre_name}'")
        owner = f"traits for '{genre_name}'"
        vocal: Optional[VocalStyle] = None
        vocal_raw = entry.get("vocal")
        if vocal_raw is not None:
            vocal = VocalStyle(
                ranges=_string_tuple(vocal_raw.get("ranges", []), f"{owner} vocal ranges"),
                deliveries=_string_tuple(
                    vocal_raw.get("deliveries", []), f"{owner} vocal deliveries"
                ),
                techniques=_string_tuple(
                    vocal_raw.get("techniques", []), f"{owner} vocal techniques"
                ),
            )
        traits[genre_name] = GenreTraits(
            harmonic_styles=(
                _labels(entry["harmonic_styles"], harmonic_table, "harmonic style", owner)
                if entry.get("harmonic_styles")
                else defaults.harmonic_styles
            ),
            time_signatures=(
                _labels(entry["time_signatures"], meter_table, "time signature", owner)
                if entry.get("time_signatures")
                else defaults.time_signatures
            ),
            polyrhythms=_labels(entry.get("polyrhythms", []), rhythm_table, "polyrhythm", owner),
            vocal=vocal,
        )
    return traits, defaults


def _build_keyword_index(genres: Mapping[str, GenreDefinition]) -> dict[str, str]:
    index: dict[str, str] = {}
    for genre in genres.values():
        for keyword in genre.keywords:
            owner = index.get(keyword)
            if owner is not None and owner != genre.name:
                logger.warning(
                    "Keyword '{}' claimed by both {} and {}; keeping {}",
                    keyword,
                    owner,
                    genre.name,
                    owner,
                )
                continue
            index[keyword] = genre.name
    return index


def _read_json(path: Path) -> dict:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise CatalogError(f"catalog file missing at {path}") from exc
    except json.JSONDecodeError as exc:
        raise CatalogError(f"catalog file {path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise CatalogError(f"catalog file {path} must contain a JSON object")
    return raw


def load_catalog(
    genres_path: Optional[Path] = None,
    traits_path: Optional[Path] = None,
) -> GenreCatalog:
    """Read and validate the genre and trait tables.

    Any malformed entry raises :class:`CatalogError`; a process should refuse to
    start rather than run with a partially valid catalog.
    """
    genres_file = Path(genres_path) if genres_path is not None else GENRES_PATH
    traits_file = Path(traits_path) if traits_path is not None else TRAITS_PATH
    genres_raw = _read_json(genres_file)
    traits_raw = _read_json(traits_file)

    genres: dict[str, GenreDefinition] = {}
    try:
        for raw_name, entry in genres_raw["genres"].items():
            name = raw_name.strip().casefold()
            if name in genres:
                raise CatalogError(f"duplicate genre '{name}'")
            try:
                genres[name] = _build_genre(name, entry)
            except (KeyError, TypeError, AttributeError) as exc:
                raise CatalogError(f"genre '{name}' is malformed: {exc!r}") from exc
        traits, defaults = _build_traits(traits_raw, genres)
    except (KeyError, TypeError, AttributeError) as exc:
        raise CatalogError(f"catalog structure is malformed: {exc!r}") from exc

    if not genres:
        raise CatalogError(f"no genres defined in {genres_file}")

    catalog = GenreCatalog(
        version=int(genres_raw.get("version", 1)),
        genres=MappingProxyType(genres),
        traits=MappingProxyType(traits),
        default_traits=defaults,
        keyword_index=MappingProxyType(_build_keyword_index(genres)),
    )
    logger.info(
        "Loaded genre catalog v{} with {} genres ({} with traits)",
        catalog.version,
        len(genres),
        len(traits),
    )
    return catalog


@lru_cache(maxsize=1)
def get_catalog() -> GenreCatalog:
    settings = get_settings()
    return load_catalog(settings.genres_path, settings.traits_path)
