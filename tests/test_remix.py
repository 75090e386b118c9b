from promptloom.services.catalog import get_catalog
from promptloom.services.fields import MAX_MODE_HEADER, get_field
from promptloom.services.merger import split_csv
from promptloom.services.random import create_rng
from promptloom.services.remix import (
    extract_genres,
    inject_bpm_range,
    remix_instruments,
    remix_mood,
)

AFROBEAT_PROMPT = (
    "Genre: afrobeat\n"
    "Mood: groovy\n"
    "Instruments: accordion, soulful vocals\n"
    "\n"
    "[VERSE]\n"
    "sun on the street"
)


def test_extract_genres_reads_the_genre_field() -> None:
    catalog = get_catalog()
    names = [genre.name for genre in extract_genres("Genre: jazz rock\nMood: calm", catalog)]
    assert names == ["jazz", "rock"]
    assert extract_genres("Mood: calm", catalog) == []


def test_remix_instruments_keeps_vocal_items() -> None:
    catalog = get_catalog()
    afrobeat = catalog.require("afrobeat")
    pool_tags = {tag for pool in afrobeat.pools.values() for tag in pool.instruments}
    for seed in range(20):
        updated = remix_instruments(AFROBEAT_PROMPT, catalog, create_rng(seed))
        items = split_csv(get_field(updated, "instruments") or "")
        assert "soulful vocals" in items
        assert "accordion" not in items
        assert all(item in pool_tags for item in items if item != "soulful vocals")
        assert len(items) <= 6
        assert updated.count("Instruments:") == 1


def test_remix_instruments_inserts_field_when_missing() -> None:
    catalog = get_catalog()
    updated = remix_instruments("Genre: jazz\nMood: smoky", catalog, create_rng(2))
    assert updated.split("\n")[2].startswith("Instruments: ")


def test_remix_without_known_genre_is_a_no_op() -> None:
    catalog = get_catalog()
    for prompt in ("Genre: polka\nInstruments: tuba", "Mood: calm\nInstruments: tuba"):
        assert remix_instruments(prompt, catalog, create_rng(1)) == prompt
        assert inject_bpm_range(prompt, catalog) == prompt
        assert remix_mood(prompt, catalog, create_rng(1)) == prompt


def test_inject_bpm_range_inserts_after_mood() -> None:
    catalog = get_catalog()
    updated = inject_bpm_range("Genre: jazz rock\nMood: smoky", catalog)
    assert updated == "Genre: jazz rock\nMood: smoky\nBPM: between 90 and 160"


def test_inject_bpm_range_replaces_existing_value() -> None:
    catalog = get_catalog()
    updated = inject_bpm_range("Genre: jazz\nBPM: 200", catalog)
    assert get_field(updated, "bpm") == "between 80 and 180"
    assert updated.count("BPM:") == 1


def test_remix_mood_draws_from_genre_moods() -> None:
    catalog = get_catalog()
    ambient = catalog.require("ambient")
    for seed in range(20):
        updated = remix_mood("Genre: ambient\nMood: angry", catalog, create_rng(seed))
        moods = split_csv(get_field(updated, "mood") or "")
        assert 2 <= len(moods) <= 3
        assert set(moods) <= set(ambient.moods)
        assert len(set(moods)) == len(moods)


def test_remix_mood_keeps_max_encoding() -> None:
    catalog = get_catalog()
    prompt = f'{MAX_MODE_HEADER}\ngenre: "ambient"\nmood: "angry"'
    updated = remix_mood(prompt, catalog, create_rng(5))
    mood_line = next(line for line in updated.split("\n") if line.startswith("mood:"))
    assert mood_line.startswith('mood: "') and mood_line.endswith('"')
