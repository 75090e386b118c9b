from promptloom.services.fields import MAX_MODE_HEADER, get_field
from promptloom.services.merger import (
    inject_instrument_tags,
    inject_vocal_style_into_instruments_csv,
    is_vocal_style_item,
    merge_instrument_tags,
    parse_vocal_style_to_tags,
    split_csv,
)


def test_vocal_items_survive_capping() -> None:
    merged = merge_instrument_tags("piano, vocals, humming", ["guitar"], max_items=3)
    assert merged == "piano, vocals, humming"


def test_merge_dedups_case_insensitively_keeping_first_casing() -> None:
    merged = merge_instrument_tags("Piano, strings", ["piano", "Flute", "STRINGS"])
    assert merged == "Piano, strings, Flute"


def test_merge_never_exceeds_cap() -> None:
    existing = "piano, bass, drums, organ, vocals, ad libs"
    for max_items in range(1, 9):
        merged = merge_instrument_tags(existing, ["flute", "harp", "cello"], max_items)
        items = split_csv(merged)
        assert len(items) <= max_items
        assert len({item.casefold() for item in items}) == len(items)


def test_merge_keeps_first_vocal_items_when_they_fill_the_cap() -> None:
    merged = merge_instrument_tags("vocals, choir vocals, ad libs", ["gang vocals"], max_items=2)
    assert merged == "vocals, choir vocals"


def test_merge_can_strip_existing_vocal_style() -> None:
    merged = merge_instrument_tags(
        "piano, tenor vocals, stacked harmonies", ["flute"], strip_vocal_style=True
    )
    assert merged == "piano, flute"
    assert merge_instrument_tags("", [], max_items=0) == ""


def test_vocal_style_classifier() -> None:
    for tag in (
        "Smooth Delivery",
        "Stacked Harmonies",
        "humming",
        "voice",
        "Tight Three Part Harmonies",
        "female singer",
        "Call And Response",
    ):
        assert is_vocal_style_item(tag), tag
    for tag in ("piano", "bass", "vocoder", "harp", ""):
        assert not is_vocal_style_item(tag), tag


def test_parse_vocal_style_to_tags() -> None:
    assert parse_vocal_style_to_tags("Tenor, Smooth Delivery, Stacked Harmonies") == [
        "tenor vocals",
        "smooth delivery",
        "stacked harmonies",
    ]
    assert parse_vocal_style_to_tags("Breathy; breathy") == ["breathy vocals"]
    assert parse_vocal_style_to_tags("") == []


def test_inject_vocal_style_replaces_previous_vocal_tags() -> None:
    merged = inject_vocal_style_into_instruments_csv(
        "piano, breathy vocals", "Tenor, Smooth Delivery", max_items=6
    )
    assert merged == "piano, tenor vocals, smooth delivery"
    assert inject_vocal_style_into_instruments_csv("piano", "") == "piano"


def test_inject_inserts_instruments_after_mood() -> None:
    prompt = "Genre: ambient\nMood: dreamy, calm\nBPM: 70\n\n[VERSE]\nfloating"
    updated = inject_instrument_tags(prompt, ["kalimba", "flute"], max_mode=False)
    lines = updated.split("\n")
    assert lines[1].startswith("Mood:")
    assert lines[2] == "Instruments: kalimba, flute"
    assert updated.count("Instruments:") == 1


def test_inject_merges_into_existing_field() -> None:
    prompt = "Genre: jazz\nInstruments: piano, soft vocals\nMood: smoky"
    updated = inject_instrument_tags(prompt, ["flute", "Piano"], max_mode=False)
    assert get_field(updated, "instruments") == "piano, flute"
    assert updated.count("Instruments:") == 1


def test_inject_in_max_mode_uses_quoted_field() -> None:
    prompt = f'{MAX_MODE_HEADER}\ngenre: "ambient"\nbpm: "between 60 and 90"'
    updated = inject_instrument_tags(prompt, ["kalimba", "flute"], max_mode=True)
    assert updated.split("\n")[-1] == 'instruments: "kalimba, flute"'


def test_inject_without_tags_is_a_no_op() -> None:
    prompt = "Genre: jazz"
    assert inject_instrument_tags(prompt, [], max_mode=False) == prompt
    assert inject_instrument_tags(prompt, ["  "], max_mode=False) == prompt


def test_merge_splits_comma_joined_tags_before_capping() -> None:
    merged = merge_instrument_tags("piano", ["kalimba, flute, harp"], max_items=2)
    assert merged == "piano, kalimba"
    assert merge_instrument_tags("", ["kalimba, Flute", "flute"]) == "kalimba, Flute"
