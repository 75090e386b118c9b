from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from promptloom.app.main import create_app


@pytest.fixture()
def client() -> Iterator[TestClient]:
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


def test_create_app() -> None:
    app = create_app()
    assert app.title == "promptloom"
    assert len(app.state.catalog.genres) == 21


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["genre_count"] == 21
    assert body["catalog_version"] == 3


def test_genre_listing_and_detail(client: TestClient) -> None:
    listing = client.get("/genres")
    assert listing.status_code == 200
    names = [item["name"] for item in listing.json()]
    assert "jazz" in names and "afrobeat" in names

    detail = client.get("/genres/bebop")
    assert detail.status_code == 200
    assert detail.json()["name"] == "jazz"
    assert detail.json()["bpm_min"] == 80

    missing = client.get("/genres/polka")
    assert missing.status_code == 404


def test_select_instruments_is_deterministic(client: TestClient) -> None:
    payload = {"genre": "afrobeat", "seed": 7}
    first = client.post("/instruments/select", json=payload)
    second = client.post("/instruments/select", json=payload)
    assert first.status_code == 200
    assert first.json() == second.json()
    body = first.json()
    assert body["genres"] == ["afrobeat"]
    assert 1 <= len(body["instruments"]) <= 5
    assert body["seed"] == 7


def test_select_instruments_for_multiple_genres(client: TestClient) -> None:
    response = client.post(
        "/instruments/select", json={"genre": "jazz rock", "seed": 1, "max_instruments": 3}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["genres"] == ["jazz", "rock"]
    assert 1 <= len(body["instruments"]) <= 3


def test_select_unknown_genre_returns_404(client: TestClient) -> None:
    response = client.post("/instruments/select", json={"genre": "polka"})
    assert response.status_code == 404


def test_merge_keeps_vocal_items(client: TestClient) -> None:
    response = client.post(
        "/instruments/merge",
        json={"existing": "piano, vocals, humming", "tags": ["guitar"], "max_items": 3},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["instruments"] == "piano, vocals, humming"
    assert body["items"] == ["piano", "vocals", "humming"]


def test_nuance_guidance(client: TestClient) -> None:
    response = client.post(
        "/guidance/nuance",
        json={"genre": "jazz rock", "seed": 3, "include_vocal_style": True},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["genres"] == ["jazz", "rock"]
    assert body["guidance"].startswith("MULTI-GENRE NUANCE:")
    assert "BPM Range: between 90 and 160" in body["guidance"]
    assert body["vocal_style"]

    empty = client.post("/guidance/nuance", json={"genre": "polka"}).json()
    assert empty == {"genres": [], "guidance": None, "vocal_style": None}


def test_field_get_and_insert(client: TestClient) -> None:
    prompt = "Genre: jazz\nMood: smoky"
    fetched = client.post("/prompt/field", json={"prompt": prompt, "field": "genre"})
    assert fetched.status_code == 200
    assert fetched.json()["value"] == "jazz"
    assert fetched.json()["mode"] == "standard"

    inserted = client.post(
        "/prompt/field",
        json={"prompt": prompt, "field": "instruments", "operation": "insert", "value": "piano"},
    )
    assert inserted.status_code == 200
    assert inserted.json()["prompt"] == "Genre: jazz\nMood: smoky\nInstruments: piano"
    assert inserted.json()["value"] == "piano"


def test_field_edit_validation(client: TestClient) -> None:
    unknown = client.post("/prompt/field", json={"prompt": "Genre: jazz", "field": "colour"})
    assert unknown.status_code == 422

    missing_value = client.post(
        "/prompt/field", json={"prompt": "Genre: jazz", "field": "mood", "operation": "set"}
    )
    assert missing_value.status_code == 422


def test_inject_instruments_into_prompt(client: TestClient) -> None:
    response = client.post(
        "/prompt/instruments",
        json={"prompt": "Genre: ambient\nMood: dreamy, calm\nBPM: 70", "tags": ["kalimba", "flute"]},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["prompt"].split("\n")[2] == "Instruments: kalimba, flute"
    assert body["mode"] == "standard"
    assert body["changed"] is True


def test_remix_bpm(client: TestClient) -> None:
    response = client.post(
        "/prompt/remix", json={"prompt": "Genre: jazz rock\nMood: smoky", "target": "bpm"}
    )
    assert response.status_code == 200
    assert response.json()["prompt"].endswith("BPM: between 90 and 160")
    assert response.json()["changed"] is True


def test_postprocess(client: TestClient) -> None:
    response = client.post(
        "/prompt/postprocess",
        json={"text": "Genre: jazz\nMood: smoky\n\n[VERSE]\nneon rain, neon rain"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["text"].startswith("[smoky, jazz, Key: C Major]")
    assert body["repeated_words"] == ["neon", "rain"]
    assert body["leaked_meta"] is False
    assert body["truncated"] is False


def test_postprocess_rejects_template_locked_phrase(client: TestClient) -> None:
    response = client.post(
        "/prompt/postprocess",
        json={"text": "Genre: jazz", "locked_phrase": "{{genre}}"},
    )
    assert response.status_code == 422


def test_unseeded_remix_is_stable_for_the_same_prompt(client: TestClient) -> None:
    payload = {"prompt": "Genre: ambient\nMood: angry", "target": "mood"}
    first = client.post("/prompt/remix", json=payload).json()
    second = client.post("/prompt/remix", json=payload).json()
    assert first == second
    assert first["changed"] is True


def test_select_rejects_single_genre_options_for_blends(client: TestClient) -> None:
    for extra in ({"user_instruments": ["sitar"]}, {"max_tags": 2}):
        response = client.post("/instruments/select", json={"genre": "jazz rock", **extra})
        assert response.status_code == 422
