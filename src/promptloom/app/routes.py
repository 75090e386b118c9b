from __future__ import annotations

from typing import Optional, cast

from fastapi import APIRouter, HTTPException, Request

from ..services.blender import blend, build_vocal_descriptor
from ..services.catalog import GenreCatalog, GenreDefinition
from ..services.exceptions import UnknownGenreError
from ..services.fields import (
    canonical_field,
    detect_mode,
    get_field,
    insert_field,
    is_max_format,
    replace_field,
    set_field,
)
from ..services.merger import (
    inject_instrument_tags,
    inject_vocal_style_into_instruments_csv,
    merge_instrument_tags,
    split_csv,
)
from ..services.postprocess import (
    detect_repeated_words,
    has_leaked_meta,
    is_valid_locked_phrase,
    post_process_prompt,
)
from ..services.random import Rng, create_rng, deterministic_seed, unseeded_rng
from ..services.remix import inject_bpm_range, remix_instruments, remix_mood
from ..services.selector import InstrumentSelector
from .models import (
    FieldEditRequest,
    FieldEditResponse,
    FieldOperation,
    GenreSummary,
    InstrumentInjectRequest,
    InstrumentMergeRequest,
    InstrumentMergeResponse,
    InstrumentSelectRequest,
    InstrumentSelectResponse,
    NuanceRequest,
    NuanceResponse,
    PostProcessRequest,
    PostProcessResponse,
    PromptResponse,
    RemixRequest,
    RemixTarget,
)
from .settings import Settings

router = APIRouter()


def get_catalog(request: Request) -> GenreCatalog:
    return cast(GenreCatalog, request.app.state.catalog)


def get_selector(request: Request) -> InstrumentSelector:
    return cast(InstrumentSelector, request.app.state.selector)


def get_app_settings(request: Request) -> Settings:
    return cast(Settings, request.app.state.settings)


def _rng_for(seed: Optional[int], text: Optional[str] = None) -> Rng:
    if seed is not None:
        return create_rng(seed)
    if text:
        return create_rng(deterministic_seed(text))
    return unseeded_rng()


def _summarize(genre: GenreDefinition) -> GenreSummary:
    return GenreSummary(
        name=genre.name,
        label=genre.label,
        description=genre.description,
        keywords=list(genre.keywords),
        pool_order=list(genre.pool_order),
        max_tags=genre.max_tags,
        bpm_min=genre.bpm.min if genre.bpm else None,
        bpm_max=genre.bpm.max if genre.bpm else None,
        bpm_typical=genre.bpm.typical if genre.bpm else None,
        moods=list(genre.moods),
    )


@router.get("/health")
async def health(request: Request) -> dict[str, object]:
    settings = get_app_settings(request)
    catalog = get_catalog(request)
    return {
        "status": "ok",
        "catalog_version": catalog.version,
        "genre_count": len(catalog.genres),
        "max_instrument_items": settings.max_instrument_items,
        "max_prompt_chars": settings.max_prompt_chars,
    }


@router.get("/genres", response_model=list[GenreSummary])
async def genres(request: Request) -> list[GenreSummary]:
    catalog = get_catalog(request)
    return [_summarize(genre) for genre in catalog.genres.values()]


@router.get("/genres/{name}", response_model=GenreSummary)
async def genre_detail(name: str, request: Request) -> GenreSummary:
    catalog = get_catalog(request)
    try:
        genre = catalog.require(name)
    except UnknownGenreError as exc:
        raise HTTPException(status_code=404, detail=f"genre {exc.genre} not found") from exc
    return _summarize(genre)


@router.post("/instruments/select", response_model=InstrumentSelectResponse)
async def select_instruments(
    payload: InstrumentSelectRequest, request: Request
) -> InstrumentSelectResponse:
    catalog = get_catalog(request)
    selector = get_selector(request)
    genres = catalog.parse_components(payload.genre)
    if len(genres) > 1 and (payload.user_instruments or payload.max_tags is not None):
        raise HTTPException(
            status_code=422,
            detail="user_instruments and max_tags apply to a single genre only",
        )
    try:
        if len(genres) > 1:
            instruments = selector.select_for_text(
                payload.genre, payload.seed, payload.max_instruments
            )
        else:
            name = genres[0].name if genres else payload.genre
            instruments = selector.select(
                name,
                payload.seed,
                user_instruments=payload.user_instruments,
                max_tags=payload.max_tags,
            )
    except UnknownGenreError as exc:
        raise HTTPException(status_code=404, detail=f"genre {exc.genre} not found") from exc
    return InstrumentSelectResponse(
        genres=[genre.name for genre in genres],
        instruments=instruments,
        seed=payload.seed,
    )


@router.post("/instruments/merge", response_model=InstrumentMergeResponse)
async def merge_instruments(
    payload: InstrumentMergeRequest, request: Request
) -> InstrumentMergeResponse:
    settings = get_app_settings(request)
    max_items = payload.max_items or settings.max_instrument_items
    merged = merge_instrument_tags(
        payload.existing, payload.tags, max_items, payload.strip_vocal_style
    )
    if payload.vocal_style:
        merged = inject_vocal_style_into_instruments_csv(merged, payload.vocal_style, max_items)
    return InstrumentMergeResponse(instruments=merged, items=split_csv(merged))


@router.post("/guidance/nuance", response_model=NuanceResponse)
async def nuance(payload: NuanceRequest, request: Request) -> NuanceResponse:
    settings = get_app_settings(request)
    catalog = get_catalog(request)
    rng = _rng_for(payload.seed)
    guidance = blend(
        [payload.genre], rng, catalog=catalog, bpm_spread=settings.bpm_blend_spread
    )
    if guidance is None:
        return NuanceResponse()

    vocal_style = None
    if payload.include_vocal_style:
        vocal_style = build_vocal_descriptor(
            [catalog.genres[name] for name in guidance.genres], rng, catalog=catalog
        )
    return NuanceResponse(
        genres=list(guidance.genres),
        guidance=guidance.render(),
        vocal_style=vocal_style,
    )


@router.post("/prompt/field", response_model=FieldEditResponse)
async def edit_field(payload: FieldEditRequest, request: Request) -> FieldEditResponse:
    if canonical_field(payload.field) is None:
        raise HTTPException(status_code=422, detail=f"unknown field {payload.field}")
    if payload.operation is not FieldOperation.GET and payload.value is None:
        raise HTTPException(
            status_code=422, detail=f"value required for {payload.operation.value}"
        )

    text = payload.prompt
    value = payload.value or ""
    if payload.operation is FieldOperation.REPLACE:
        text = replace_field(text, payload.field, value)
    elif payload.operation is FieldOperation.INSERT:
        text = insert_field(text, payload.field, value, payload.mode or detect_mode(text))
    elif payload.operation is FieldOperation.SET:
        text = set_field(text, payload.field, value, payload.mode)
    return FieldEditResponse(
        prompt=text,
        mode=detect_mode(text),
        value=get_field(text, payload.field),
    )


@router.post("/prompt/instruments", response_model=PromptResponse)
async def inject_instruments(
    payload: InstrumentInjectRequest, request: Request
) -> PromptResponse:
    settings = get_app_settings(request)
    max_mode = payload.max_mode if payload.max_mode is not None else is_max_format(payload.prompt)
    result = inject_instrument_tags(
        payload.prompt,
        payload.tags,
        max_mode,
        payload.max_items or settings.max_instrument_items,
    )
    return PromptResponse(
        prompt=result, mode=detect_mode(result), changed=result != payload.prompt
    )


@router.post("/prompt/remix", response_model=PromptResponse)
async def remix(payload: RemixRequest, request: Request) -> PromptResponse:
    settings = get_app_settings(request)
    catalog = get_catalog(request)
    rng = _rng_for(payload.seed, payload.prompt)
    if payload.target is RemixTarget.INSTRUMENTS:
        result = remix_instruments(
            payload.prompt,
            catalog,
            rng,
            payload.max_items or settings.max_instrument_items,
        )
    elif payload.target is RemixTarget.BPM:
        result = inject_bpm_range(payload.prompt, catalog, settings.bpm_blend_spread)
    else:
        result = remix_mood(payload.prompt, catalog, rng)
    return PromptResponse(
        prompt=result, mode=detect_mode(result), changed=result != payload.prompt
    )


@router.post("/prompt/postprocess", response_model=PostProcessResponse)
async def postprocess(payload: PostProcessRequest, request: Request) -> PostProcessResponse:
    settings = get_app_settings(request)
    if not is_valid_locked_phrase(payload.locked_phrase):
        raise HTTPException(status_code=422, detail="locked phrase may not contain {{ or }}")
    max_chars = payload.max_chars or settings.max_prompt_chars
    min_chars = (
        payload.min_chars if payload.min_chars is not None else settings.min_prompt_chars
    )
    text = post_process_prompt(payload.text, max_chars, min_chars, payload.locked_phrase)
    return PostProcessResponse(
        text=text,
        repeated_words=detect_repeated_words(text, settings.repeated_word_threshold),
        leaked_meta=has_leaked_meta(text),
        truncated=len(payload.text.strip()) > max_chars,
    )
