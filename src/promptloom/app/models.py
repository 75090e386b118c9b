from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PromptMode(str, Enum):
    STANDARD = "standard"
    MAX = "max"


class FieldOperation(str, Enum):
    GET = "get"
    REPLACE = "replace"
    INSERT = "insert"
    SET = "set"


class RemixTarget(str, Enum):
    INSTRUMENTS = "instruments"
    BPM = "bpm"
    MOOD = "mood"


class GenreSummary(BaseModel):
    name: str
    label: str
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    pool_order: list[str] = Field(default_factory=list)
    max_tags: int = Field(..., ge=1)
    bpm_min: Optional[int] = None
    bpm_max: Optional[int] = None
    bpm_typical: Optional[int] = None
    moods: list[str] = Field(default_factory=list)


class InstrumentSelectRequest(BaseModel):
    genre: str = Field(..., min_length=1, max_length=256)
    seed: Optional[int] = Field(default=None, ge=0)
    user_instruments: list[str] = Field(default_factory=list, max_length=32)
    max_tags: Optional[int] = Field(default=None, ge=1, le=32)
    max_instruments: int = Field(default=3, ge=1, le=16)


class InstrumentSelectResponse(BaseModel):
    genres: list[str]
    instruments: list[str]
    seed: Optional[int] = None


class InstrumentMergeRequest(BaseModel):
    existing: str = Field(default="", max_length=4096)
    tags: list[str] = Field(default_factory=list, max_length=64)
    vocal_style: Optional[str] = Field(default=None, max_length=512)
    max_items: Optional[int] = Field(default=None, ge=1, le=32)
    strip_vocal_style: bool = False


class InstrumentMergeResponse(BaseModel):
    instruments: str
    items: list[str] = Field(default_factory=list)


class NuanceRequest(BaseModel):
    genre: str = Field(default="", max_length=256)
    seed: Optional[int] = Field(default=None, ge=0)
    include_vocal_style: bool = False


class NuanceResponse(BaseModel):
    genres: list[str] = Field(default_factory=list)
    guidance: Optional[str] = None
    vocal_style: Optional[str] = None


class FieldEditRequest(BaseModel):
    prompt: str = Field(..., max_length=20_000)
    field: str = Field(..., min_length=1, max_length=32)
    operation: FieldOperation = Field(default=FieldOperation.GET)
    value: Optional[str] = Field(default=None, max_length=2048)
    mode: Optional[PromptMode] = None


class FieldEditResponse(BaseModel):
    prompt: str
    mode: PromptMode
    value: Optional[str] = None


class InstrumentInjectRequest(BaseModel):
    prompt: str = Field(..., max_length=20_000)
    tags: list[str] = Field(default_factory=list, max_length=64)
    max_mode: Optional[bool] = Field(
        default=None,
        description="Force the field encoding; detected from the prompt when omitted.",
    )
    max_items: Optional[int] = Field(default=None, ge=1, le=32)


class RemixRequest(BaseModel):
    prompt: str = Field(..., max_length=20_000)
    target: RemixTarget
    seed: Optional[int] = Field(default=None, ge=0)
    max_items: Optional[int] = Field(default=None, ge=1, le=32)


class PromptResponse(BaseModel):
    prompt: str
    mode: PromptMode
    changed: bool = False


class PostProcessRequest(BaseModel):
    text: str = Field(..., max_length=50_000)
    max_chars: Optional[int] = Field(default=None, ge=1, le=20_000)
    min_chars: Optional[int] = Field(default=None, ge=0)
    locked_phrase: Optional[str] = Field(default=None, max_length=512)


class PostProcessResponse(BaseModel):
    text: str
    repeated_words: list[str] = Field(default_factory=list)
    leaked_meta: bool = False
    truncated: bool = False
