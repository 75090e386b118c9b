"""Shared service-layer exceptions."""

from __future__ import annotations


class CatalogError(Exception):
    """Malformed genre catalog data; raised at load time and never recovered."""


class UnknownGenreError(KeyError):
    """Requested genre is not present in the catalog."""

    def __init__(self, genre: str) -> None:
        super().__init__(genre)
        self.genre = genre
