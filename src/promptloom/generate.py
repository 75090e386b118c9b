"""
CLI entry point to run one selection and blending pass over the genre catalog.

Example:
    python -m promptloom.generate --genre "jazz rock" --seed 7 --prompt prompt.txt
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional, Sequence

from .app.settings import Settings
from .services.blender import blend, build_vocal_descriptor
from .services.catalog import load_catalog
from .services.fields import is_max_format
from .services.merger import inject_instrument_tags
from .services.random import create_rng, unseeded_rng
from .services.selector import select_instruments, select_instruments_for_genres


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Select instruments and blended guidance for one or more genres."
    )
    parser.add_argument("--genre", required=True, help="Genre text, e.g. 'jazz rock'.")
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for reproducible selection (random when omitted).",
    )
    parser.add_argument(
        "--prompt",
        type=Path,
        default=None,
        help="Prompt file to inject the selected instruments into.",
    )
    parser.add_argument(
        "--max-mode",
        action="store_true",
        help="Insert a quoted Max-mode field when the prompt has no Instruments line.",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        default=None,
        help="Override the genre catalog JSON (defaults to settings).",
    )
    return parser.parse_args(argv)


def _run(
    genre_text: str,
    *,
    seed: Optional[int],
    prompt_path: Optional[Path],
    max_mode: bool,
    catalog_path: Optional[Path] = None,
) -> int:
    settings = Settings()
    catalog = load_catalog(catalog_path or settings.genres_path, settings.traits_path)
    genres = catalog.parse_components(genre_text)
    if not genres:
        print(f"no known genre in '{genre_text}'")
        return 1

    rng = create_rng(seed) if seed is not None else unseeded_rng()
    if len(genres) == 1:
        instruments = select_instruments(genres[0], rng)
    else:
        instruments = select_instruments_for_genres(genres, rng)
    guidance = blend(
        [genre.name for genre in genres],
        rng,
        catalog=catalog,
        bpm_spread=settings.bpm_blend_spread,
    )
    vocal_style = build_vocal_descriptor(genres, rng, catalog=catalog)

    print(f"genres        : {', '.join(genre.name for genre in genres)}")
    print(f"seed          : {seed if seed is not None else 'random'}")
    print(f"instruments   : {', '.join(instruments)}")
    print(f"vocal_style   : {vocal_style or 'n/a'}")
    if guidance is not None:
        print(guidance.render())

    if prompt_path is not None:
        text = prompt_path.read_text(encoding="utf-8")
        updated = inject_instrument_tags(
            text,
            instruments,
            max_mode or is_max_format(text),
            settings.max_instrument_items,
        )
        print("--- prompt ---")
        print(updated)
    return 0


def main() -> None:
    args = _parse_args()
    raise SystemExit(
        _run(
            args.genre,
            seed=args.seed,
            prompt_path=args.prompt,
            max_mode=args.max_mode,
            catalog_path=args.catalog,
        )
    )


if __name__ == "__main__":
    main()
