from __future__ import annotations

from fastapi import FastAPI
from loguru import logger

from ..services.catalog import load_catalog
from ..services.selector import InstrumentSelector
from .routes import router
from .settings import get_settings


def create_app() -> FastAPI:
    """Build the promptloom API around the settings and a validated genre catalog."""
    settings = get_settings()
    catalog = load_catalog(settings.genres_path, settings.traits_path)
    app = FastAPI(title="promptloom", version="0.1.0")
    app.state.settings = settings
    app.state.catalog = catalog
    app.state.selector = InstrumentSelector(catalog)
    logger.info(
        "promptloom ready: {} genres, instrument cap {}, prompt budget {} chars",
        len(catalog.genres),
        settings.max_instrument_items,
        settings.max_prompt_chars,
    )
    app.include_router(router)
    return app


app = create_app()
