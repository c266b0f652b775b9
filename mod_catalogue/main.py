import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from mod_catalogue import __version__
from mod_catalogue.config import Settings, load_settings
from mod_catalogue.db.meta_store import MongoUpdateStore, UpdateStore
from mod_catalogue.db.mod_store import ModStore, MongoModStore
from mod_catalogue.db.mongo_connector import close_client, get_database
from mod_catalogue.services.scheduler import UpdateScheduler
from mod_catalogue.services.update_service import UpdateService

# Routers
from mod_catalogue.api.routers.core import router as core_router
from mod_catalogue.api.routers.mods import router as mods_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    mod_store: Optional[ModStore] = None,
    update_store: Optional[UpdateStore] = None,
    enable_scheduler: Optional[bool] = None,
) -> FastAPI:
    """Build the API app. Stores are opened on Mongo at startup unless injected."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or load_settings()
        app.state.settings = cfg
        app.state.mod_store = mod_store
        app.state.update_store = update_store
        owns_client = mod_store is None or update_store is None
        if owns_client:
            db = get_database(cfg)
            if mod_store is None:
                app.state.mod_store = MongoModStore(db)
                await app.state.mod_store.ensure_indexes()
            if update_store is None:
                app.state.update_store = MongoUpdateStore(db)
                await app.state.update_store.ensure_indexes()

        scheduler = None
        run_scheduler = cfg.enable_scheduler if enable_scheduler is None else enable_scheduler
        if run_scheduler:
            service = UpdateService(app.state.mod_store, app.state.update_store, cfg)
            scheduler = UpdateScheduler(service)
            await scheduler.start()
        app.state.scheduler = scheduler
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown()
            if owns_client:
                await close_client()

    app = FastAPI(title="Mod Catalogue", version=__version__, lifespan=lifespan)
    app.include_router(core_router)
    app.include_router(mods_router)
    return app


app = create_app()
