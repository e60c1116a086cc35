from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from docchat.api.routes import router
from docchat.core.config import Settings, get_settings
from docchat.core.container import Services, build_services
from docchat.core.errors import PersistenceError
from docchat.utils.logging import setup_logging


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = services.settings if services else (settings or get_settings())

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        setup_logging(settings)
        svc = services or build_services(settings)
        await svc.start()
        application.state.services = svc
        logger.info(f"DocChat started (in_memory={settings.use_in_memory}, sync_ingest={settings.sync_ingest})")
        yield
        await svc.stop()
        logger.info("DocChat stopped")

    application = FastAPI(title="DocChat API", version="0.1.0", lifespan=lifespan)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(PersistenceError)
    async def persistence_error(request: Request, exc: PersistenceError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Internal storage error"})

    application.include_router(router)
    return application


app = create_app()
