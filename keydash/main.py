import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from keydash.config import KeydashConfig, load_config
from keydash.keys.service import KeyService
from keydash.keys.store import build_store
from keydash.middleware.auth import ApiKeyMiddleware
from keydash.routes import keys, protected
from keydash.schemas.errors import InternalServerError, InvalidInputError, KeydashError

logger = logging.getLogger("keydash")


def _error_response(error: KeydashError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_response().model_dump(exclude_none=True),
    )


def create_app(config: KeydashConfig | None = None) -> FastAPI:
    config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(
            level=getattr(logging, config.server.log_level.upper(), logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        key_store = build_store(config)
        await key_store.initialize()
        key_service = KeyService(key_store, max_attempts=config.generate_max_attempts)

        if config.seed_default_key and await key_store.is_empty():
            record = await key_service.create_key("default")
            logger.info("Generated API key: %s", record.secret)

        app.state.config = config
        app.state.key_store = key_store
        app.state.key_service = key_service

        logger.info(
            "Keydash started on %s:%d (%s store)",
            config.server.host,
            config.server.port,
            config.store_backend,
        )

        yield

        await key_store.close()
        logger.info("Keydash shutdown complete")

    application = FastAPI(title="Keydash", version="0.1.0", lifespan=lifespan)

    application.add_middleware(ApiKeyMiddleware, prefix="/protected")

    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(keys.router)
    application.include_router(protected.router)

    @application.exception_handler(KeydashError)
    async def keydash_error_handler(request: Request, exc: KeydashError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error_response(exc)

    @application.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error_response(InvalidInputError("Invalid request body"))

    @application.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(InternalServerError())

    @application.get("/health")
    async def health(request: Request):
        return {"status": "ok", "store": config.store_backend}

    @application.get("/ready")
    async def ready(request: Request):
        return {"status": "ok"}

    return application


app = create_app()


def run() -> None:
    import uvicorn

    config = load_config()
    uvicorn.run(
        "keydash.main:app",
        host=config.server.host,
        port=config.server.port,
        workers=config.server.workers,
    )


if __name__ == "__main__":
    run()
