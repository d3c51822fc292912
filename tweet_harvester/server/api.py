"""FastAPI application exposing the ingestion and read endpoints."""

from __future__ import annotations

import asyncio
import re
from contextlib import asynccontextmanager
from functools import partial
from pathlib import Path
from typing import Any, Iterable

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import ServerConfig
from ..logging_conf import component_logger
from .ingestion import IngestionService


def origin_allowed(origin: str, patterns: Iterable[str]) -> bool:
    """Exact match, or prefix match for patterns carrying a ``*``."""

    for pattern in patterns:
        if "*" in pattern:
            if origin.startswith(pattern.replace("*", "", 1)):
                return True
        elif origin == pattern:
            return True
    return False


def origin_regex(patterns: Iterable[str]) -> str:
    parts = []
    for pattern in patterns:
        if "*" in pattern:
            parts.append(re.escape(pattern.replace("*", "", 1)) + ".*")
        else:
            parts.append(re.escape(pattern))
    return "^(?:" + "|".join(parts) + ")$" if parts else "^$"


def _json_type(value: Any) -> str:
    if isinstance(value, dict):
        return "object"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if value is None:
        return "null"
    return type(value).__name__


def _positive_int(value: str | None, default: int) -> int:
    try:
        parsed = int(value) if value is not None else default
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _handle_fatal(app: FastAPI, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    logger = app.state.logger
    exception = context.get("exception")
    logger.critical(
        "unhandled_exception",
        message=context.get("message"),
        error=str(exception) if exception else None,
    )
    app.state.fatal = True
    hook = getattr(app.state, "shutdown_hook", None)
    if hook is not None:
        hook()


def create_app(
    config: ServerConfig | None = None,
    service: IngestionService | None = None,
    base_dir: Path | None = None,
    logger: structlog.BoundLogger | None = None,
) -> FastAPI:
    config = config or ServerConfig()
    logger = logger or component_logger("server")
    if service is None:
        service = IngestionService.from_config(config, base_dir or Path.cwd(), logger=logger)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        loop = asyncio.get_running_loop()
        previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(partial(_handle_fatal, app))
        service.index_store.ensure_directory()
        logger.info("ingestion_service_started", data_dir=str(service.data_dir))
        try:
            yield
        finally:
            await service.close()
            loop.set_exception_handler(previous_handler)
            logger.info("ingestion_service_stopped")

    app = FastAPI(title="tweet-harvester ingestion", lifespan=lifespan)
    app.state.service = service
    app.state.logger = logger
    app.state.fatal = False
    app.state.shutdown_hook = None

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=origin_regex(config.allowed_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        allow_credentials=True,
        max_age=86400,
    )

    @app.middleware("http")
    async def reject_unknown_origins(request: Request, call_next):
        origin = request.headers.get("origin")
        if origin and not origin_allowed(origin, config.allowed_origins):
            logger.warning("origin_rejected", origin=origin, path=request.url.path)
            return JSONResponse(status_code=403, content={"error": "Not allowed by CORS"})
        return await call_next(request)

    @app.post("/store-data")
    async def store_data(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse(
                status_code=400,
                content={"error": "Invalid data format", "received": "invalid json"},
            )
        if not isinstance(payload, list):
            return JSONResponse(
                status_code=400,
                content={"error": "Invalid data format", "received": _json_type(payload)},
            )
        try:
            result = await service.submit(payload)
        except Exception as exc:  # noqa: BLE001
            logger.error("store_data_failed", error=str(exc), received=len(payload))
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "message": str(exc)},
            )
        return result.as_dict()

    @app.get("/get-tweets")
    async def get_tweets(page: str | None = None, limit: str | None = None):
        page_number = _positive_int(page, 1)
        page_size = _positive_int(limit, config.default_page_limit)
        try:
            result = await service.read_page(page_number, page_size)
        except Exception as exc:  # noqa: BLE001
            logger.error("get_tweets_failed", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "message": str(exc)},
            )
        return result.as_dict()

    @app.get("/health")
    async def health():
        return {"status": "ok", "queued": len(service.queue)}

    return app


def run_server(
    config: ServerConfig,
    base_dir: Path,
    logger: structlog.BoundLogger | None = None,
) -> bool:
    """Serve until interrupted; False when a fatal error forced the shutdown."""

    import uvicorn

    app = create_app(config, base_dir=base_dir, logger=logger)
    server = uvicorn.Server(
        uvicorn.Config(app, host=config.host, port=config.port, log_config=None)
    )

    def _request_exit() -> None:
        server.should_exit = True

    app.state.shutdown_hook = _request_exit
    server.run()
    return not app.state.fatal


__all__ = ["create_app", "origin_allowed", "origin_regex", "run_server"]
