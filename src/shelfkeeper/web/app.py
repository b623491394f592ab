"""FastAPI web application for Shelfkeeper."""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx
import structlog
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.fetcher import CatalogClient
from ..core.inventory import InventoryController
from ..core.store import KeyValueStore, SQLiteStore

load_dotenv()

log = structlog.get_logger()

VERSION = "0.1.0"
MAX_BODY_BYTES = int(os.environ.get("MAX_BODY_BYTES", "10000"))


def _refetch_all_from_env() -> bool:
    mode = os.environ.get("REFETCH_MODE", "all").lower()
    if mode not in ("all", "new"):
        log.warning("unknown_refetch_mode", mode=mode)
    return mode != "new"


def _state(controller: InventoryController) -> dict:
    return {
        "books": [card.to_dict() for card in controller.cards()],
        "error": controller.error,
        "loading": controller.is_loading,
    }


def _too_large(request: Request) -> bool:
    content_length = request.headers.get("content-length")
    return bool(content_length) and int(content_length) > MAX_BODY_BYTES


async def _json_body(request: Request) -> dict | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def create_app(
    store: KeyValueStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    refetch_all: bool | None = None,
) -> FastAPI:
    """Build the app. The store and HTTP transport can be swapped for tests."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_store = store is None
        inventory_store = SQLiteStore() if owns_store else store
        mode = refetch_all if refetch_all is not None else _refetch_all_from_env()
        try:
            async with httpx.AsyncClient(transport=transport) as client:
                controller = InventoryController(
                    inventory_store, CatalogClient(), client, refetch_all=mode
                )
                app.state.controller = controller
                controller.start()
                log.info("app_started", books=len(controller.inventory.isbns), refetch_all=mode)
                try:
                    yield
                finally:
                    await controller.aclose()
        finally:
            if owns_store:
                inventory_store.close()

    app = FastAPI(title="Shelfkeeper", docs_url=None, redoc_url=None, lifespan=lifespan)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

    @app.get("/health")
    async def health(request: Request):
        controller: InventoryController = request.app.state.controller
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
            "environment": os.environ.get("ENV", "dev"),
            "books": len(controller.inventory.isbns),
        }

    @app.get("/api/books")
    async def list_books(request: Request):
        return _state(request.app.state.controller)

    @app.post("/api/books")
    async def add_book(request: Request):
        if _too_large(request):
            return JSONResponse({"error": "Request too large."}, status_code=413)

        body = await _json_body(request)
        raw = body.get("isbn") if body else None
        if not isinstance(raw, str):
            return JSONResponse({"error": "Field 'isbn' must be a string."}, status_code=400)

        controller: InventoryController = request.app.state.controller
        added = controller.add(raw)
        if not added and raw.strip():
            return JSONResponse(_state(controller), status_code=400)
        return _state(controller)

    @app.put("/api/books/{isbn}/rating")
    async def rate_book(isbn: str, request: Request):
        if _too_large(request):
            return JSONResponse({"error": "Request too large."}, status_code=413)

        body = await _json_body(request)
        rating = body.get("rating") if body else None
        if not isinstance(rating, int) or isinstance(rating, bool):
            return JSONResponse({"error": "Field 'rating' must be an integer."}, status_code=400)

        controller: InventoryController = request.app.state.controller
        controller.rate(isbn, rating)
        return _state(controller)

    @app.delete("/api/books/{isbn}")
    async def delete_book(isbn: str, request: Request):
        controller: InventoryController = request.app.state.controller
        controller.delete(isbn)
        return _state(controller)

    return app


app = create_app()


def main():
    port = int(os.environ.get("PORT", "8000"))
    is_dev = os.environ.get("ENV", "dev") == "dev"
    uvicorn.run(
        "shelfkeeper.web.app:app",
        host="0.0.0.0",
        port=port,
        reload=is_dev,
    )
