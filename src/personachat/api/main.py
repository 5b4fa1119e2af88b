from __future__ import annotations

from datetime import UTC, datetime
from dotenv import load_dotenv
import logging
from fastapi import FastAPI, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .cors import preflight_middleware_factory
from .routers.exchange import request_validation_handler, router as exchange_router
from .routers.projects import router as projects_router
from .routers.sessions import router as sessions_router
from ..observability.metrics import metrics_middleware_factory
from ..settings import get_settings

load_dotenv()  # Load environment variables from .env if present (OPENAI_API_KEY, JWT_SECRET, etc.)

app = FastAPI(title="PersonaChat API", version="0.1.0")

logging.basicConfig(level=logging.INFO)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

app.include_router(exchange_router)
app.include_router(projects_router)
app.include_router(sessions_router)

# Also expose the same routers under /api
app.include_router(exchange_router, prefix="/api")
app.include_router(projects_router, prefix="/api")
app.include_router(sessions_router, prefix="/api")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Outermost: exchange/upload preflights are answered before CORSMiddleware
app.middleware("http")(preflight_middleware_factory())

app.add_exception_handler(RequestValidationError, request_validation_handler)


@app.get("/")
def root():
    return {"name": "PersonaChat API", "version": "0.1.0"}


@app.get("/health")
def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "store": get_settings().store_impl,
        },
    }


@app.get("/metrics")
def metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
