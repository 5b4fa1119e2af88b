"""CORS for the exchange and upload endpoints.

Browser preflights to these paths get an empty 200 with permissive headers
before any other middleware sees them.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Dict

from starlette.requests import Request
from starlette.responses import Response

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

EXCHANGE_PATHS = ("/chat-completion", "/upload-file")


def preflight_middleware_factory() -> Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]:
    async def middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if request.method == "OPTIONS" and request.url.path.endswith(EXCHANGE_PATHS):
            return Response(status_code=200, headers=CORS_HEADERS)
        return await call_next(request)

    return middleware
