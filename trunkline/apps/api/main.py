from __future__ import annotations

import json
import logging
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from trunkline.apps.api.errors import (
    database_exception_handler,
    http_exception_handler,
    starlette_http_exception_handler,
    trunkline_error_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from trunkline.apps.api.response import API_VERSION, is_versioned_request
from trunkline.apps.api.routes.credential_lists import router as credential_lists_router
from trunkline.apps.api.routes.dispatch_rules import router as dispatch_rules_router
from trunkline.apps.api.routes.health import router as health_router
from trunkline.apps.api.routes.plan_routing_profiles import router as plan_routing_profiles_router
from trunkline.apps.api.routes.plans import router as plans_router
from trunkline.apps.api.routes.routing import router as routing_router
from trunkline.apps.api.routes.routing_profiles import router as routing_profiles_router
from trunkline.apps.api.routes.trunks import router as trunks_router
from trunkline.core.config import get_settings
from trunkline.core.errors import TrunklineError
from trunkline.core.logging import configure_logging


logger = logging.getLogger(__name__)

_ENVELOPE_EXEMPT_PREFIXES = (
    "/v1/openapi.json",
    "/v1/docs",
)

_ROUTERS = (
    health_router,
    plans_router,
    trunks_router,
    credential_lists_router,
    dispatch_rules_router,
    routing_profiles_router,
    plan_routing_profiles_router,
    routing_router,
)


async def _wrap_success(response, request_id: str) -> Response:
    # call_next hands back a streaming response, so the body has to be drained first.
    body = b"".join([chunk async for chunk in response.body_iterator])
    headers = {key: value for key, value in response.headers.items() if key.lower() != "content-length"}
    try:
        payload = json.loads(body)
    except ValueError:
        payload = None
    is_enveloped = (
        isinstance(payload, dict)
        and "data" in payload
        and isinstance(payload.get("meta"), dict)
        and payload["meta"].get("api_version") == API_VERSION
    )
    if payload is None or is_enveloped:
        return Response(content=body, status_code=response.status_code, headers=headers)
    headers.pop("content-type", None)
    return JSONResponse(
        content={"data": payload, "meta": {"request_id": request_id, "api_version": API_VERSION}},
        status_code=response.status_code,
        headers=headers,
    )


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="Trunkline API", version=API_VERSION, docs_url=None, redoc_url=None)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        # Wrap versioned JSON responses in the standardized success envelope.
        if (
            is_versioned_request(request)
            and not request.url.path.startswith(_ENVELOPE_EXEMPT_PREFIXES)
            and response.status_code < 400
            and response.headers.get("content-type", "").startswith("application/json")
        ):
            response = await _wrap_success(response, request_id)
        response.headers.setdefault("X-Request-Id", request_id)
        logger.info(
            "request_completed method=%s path=%s status=%s latency_ms=%.1f",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
        )
        return response

    app.add_exception_handler(TrunklineError, trunkline_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Mount versioned v1 API routes.
    for router in _ROUTERS:
        app.include_router(router, prefix=f"/{API_VERSION}")
    # Mirror unversioned aliases for console clients that predate /v1.
    for router in _ROUTERS:
        app.include_router(router, include_in_schema=False)

    @app.get("/v1/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/v1/docs", include_in_schema=False)
    async def v1_docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url="/v1/openapi.json", title=f"{settings.app_name} API v1")

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url="/v1/docs")

    return app


app = create_app()
