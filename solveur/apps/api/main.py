from __future__ import annotations

import json
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import StreamingResponse

from solveur.apps.api.errors import (
    http_exception_handler,
    solveur_exception_handler,
    tenant_predicate_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from solveur.apps.api.response import API_VERSION, is_enveloped, is_versioned_request
from solveur.apps.api.routes.admin import router as admin_router
from solveur.apps.api.routes.auth import router as auth_router
from solveur.apps.api.routes.chat import router as chat_router
from solveur.apps.api.routes.health import router as health_router
from solveur.apps.api.routes.knowledge import router as knowledge_router
from solveur.apps.api.routes.personalities import router as personalities_router
from solveur.apps.api.routes.tenants import router as tenants_router
from solveur.apps.api.routes.usage import router as usage_router
from solveur.core.config import get_settings
from solveur.core.errors import SolveurError
from solveur.core.logging import configure_logging
from solveur.persistence.guards import TenantPredicateError
from solveur.providers.embeddings.factory import get_embedding_client
from solveur.providers.llm.factory import get_completion_provider
from solveur.providers.vectors.factory import get_vector_client
from solveur.services.quota import get_quota_service
from solveur.services.telemetry import record_request


_ENVELOPE_EXEMPT_PREFIXES = (
    "/v1/openapi.json",
    "/v1/docs",
)
_ROUTERS = (
    health_router,
    chat_router,
    tenants_router,
    personalities_router,
    knowledge_router,
    usage_router,
    auth_router,
    admin_router,
)


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="Solveur API")

    # Provider handles are built once per app; tests swap them on app.state.
    app.state.embedder = get_embedding_client(settings)
    app.state.vectors = get_vector_client(settings)
    app.state.completer = get_completion_provider(settings)
    app.state.quota = get_quota_service()

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        start = time.monotonic()
        response = await call_next(request)
        record_request(
            path=request.url.path,
            status_code=response.status_code,
            latency_ms=(time.monotonic() - start) * 1000.0,
        )
        # Wrap versioned JSON responses in the standardized success envelope.
        if (
            is_versioned_request(request)
            and not request.url.path.startswith(_ENVELOPE_EXEMPT_PREFIXES)
            and response.status_code < 400
            and response.media_type == "application/json"
            and not isinstance(response, StreamingResponse)
        ):
            raw_body = getattr(response, "body", None)
            if raw_body:
                try:
                    payload = json.loads(raw_body)
                except (TypeError, ValueError):
                    payload = None
                if payload is not None and not is_enveloped(payload):
                    wrapped_response = JSONResponse(
                        content={
                            "data": payload,
                            "meta": {"request_id": request_id, "api_version": API_VERSION},
                        },
                        status_code=response.status_code,
                    )
                    for key, value in response.headers.items():
                        if key.lower() in {"content-length", "content-type"}:
                            continue
                        wrapped_response.headers[key] = value
                    response = wrapped_response

        response.headers.setdefault("X-Request-Id", request_id)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(SolveurError)
    async def _solveur_exception_handler(request: Request, exc: SolveurError):
        return await solveur_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(TenantPredicateError)
    async def _tenant_predicate_exception_handler(request: Request, exc: TenantPredicateError):
        return await tenant_predicate_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    # Versioned routes carry the envelope; the unversioned aliases serve the raw payloads.
    for router in _ROUTERS:
        app.include_router(router, prefix=f"/{API_VERSION}")
    for router in _ROUTERS:
        app.include_router(router, include_in_schema=False)

    @app.get("/v1/openapi.json", include_in_schema=False)
    async def openapi_json() -> JSONResponse:
        return JSONResponse(app.openapi())

    @app.get("/v1/docs", include_in_schema=False)
    async def v1_docs() -> HTMLResponse:
        return get_swagger_ui_html(openapi_url="/v1/openapi.json", title="Solveur API v1")

    @app.get("/docs", include_in_schema=False)
    async def docs_redirect() -> RedirectResponse:
        return RedirectResponse(url="/v1/docs")

    def custom_openapi() -> dict:
        # Inject bearer auth and version metadata into the OpenAPI schema.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(title="Solveur API", version=API_VERSION, routes=app.routes)
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["BearerAuth"] = {"type": "http", "scheme": "bearer"}
        public_paths = {
            "/v1/health",
            "/v1/tenants",
            "/v1/tenants/check-slug",
            "/v1/auth/signin",
            "/v1/auth/forgot-password",
            "/v1/auth/sso/{provider}",
        }
        for path, operations in schema.get("paths", {}).items():
            if path in public_paths:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"BearerAuth": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
