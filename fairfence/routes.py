"""
HTTP routes for the Fairfence backend API.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import JSONResponse

from fairfence.config import ConfigResolver, ConfigurationError
from fairfence.db import PricingStore
from fairfence.dependencies import (
    get_config_resolver,
    get_pricing_normalizer,
    get_pricing_store,
)
from fairfence.pricing import CACHE_CONTROL, PricingNormalizer, PricingSource
from fairfence.schemas import (
    ConfigStatusPayload,
    ConfigStatusResponse,
    PricingResponse,
    PricingRowsResponse,
    ServiceStatus,
    ServiceStatusResponse,
)

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Client-Info, Apikey",
}

router = APIRouter()
# Mirrors the hosted edge function path so the site can call either.
edge_router = APIRouter()


def _pricing_response(normalizer: PricingNormalizer) -> JSONResponse:
    payload = normalizer.get_pricing()
    headers = dict(CORS_HEADERS)
    if PricingSource(payload.data.source).cacheable:
        headers["Cache-Control"] = CACHE_CONTROL
    return JSONResponse(
        status_code=200, content=payload.model_dump(), headers=headers
    )


def _preflight() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


@router.api_route(
    "/pricing", methods=["GET", "POST"], response_model=PricingResponse
)
def get_pricing(normalizer: PricingNormalizer = Depends(get_pricing_normalizer)):
    """
    Canonical pricing table. Always 200; failures are reported through
    ``data.fallback`` and ``data.source``.
    """
    return _pricing_response(normalizer)


@router.options("/pricing")
def pricing_preflight():
    return _preflight()


@edge_router.api_route(
    "/functions/v1/get-pricing",
    methods=["GET", "POST"],
    response_model=PricingResponse,
)
def get_pricing_edge(
    normalizer: PricingNormalizer = Depends(get_pricing_normalizer),
):
    return _pricing_response(normalizer)


@edge_router.options("/functions/v1/get-pricing")
def get_pricing_edge_preflight():
    return _preflight()


@router.get("/pricing/{fence_type}", response_model=PricingRowsResponse)
def get_pricing_by_type(
    fence_type: str,
    normalizer: PricingNormalizer = Depends(get_pricing_normalizer),
):
    rows = normalizer.get_pricing_by_type(fence_type)
    return PricingRowsResponse(data=[row.as_dict() for row in rows])


@router.get("/config/status", response_model=ConfigStatusResponse)
def config_status(resolver: ConfigResolver = Depends(get_config_resolver)):
    status = resolver.status()
    return ConfigStatusResponse(
        success=True,
        config=ConfigStatusPayload(**status.as_dict()),
    )


@router.post("/config/reload", response_model=ConfigStatusResponse)
def reload_config(resolver: ConfigResolver = Depends(get_config_resolver)):
    try:
        resolver.force_refresh()
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    status = resolver.status()
    return ConfigStatusResponse(
        success=True,
        config=ConfigStatusPayload(**status.as_dict()),
    )


@router.get("/status", response_model=ServiceStatusResponse)
def service_status(
    resolver: ConfigResolver = Depends(get_config_resolver),
    store: PricingStore | None = Depends(get_pricing_store),
):
    if store is None:
        database = "unconfigured"
    else:
        database = "connected" if store.ping() else "error"

    return ServiceStatusResponse(
        success=True,
        status=ServiceStatus(
            server="running",
            timestamp=datetime.now(timezone.utc).isoformat(),
            database=database,
            config="loaded" if resolver.status().initialized else "error",
        ),
    )
