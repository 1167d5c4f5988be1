"""Price lookup endpoint backed by the shared quote cache."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from pricealerts.api.errors import error_response
from pricealerts.api.schemas import quote_to_dict

router = APIRouter()


@router.get("/quotes")
async def get_quotes(request: Request, symbols: str = "") -> JSONResponse:
    """Current prices for a comma-separated symbol list.

    Symbols that could not be priced from either source or the stale cache
    are listed under "missing" rather than failing the request.
    """
    requested = [s.strip().upper() for s in symbols.split(",") if s.strip()]
    if not requested:
        return error_response(400, "symbols query parameter is required")

    quote_cache = request.app.state.quote_cache
    quotes = await quote_cache.get_quotes(requested)

    return JSONResponse(content={
        "data": [quote_to_dict(quotes[s]) for s in sorted(quotes)],
        "missing": sorted(set(requested) - set(quotes)),
        "timestamp": time.time(),
    })
