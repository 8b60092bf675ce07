"""Prometheus scrape endpoint.

Serves every metric in core/metrics.py (HTTP traffic, reconciliation
outcomes, completions, write conflicts, cache hits) in the text
exposition format.  Left out of the OpenAPI schema; restrict it at the
ingress in production.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
