"""Response guard: refuse to serve JSON that contains raw PII.

The analytics routes only ever return the taxonomy export and a fixed
acknowledgement, so a PII match here means a route leaked caller input.
Such a response is replaced with a 500.  The matched text is never logged.
"""
from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from whatsnew.core.logging import PII_PATTERNS
from whatsnew.core.settings import get_settings

logger = logging.getLogger(__name__)

# Recomputed by Response once the body is re-buffered.
_SKIP_HEADERS = frozenset({"content-length", "transfer-encoding"})

BLOCKED_DETAIL = "Internal error: response blocked by PII filter."


def find_pii_pattern(text: str) -> int | None:
    """Return the index of the first PII pattern matching *text*, if any."""
    for idx, pattern in enumerate(PII_PATTERNS):
        if pattern.search(text):
            return idx
    return None


class PIIFilterMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        if not get_settings().pii_masking_enabled:
            return response
        if "application/json" not in response.headers.get("content-type", ""):
            return response

        body = b"".join([
            chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")
            async for chunk in response.body_iterator
        ])

        idx = find_pii_pattern(body.decode("utf-8", errors="replace"))
        if idx is not None:
            logger.error(
                "PII detected in response body (pattern_index=%d, path=%s); blocked",
                idx,
                request.url.path,
            )
            return JSONResponse(status_code=500, content={"detail": BLOCKED_DETAIL})

        headers = {k: v for k, v in response.headers.items() if k.lower() not in _SKIP_HEADERS}
        return Response(
            content=body,
            status_code=response.status_code,
            headers=headers,
            media_type=response.media_type,
        )
