"""
Write protection for routes that change the network.

Only training steps mutate parameters, so only they need a key. Shape,
parameters, stats and the rendered graph stay readable without one, which
keeps the graph view usable from a plain browser tab.
"""

import hmac
import logging

from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from scalargrad.server.config import settings

logger = logging.getLogger(__name__)

STEP_KEY_HEADER = "X-Scalargrad-Key"

_step_key_header = APIKeyHeader(
    name=STEP_KEY_HEADER,
    auto_error=False,
    description="Required for POST /v1/network/step when SCALARGRAD_API_KEY is set",
)


def step_key_matches(candidate: str | None) -> bool:
    """True if candidate may run steps. Any key passes when none is configured."""
    if not settings.api_key:
        return True
    if not candidate:
        return False
    return hmac.compare_digest(candidate.encode(), settings.api_key.encode())


async def require_step_key(
    request: Request,
    api_key: str | None = Security(_step_key_header),
) -> None:
    """Reject a mutating request without the configured key (401 missing, 403 wrong)."""
    if step_key_matches(api_key):
        return

    logger.warning(f"[Auth] Rejected {request.method} {request.url.path}: "
                   f"{'missing' if not api_key else 'invalid'} key")
    if not api_key:
        raise HTTPException(status_code=401, detail=f"Missing {STEP_KEY_HEADER} header")
    raise HTTPException(status_code=403, detail="Invalid API key")
