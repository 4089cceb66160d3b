"""Bearer token authentication resolving the caller context."""

import hmac
import logging

from fastapi import HTTPException, Request, status

from supplycontrol.roles import CallerContext

logger = logging.getLogger(__name__)


def _lookup_identity(tokens: dict[str, str], token: str) -> str | None:
    """Find the identity for a token using constant-time comparisons."""
    match = None
    for candidate, identity in tokens.items():
        if hmac.compare_digest(candidate.encode(), token.encode()):
            match = identity
    return match


def get_caller(request: Request) -> CallerContext:
    """
    Dependency resolving the authenticated caller.

    Validates the Bearer token against the configured token map and
    builds the caller context from the role book.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = auth_header[7:]
    identity = _lookup_identity(request.app.state.api_tokens, token)

    if identity is None:
        client_host = request.client.host if request.client else "unknown"
        logger.warning(f"Invalid API token attempt from {client_host}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return request.app.state.service.role_book.context_for(identity)
