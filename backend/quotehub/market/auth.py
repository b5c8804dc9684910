"""Access-token verification used by the stream and quote routes.

Token issuance lives elsewhere; this module only checks tokens against a
static table so a single process can run without the auth service.
"""

from __future__ import annotations

from .errors import AuthError


class StaticTokenVerifier:
    """TokenVerifier backed by a fixed ``{token: identity}`` mapping."""

    def __init__(self, tokens: dict[str, str]) -> None:
        self._tokens = dict(tokens)

    async def __call__(self, token: str) -> str:
        if not token:
            raise AuthError("Authentication token required")
        identity = self._tokens.get(token)
        if identity is None:
            raise AuthError("Invalid or expired token")
        return identity


def bearer_token(header: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header:
        raise AuthError("No token provided")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Invalid token format")
    return token.strip()
