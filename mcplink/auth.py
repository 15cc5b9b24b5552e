"""
Authentication header providers.

A provider produces extra request headers; the transport merges them after
its base headers and before call-specific headers such as the session id.
``get_headers`` may be a plain or an async method.
"""

import inspect
from typing import Dict


class AuthProvider:
    """Base class for header-producing auth providers."""

    def get_headers(self) -> Dict[str, str]:
        raise NotImplementedError

    async def refresh(self) -> None:
        """Refresh credentials (no-op by default)."""


class TokenAuthProvider(AuthProvider):
    """Sends ``Authorization: <scheme> <token>``."""

    def __init__(self, token: str, scheme: str = "Bearer"):
        self.token = token
        self.scheme = scheme

    def set_token(self, token: str) -> None:
        self.token = token

    def get_headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"{self.scheme} {self.token}"}


class StaticHeadersAuthProvider(AuthProvider):
    """Sends a fixed set of headers."""

    def __init__(self, headers: Dict[str, str]):
        self.headers = dict(headers)

    def get_headers(self) -> Dict[str, str]:
        return dict(self.headers)


async def resolve_auth_headers(provider) -> Dict[str, str]:
    """Collect headers from a provider whose ``get_headers`` may be async."""
    if provider is None:
        return {}
    headers = provider.get_headers()
    if inspect.isawaitable(headers):
        headers = await headers
    return dict(headers or {})


__all__ = [
    "AuthProvider",
    "StaticHeadersAuthProvider",
    "TokenAuthProvider",
    "resolve_auth_headers",
]
