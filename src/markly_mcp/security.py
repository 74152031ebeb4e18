"""Access control for the Markly MCP endpoint.

Two layers: the configured project roots every requested path must live in,
and the HTTP middleware (shared secret, CORS) in front of the transport.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

SECRET_HEADER = "x-mcp-secret"
HEALTH_PATH = "/health"


class RootConfigurationError(ValueError):
    """Raised when the project root allowlist is invalid."""


def parse_project_roots(raw: str) -> tuple[Path, ...]:
    """Parse a comma separated list of absolute project directories."""

    if not raw:
        raise RootConfigurationError("PROJECT_ROOTS must be provided")

    roots: list[Path] = []
    for chunk in raw.split(","):
        candidate = chunk.strip()
        if not candidate:
            continue
        path = Path(candidate).expanduser()
        if not path.is_absolute():
            raise RootConfigurationError(f"Project root must be absolute: {candidate!r}")
        root = path.resolve(strict=False)
        if root not in roots:
            roots.append(root)

    if not roots:
        raise RootConfigurationError("No valid project roots provided")

    return tuple(roots)


def is_within_roots(path: Path, roots: Iterable[Path]) -> bool:
    """Return ``True`` when *path*, symlinks resolved, lies inside one of *roots*."""

    resolved = path.resolve(strict=False)
    for root in roots:
        root = root.resolve(strict=False)
        if resolved == root or root in resolved.parents:
            return True
    return False


def ensure_in_roots(path: Path, roots: Iterable[Path]) -> Path:
    """Return *path* unchanged, or raise ``PermissionError`` if it escapes *roots*."""

    if not is_within_roots(path, roots):
        raise PermissionError(f"Path {path} is outside the configured project roots")
    return path


class SharedSecretMiddleware(BaseHTTPMiddleware):
    """Reject requests that do not carry the shared secret header."""

    def __init__(self, app: ASGIApp, secret: str) -> None:
        super().__init__(app)
        if not secret:
            raise ValueError("Shared secret must be configured")
        self._secret = secret

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.url.path == HEALTH_PATH:
            return await call_next(request)

        if request.headers.get(SECRET_HEADER) != self._secret:
            return JSONResponse({"detail": "Unauthorized"}, status_code=401)

        return await call_next(request)


def build_security_middleware(secret: str | None) -> list[Middleware]:
    """Create the middleware stack for the HTTP transport.

    CORS is always enabled. With a shared secret configured, the secret check
    runs first on every request except the health check.
    """

    middleware: list[Middleware] = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )
    ]

    if secret:
        middleware.insert(0, Middleware(SharedSecretMiddleware, secret=secret))

    return middleware
