"""FastMCP server exposing Markly's project search and wiki-link tools."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar, cast

from dotenv import load_dotenv
from fastmcp import FastMCP
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from .links import link_report
from .links import resolve_wiki_link as resolve_link
from .matching import InvalidPatternError, SearchTimeoutError
from .search import MAX_RESULTS, group_by_file, search_project
from .security import (
    HEALTH_PATH,
    build_security_middleware,
    ensure_in_roots,
    is_within_roots,
    parse_project_roots,
)
from .walker import MARKDOWN_SUFFIX

TToolFunc = TypeVar("TToolFunc", bound=Callable[..., Any])

logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_REGEX_TIMEOUT = 5.0


class SettingsError(ValueError):
    """Raised when the environment holds an invalid setting."""


@dataclass(slots=True)
class Settings:
    project_roots: tuple[Path, ...]
    host: str
    port: int
    shared_secret: str | None
    log_level: str
    regex_timeout: float = DEFAULT_REGEX_TIMEOUT


def _project_root(root_path: str) -> Path | None:
    # Path("") would silently mean the working directory
    return Path(root_path) if root_path else None


@dataclass(slots=True)
class ProjectService:
    """Request handlers shared by the MCP tools.

    Every path a caller hands in must lie inside one of *roots*.
    """

    roots: Sequence[Path]
    max_results: int = MAX_RESULTS
    regex_timeout: float | None = DEFAULT_REGEX_TIMEOUT

    def search_in_project(
        self, root_path: str, query: str, case_sensitive: bool = False, use_regex: bool = False
    ) -> dict[str, Any]:
        root = _project_root(root_path)
        try:
            if root is None:
                matches = []
            else:
                ensure_in_roots(root, self.roots)
                matches = search_project(
                    root, query, case_sensitive, use_regex, self.max_results, self.regex_timeout
                )
        except (PermissionError, InvalidPatternError, SearchTimeoutError) as exc:
            return {"ok": False, "error": str(exc)}

        return {
            "ok": True,
            "matches": [match.as_payload() for match in matches],
            "files": [group.as_payload() for group in group_by_file(matches)],
            "total": len(matches),
            "truncated": len(matches) >= min(self.max_results, MAX_RESULTS),
        }

    def resolve_wiki_link(
        self, root_path: str, link_name: str, current_file_path: str
    ) -> dict[str, Any]:
        root = _project_root(root_path)
        current = Path(current_file_path)
        try:
            if root is not None:
                ensure_in_roots(root, self.roots)
            ensure_in_roots(current, self.roots)
        except PermissionError as exc:
            return {"ok": False, "error": str(exc)}

        target = resolve_link(root, link_name, current)
        if target is not None and not is_within_roots(target, self.roots):
            target = None
        return {"ok": True, "path": str(target) if target is not None else None}

    def list_wiki_links(self, root_path: str, note_path: str) -> dict[str, Any]:
        root = _project_root(root_path)
        note = Path(note_path)
        if note.suffix != MARKDOWN_SUFFIX:
            return {"ok": False, "error": f"Not a markdown note: {note_path}"}
        try:
            if root is not None:
                ensure_in_roots(root, self.roots)
            ensure_in_roots(note, self.roots)
            targets = link_report(root, note)
        except (OSError, UnicodeDecodeError) as exc:
            return {"ok": False, "error": str(exc)}

        targets = [
            item
            if item.path is None or is_within_roots(item.path, self.roots)
            else dataclasses.replace(item, path=None)
            for item in targets
        ]
        return {"ok": True, "links": [item.as_payload() for item in targets]}


def load_settings() -> Settings:
    """Load configuration from environment variables."""

    project_roots = parse_project_roots(os.environ.get("PROJECT_ROOTS", ""))

    host = os.environ.get("HOST", "0.0.0.0")  # noqa: S104 (intentional bind)
    raw_port = os.environ.get("PORT", "8000")
    try:
        port = int(raw_port)
    except ValueError as exc:
        raise SettingsError(f"PORT must be an integer: {raw_port!r}") from exc
    raw_timeout = os.environ.get("REGEX_TIMEOUT", str(DEFAULT_REGEX_TIMEOUT))
    try:
        regex_timeout = float(raw_timeout)
    except ValueError as exc:
        raise SettingsError(f"REGEX_TIMEOUT must be a number: {raw_timeout!r}") from exc
    shared_secret = os.environ.get("MCP_SHARED_SECRET") or None

    log_level = os.environ.get("LOG_LEVEL", "info").upper()
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO))

    return Settings(
        project_roots=project_roots,
        host=host,
        port=port,
        shared_secret=shared_secret,
        log_level=log_level,
        regex_timeout=regex_timeout,
    )


def create_server(settings: Settings | None = None) -> tuple[FastMCP, list[Middleware]]:
    """Create a configured :class:`FastMCP` instance and its security middleware."""

    settings = settings or load_settings()
    server = FastMCP(
        "Markly",
        instructions="Full-text search and wiki-link resolution over a markdown project",
    )

    security_middleware = build_security_middleware(settings.shared_secret)

    service = ProjectService(settings.project_roots, regex_timeout=settings.regex_timeout)

    def tool(*args: Any, **kwargs: Any) -> Callable[[TToolFunc], TToolFunc]:
        decorator = server.tool(*args, **kwargs)
        return cast(Callable[[TToolFunc], TToolFunc], decorator)

    # handlers walk the filesystem; keep them off the event loop
    async def offload(func: Callable[..., dict[str, Any]], *args: Any) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    @tool()
    async def search_in_project(
        root_path: str, query: str, case_sensitive: bool = False, use_regex: bool = False
    ) -> dict[str, Any]:
        return await offload(
            service.search_in_project, root_path, query, case_sensitive, use_regex
        )

    @tool()
    async def resolve_wiki_link(
        root_path: str, link_name: str, current_file_path: str
    ) -> dict[str, Any]:
        return await offload(service.resolve_wiki_link, root_path, link_name, current_file_path)

    @tool()
    async def list_wiki_links(root_path: str, note_path: str) -> dict[str, Any]:
        return await offload(service.list_wiki_links, root_path, note_path)

    @server.custom_route(HEALTH_PATH, methods=["GET"])
    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok"})

    return cast(FastMCP, server), security_middleware


def main() -> None:
    """Run the FastMCP server."""

    settings = load_settings()
    server, security_middleware = create_server(settings)
    logger.info(
        "Starting Markly MCP on %s:%d for %d project root(s)",
        settings.host,
        settings.port,
        len(settings.project_roots),
    )
    server.run(
        transport="http",
        host=settings.host,
        port=settings.port,
        middleware=security_middleware,
    )


if __name__ == "__main__":
    main()
