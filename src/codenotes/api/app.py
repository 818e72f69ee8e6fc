"""FastAPI application for the codenotes local JSON API."""

import secrets
from dataclasses import replace
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from .. import __version__
from ..core.model import LineRange, Note
from ..core.search import DEFAULT_MAX_RESULTS, SearchQuery, SearchResult
from ..errors import CodeNotesError, InvalidRange, InvalidTag, IOFailure, NotFound


class RangeIn(BaseModel):
    start: int
    end: int


class NoteCreate(BaseModel):
    file: str
    start: int
    end: int
    content: str
    author: str | None = None
    tags: list[str] = Field(default_factory=list)
    category: str | None = None


class NotePatch(BaseModel):
    content: str | None = None
    tags: list[str] | None = None
    category: str | None = None
    lines: RangeIn | None = None


def note_to_dict(note: Note, preview_length: int | None = None) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": note.id,
        "file": note.file_path,
        "range": {"start": note.line_range.start, "end": note.line_range.end},
        "lines": note.line_range.display(),
        "status": note.status.value,
        "author": note.author,
        "created": note.created_at,
        "updated": note.updated_at,
        "tags": sorted(note.tags),
        "category": note.category.value if note.category else None,
        "content": note.content,
    }
    if preview_length:
        first = note.content.splitlines()[0] if note.content else ""
        data["preview"] = first if len(first) <= preview_length else first[:preview_length] + "..."
    return data


_STATUS = {InvalidRange: 422, InvalidTag: 422, NotFound: 404, IOFailure: 500}


def create_app(runtime: Any, token: str | None = None, enable_cors: bool = False) -> FastAPI:
    """
    Create FastAPI application with runtime injected.

    Args:
        runtime: Runtime instance with store and query facade
        token: Bearer token for authentication (None to disable auth)
        enable_cors: Enable CORS middleware

    Returns:
        FastAPI application instance
    """
    app = FastAPI(
        title="codenotes API",
        description="Local JSON API for line-anchored code notes",
        version=__version__,
        docs_url="/docs" if token is None else None,
        redoc_url="/redoc" if token is None else None,
    )
    preview_length = runtime.config.ui.preview_length

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(CodeNotesError)
    async def codenotes_error(request: Request, exc: CodeNotesError) -> JSONResponse:
        return JSONResponse(status_code=_STATUS.get(type(exc), 400), content=exc.to_dict())

    # Security setup
    if token:
        security_scheme = HTTPBearer(auto_error=False)

        async def verify_token(
            credentials: HTTPAuthorizationCredentials | None = Security(security_scheme),  # noqa: B008
        ) -> None:
            """Verify bearer token."""
            if credentials is None or credentials.credentials != token:
                raise HTTPException(status_code=401, detail="Invalid or missing token")
    else:

        async def verify_token() -> None:
            """No-op when auth is disabled."""
            return None

    @app.get("/health")
    async def health(auth: None = Depends(verify_token)) -> dict[str, Any]:
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    def search_query(
        q: str | None = Query(None, description="Terms that must all occur in the content"),
        regex: str | None = Query(None, description="Regular expression over the content"),
        case_sensitive: bool = Query(False),
        author: list[str] = Query(default=[]),  # noqa: B008
        date_field: str = Query("created", pattern="^(created|updated)$"),
        since: str | None = Query(None, description="ISO date or timestamp, inclusive"),
        until: str | None = Query(None, description="ISO date or timestamp, inclusive"),
        file: str | None = Query(None, description="Glob over file paths"),
        tag: list[str] = Query(default=[]),  # noqa: B008
        all_tags: bool = Query(False, description="Require every tag instead of any"),
        limit: int = Query(DEFAULT_MAX_RESULTS, ge=1),
    ) -> SearchQuery:
        return SearchQuery(
            text=q, regex=regex, case_sensitive=case_sensitive, authors=tuple(author),
            date_field=date_field, since=since, until=until, file_pattern=file,
            tags=tuple(tag), require_all_tags=all_tags, max_results=limit,
        )

    def run_search(query: SearchQuery) -> list[SearchResult]:
        try:
            return runtime.query.search(query)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

    @app.get("/notes")
    async def notes_by_file(
        query: SearchQuery = Depends(search_query),  # noqa: B008
        auth: None = Depends(verify_token),
    ) -> dict[str, list[dict[str, Any]]]:
        """Notes grouped by file, in line order, narrowed by any search filters."""
        grouped = runtime.query.notes_by_file()
        if query != SearchQuery(max_results=query.max_results):
            unlimited = replace(query, max_results=runtime.query.note_count())
            keep = {r.note.id for r in run_search(unlimited)}
            grouped = {f: [n for n in ns if n.id in keep] for f, ns in grouped.items()}
            grouped = {f: ns for f, ns in grouped.items() if ns}
        return {f: [note_to_dict(n, preview_length) for n in ns] for f, ns in grouped.items()}

    @app.get("/search")
    async def search(
        query: SearchQuery = Depends(search_query),  # noqa: B008
        auth: None = Depends(verify_token),
    ) -> list[dict[str, Any]]:
        """Ranked search results."""
        return [
            {**note_to_dict(r.note, preview_length), "score": r.score, "context": r.context}
            for r in run_search(query)
        ]

    @app.get("/authors")
    async def authors(auth: None = Depends(verify_token)) -> list[str]:
        return runtime.query.authors()

    @app.get("/count")
    async def count(auth: None = Depends(verify_token)) -> dict[str, int]:
        return {"notes": runtime.query.note_count(), "files": runtime.query.file_count()}

    @app.get("/files/notes")
    async def notes_for_file(
        path: str = Query(..., description="Workspace-relative file path"),
        line: int | None = Query(None, description="Only notes covering this 0-based line", ge=0),
        auth: None = Depends(verify_token),
    ) -> list[dict[str, Any]]:
        """Notes of one file, in line order."""
        if line is not None:
            notes = runtime.query.notes_at_line(path, line)
        else:
            notes = runtime.query.notes_for_file(path)
        return [note_to_dict(n, preview_length) for n in notes]

    @app.get("/notes/{note_id}")
    async def get_note(note_id: str, auth: None = Depends(verify_token)) -> dict[str, Any]:
        """Get one note with its edit history."""
        note = runtime.query.note(note_id)
        data = note_to_dict(note)
        data["history"] = [
            {"action": h.action, "author": h.author, "timestamp": h.timestamp, "content": h.content}
            for h in note.history
        ]
        return data

    @app.post("/notes", status_code=201)
    async def create_note(body: NoteCreate, auth: None = Depends(verify_token)) -> dict[str, Any]:
        note = runtime.annotate(
            body.file,
            LineRange.checked(body.start, body.end),
            body.content,
            author=body.author,
            tags=body.tags,
            category=body.category,
        )
        return note_to_dict(note)

    @app.patch("/notes/{note_id}")
    async def update_note(
        note_id: str, body: NotePatch, auth: None = Depends(verify_token)
    ) -> dict[str, Any]:
        patch: dict[str, Any] = {}
        if body.content is not None:
            patch["content"] = body.content
        if body.tags is not None:
            patch["tags"] = body.tags
        if body.category is not None:
            patch["category"] = body.category
        if body.lines is not None:
            rng = LineRange.checked(body.lines.start, body.lines.end)
            current = runtime.query.note(note_id)
            text = runtime.read_text(current.file_path)
            patch["line_range"] = rng
            if text is not None:
                patch["anchored_text"] = text.splitlines()[rng.start:rng.end + 1]
        return note_to_dict(runtime.store.update(note_id, patch))

    @app.delete("/notes/{note_id}", status_code=204)
    async def delete_note(note_id: str, auth: None = Depends(verify_token)) -> None:
        runtime.store.delete(note_id)

    return app


def generate_token() -> str:
    """Generate a random bearer token."""
    return secrets.token_urlsafe(32)
