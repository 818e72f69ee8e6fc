"""CLI for codenotes - line-anchored notes on source files."""

import argparse
import json
import logging
import platform
import sys
from pathlib import Path
from typing import Any

from . import __version__
from .core.model import LineRange, Note
from .core.search import DEFAULT_MAX_RESULTS, SearchQuery
from .core.tags import parse_tags
from .errors import InvalidRange
from .runtime import build_runtime


def parse_lines(text: str) -> LineRange:
    """
    Parse a 1-based inclusive line range (``12`` or ``12-14``) into a 0-based range.
    """
    start_s, _, end_s = text.partition("-")
    try:
        start = int(start_s)
        end = int(end_s) if end_s else start
    except ValueError:
        raise InvalidRange(-1, -1, f"Invalid line range {text!r}; expected N or N-M") from None
    return LineRange.checked(start - 1, end - 1)


def note_line(note: Note, preview_length: int) -> str:
    first = note.content.splitlines()[0] if note.content else ""
    if len(first) > preview_length:
        first = first[:preview_length] + "..."
    flag = " [orphaned]" if note.is_orphaned else ""
    return f"{note.id}\t{note.file_path}:{note.line_range.display()}{flag}\t{first}"


def note_json(note: Note) -> dict[str, Any]:
    return {
        "id": note.id,
        "file": note.file_path,
        "lines": note.line_range.display(),
        "status": note.status.value,
        "author": note.author,
        "created": note.created_at,
        "updated": note.updated_at,
        "tags": sorted(note.tags),
        "category": note.category.value if note.category else None,
        "content": note.content,
    }


def _read_content(args: argparse.Namespace) -> str | None:
    if args.message is not None:
        return args.message
    if not sys.stdin.isatty():
        return sys.stdin.read()
    return None


def cmd_add(args: argparse.Namespace, rt: Any) -> int:
    """Attach a note to a line range."""
    content = _read_content(args)
    if not content or not content.strip():
        print("Error: note content is empty (use -m or pipe it on stdin)", file=sys.stderr)
        return 1

    note = rt.annotate(
        args.file,
        parse_lines(args.lines),
        content,
        author=args.author,
        tags=parse_tags(args.tags),
        category=args.category,
    )
    if args.json:
        print(json.dumps(note_json(note), indent=2))
    elif not args.quiet:
        print(note.id)
    return 0


def cmd_edit(args: argparse.Namespace, rt: Any) -> int:
    """Edit content, tags, category, or relocate a note."""
    patch: dict[str, Any] = {}
    if args.message is not None:
        patch["content"] = args.message
    if args.tags is not None:
        patch["tags"] = parse_tags(args.tags)
    if args.category is not None:
        patch["category"] = args.category or None
    if args.lines:
        rng = parse_lines(args.lines)
        note = rt.store.get(args.id)
        text = rt.read_text(note.file_path)
        patch["line_range"] = rng
        if text is not None:
            patch["anchored_text"] = text.splitlines()[rng.start:rng.end + 1]
    if not patch:
        print("Nothing to change", file=sys.stderr)
        return 1

    note = rt.store.update(args.id, patch)
    if args.json:
        print(json.dumps(note_json(note), indent=2))
    elif not args.quiet:
        print(f"Updated {note.id}")
    return 0


def cmd_rm(args: argparse.Namespace, rt: Any) -> int:
    """Delete a note."""
    note = rt.store.get(args.id)

    # Confirm unless --yes
    if not args.yes:
        response = input(f"Delete note {note.id} on {note.file_path}:{note.line_range.display()}? [y/N] ")
        if response.lower() not in ("y", "yes"):
            print("Aborted")
            return 0

    rt.store.delete(args.id)
    if not args.quiet:
        print(f"Deleted {args.id}")
    return 0


def cmd_ls(args: argparse.Namespace, rt: Any) -> int:
    """List notes, grouped by file."""
    if args.file:
        grouped = {rt.relative(args.file): rt.query.notes_for_file(rt.relative(args.file))}
    else:
        grouped = rt.query.notes_by_file()

    if args.tag or args.exclude:
        keep = {
            n.id for n in rt.query.filter_by_tags(
                include=args.tag, exclude=args.exclude, require_all=args.all_tags
            )
        }
        grouped = {f: [n for n in ns if n.id in keep] for f, ns in grouped.items()}
    if args.orphaned:
        grouped = {f: [n for n in ns if n.is_orphaned] for f, ns in grouped.items()}
    grouped = {f: ns for f, ns in grouped.items() if ns}

    if args.json:
        print(json.dumps({f: [note_json(n) for n in ns] for f, ns in grouped.items()}, indent=2))
        return 0

    preview = rt.config.ui.preview_length
    for notes in grouped.values():
        for note in notes:
            print(note_line(note, preview))
    return 0


def cmd_show(args: argparse.Namespace, rt: Any) -> int:
    """Print a note with its history."""
    note = rt.query.note(args.id)
    if args.json:
        data = note_json(note)
        data["history"] = [
            {"action": h.action, "author": h.author, "timestamp": h.timestamp, "content": h.content}
            for h in note.history
        ]
        print(json.dumps(data, indent=2))
        return 0

    print(f"Note {note.id}")
    print(f"File:     {note.file_path}")
    print(f"Lines:    {note.line_range.display()}")
    print(f"Status:   {note.status.value}")
    print(f"Author:   {note.author}")
    print(f"Created:  {note.created_at}")
    print(f"Updated:  {note.updated_at}")
    if note.category:
        print(f"Category: {note.category.value}")
    if note.tags:
        print(f"Tags:     {', '.join(sorted(note.tags))}")
    print()
    print(note.content)
    if note.history and not args.quiet:
        print()
        print("History:")
        for entry in note.history:
            print(f"  {entry.timestamp} - {entry.author} - {entry.action}")
    return 0


def cmd_count(args: argparse.Namespace, rt: Any) -> int:
    """Print note and file counts."""
    notes = rt.query.note_count()
    files = rt.query.file_count()
    if args.json:
        print(json.dumps({"notes": notes, "files": files}))
    else:
        print(f"{notes} notes in {files} files")
    return 0


def cmd_tags(args: argparse.Namespace, rt: Any) -> int:
    """Print tag usage."""
    stats = rt.query.tag_statistics()
    if args.json:
        print(json.dumps([{"tag": t, "count": c} for t, c in stats], indent=2))
    else:
        for tag, n in stats:
            print(f"{n}\t{tag}")
    return 0


def cmd_search(args: argparse.Namespace, rt: Any) -> int:
    """Search note content with optional author, date, file and tag filters."""
    query = SearchQuery(
        text=args.text,
        regex=args.regex,
        case_sensitive=args.case_sensitive,
        authors=tuple(args.author),
        date_field=args.date_field,
        since=args.since,
        until=args.until,
        file_pattern=args.file,
        tags=tuple(args.tag),
        require_all_tags=args.all_tags,
        max_results=args.limit,
    )
    results = rt.query.search(query)

    if args.json:
        print(json.dumps([
            {**note_json(r.note), "score": round(r.score, 3), "context": r.context}
            for r in results
        ], indent=2))
        return 0

    preview = rt.config.ui.preview_length
    for result in results:
        print(f"{result.score:.2f}\t{note_line(result.note, preview)}")
    if not args.quiet:
        print(f"{len(results)} results", file=sys.stderr)
    return 0


def cmd_authors(args: argparse.Namespace, rt: Any) -> int:
    """List note authors."""
    authors = rt.query.authors()
    if args.json:
        print(json.dumps(authors))
    else:
        for name in authors:
            print(name)
    return 0


def cmd_check(args: argparse.Namespace, rt: Any) -> int:
    """Re-anchor notes against the files as they are on disk now."""
    files = [rt.relative(f) for f in args.files] or rt.store.file_paths()
    report = {}
    for file_path in files:
        counts = rt.check(file_path)
        report[file_path] = dict(counts)
        if not args.quiet and not args.json:
            summary = ", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "no notes"
            print(f"{file_path}: {summary}")
    if args.json:
        print(json.dumps(report, indent=2))
    orphaned = sum(counts.get("orphaned", 0) for counts in report.values())
    return 1 if orphaned and args.strict else 0


def cmd_watch(args: argparse.Namespace, rt: Any) -> int:
    """Watch the workspace and keep anchors in sync."""
    from .watch import watch_workspace

    if args.debounce_ms is not None:
        rt.coordinator.debounce_ms = args.debounce_ms
    return watch_workspace(rt, quiet=args.quiet, json_output=args.json)


def cmd_serve(args: argparse.Namespace, rt: Any) -> int:
    """Start local JSON API server."""
    import uvicorn

    from .api.app import create_app, generate_token

    # Determine token
    token_arg = getattr(args, 'token', 'auto')
    token = None

    if token_arg == 'auto':
        token = generate_token()
        print(f"Generated bearer token: {token}")
        print(f"Use in requests: Authorization: Bearer {token}")
    elif token_arg == 'none':
        print("Warning: Running without authentication. Only use in trusted environments.")
        token = None
    else:
        token = token_arg

    app = create_app(rt, token=token, enable_cors=args.cors)

    print(f"Starting server on http://{args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port, log_level="warning")
    return 0


def version_string() -> str:
    return (
        f"codenotes {__version__} "
        f"(python {platform.python_version()}, platform {platform.system().lower()})"
    )


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="codenotes", description="Line-anchored notes on source files"
    )
    parser.add_argument("--version", action="version", version=version_string())
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config file (default: search cwd/codenotes.toml, workspace/codenotes.toml)",
    )
    parser.add_argument(
        "--workspace",
        type=Path,
        default=None,
        help="Workspace root (overrides config; default: current directory)",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Minimize output"
    )
    parser.add_argument(
        "--json", action="store_true", help="Machine-readable output"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Debug logging on stderr"
    )

    subparsers = parser.add_subparsers(dest="cmd", required=True)

    # add command
    parser_add = subparsers.add_parser("add", help="Attach a note to a line range")
    parser_add.add_argument("file", help="File path (relative to the workspace)")
    parser_add.add_argument("lines", help="1-based line or range, e.g. 12 or 12-14")
    parser_add.add_argument("-m", "--message", help="Note content (default: read stdin)")
    parser_add.add_argument("--tags", help="Comma-separated tags")
    parser_add.add_argument("--category", help="TODO, FIXME, QUESTION, NOTE, BUG, IMPROVEMENT or REVIEW")
    parser_add.add_argument("--author", help="Author (default: git user.name)")

    # edit command
    parser_edit = subparsers.add_parser("edit", help="Edit or relocate a note")
    parser_edit.add_argument("id", help="Note ID")
    parser_edit.add_argument("-m", "--message", help="New content")
    parser_edit.add_argument("--tags", help="Replace tags (comma-separated, empty to clear)")
    parser_edit.add_argument("--category", help="Set category (empty to clear)")
    parser_edit.add_argument("--lines", help="Re-attach to these 1-based lines")

    # rm command
    parser_rm = subparsers.add_parser("rm", help="Delete a note")
    parser_rm.add_argument("id", help="Note ID")
    parser_rm.add_argument("--yes", action="store_true", help="Skip confirmation")

    # ls command
    parser_ls = subparsers.add_parser("ls", help="List notes")
    parser_ls.add_argument("file", nargs="?", help="Only notes of this file")
    parser_ls.add_argument("--tag", action="append", default=[], help="Include tag (repeatable)")
    parser_ls.add_argument("--exclude", action="append", default=[], help="Exclude tag (repeatable)")
    parser_ls.add_argument(
        "--all-tags", dest="all_tags", action="store_true",
        help="Require every --tag instead of any"
    )
    parser_ls.add_argument("--orphaned", action="store_true", help="Only orphaned notes")

    # show command
    parser_show = subparsers.add_parser("show", help="Print a note")
    parser_show.add_argument("id", help="Note ID")

    subparsers.add_parser("count", help="Count notes and annotated files")
    subparsers.add_parser("tags", help="Tag usage statistics")
    subparsers.add_parser("authors", help="List note authors")

    # search command
    parser_search = subparsers.add_parser("search", help="Search notes")
    parser_search.add_argument("text", nargs="?", help="Terms that must all occur in the content")
    parser_search.add_argument("--regex", help="Regular expression over the content")
    parser_search.add_argument(
        "--case-sensitive", dest="case_sensitive", action="store_true", help="Match case"
    )
    parser_search.add_argument("--author", action="append", default=[], help="Author (repeatable)")
    parser_search.add_argument(
        "--date-field", dest="date_field", choices=["created", "updated"], default="created",
        help="Timestamp --since/--until apply to"
    )
    parser_search.add_argument("--since", help="ISO date or timestamp, inclusive")
    parser_search.add_argument("--until", help="ISO date or timestamp, inclusive")
    parser_search.add_argument("--file", help="Glob over file paths, e.g. 'src/*.py'")
    parser_search.add_argument("--tag", action="append", default=[], help="Tag (repeatable)")
    parser_search.add_argument(
        "--all-tags", dest="all_tags", action="store_true",
        help="Require every --tag instead of any"
    )
    parser_search.add_argument("--limit", type=int, default=DEFAULT_MAX_RESULTS, help="Maximum results")

    # check command
    parser_check = subparsers.add_parser("check", help="Re-anchor notes against files on disk")
    parser_check.add_argument("files", nargs="*", help="Files to check (default: all annotated)")
    parser_check.add_argument(
        "--strict", action="store_true", help="Exit 1 when any note is orphaned"
    )

    # watch command
    parser_watch = subparsers.add_parser("watch", help="Watch workspace and sync anchors")
    parser_watch.add_argument(
        "--debounce-ms", dest="debounce_ms", type=int, default=None,
        help="Debounce window in milliseconds (default: from config, 300)"
    )

    # serve command
    parser_serve = subparsers.add_parser("serve", help="Start local JSON API")
    parser_serve.add_argument("--host", default="127.0.0.1", help="Bind host")
    parser_serve.add_argument("--port", type=int, default=8765, help="Bind port")
    parser_serve.add_argument(
        "--token", default="auto",
        help="Bearer token: 'auto' (generate), 'none' (disable), or a literal token"
    )
    parser_serve.add_argument("--cors", action="store_true", help="Enable CORS")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    rt = build_runtime(workspace=args.workspace, config_path=args.config)

    handlers = {
        "add": cmd_add,
        "edit": cmd_edit,
        "rm": cmd_rm,
        "ls": cmd_ls,
        "show": cmd_show,
        "count": cmd_count,
        "tags": cmd_tags,
        "authors": cmd_authors,
        "search": cmd_search,
        "check": cmd_check,
        "watch": cmd_watch,
        "serve": cmd_serve,
    }

    handler = handlers.get(args.cmd)
    if handler:
        try:
            exit_code = handler(args, rt)
            sys.exit(exit_code)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        print(f"Unknown command: {args.cmd}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
