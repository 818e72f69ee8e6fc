import io
from typing import Any

import yaml

from ..core.model import AnchorStatus, HistoryEntry, LineRange, Note, NoteCategory, sort_key
from ..core.ports import NoteSetCodec

FORMAT_VERSION = 1


class _LiteralDumper(yaml.SafeDumper):
    """Dump multi-line strings as ``|`` blocks so note files stay readable."""


def _str_representer(dumper: yaml.SafeDumper, data: str) -> yaml.Node:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_LiteralDumper.add_representer(str, _str_representer)


def note_to_record(note: Note) -> dict[str, Any]:
    return {
        "id": note.id,
        "lines": {"start": note.line_range.start, "end": note.line_range.end},
        "status": note.status.value,
        "author": note.author,
        "created": note.created_at,
        "updated": note.updated_at,
        "category": note.category.value if note.category else None,
        "tags": sorted(note.tags),
        "content": note.content,
        "content_hash": note.content_hash,
        "anchored_text": list(note.anchored_text),
        "history": [
            {
                "action": entry.action,
                "author": entry.author,
                "timestamp": entry.timestamp,
                "content": entry.content,
            }
            for entry in note.history
        ],
    }


def record_to_note(file_path: str, rec: dict[str, Any]) -> Note:
    lines = rec["lines"]
    category = rec.get("category")
    return Note(
        id=str(rec["id"]),
        file_path=file_path,
        line_range=LineRange(int(lines["start"]), int(lines["end"])),
        content=rec.get("content") or "",
        author=rec.get("author") or "",
        created_at=str(rec["created"]),
        updated_at=str(rec["updated"]),
        tags=set(rec.get("tags") or ()),
        category=NoteCategory(category) if category else None,
        status=AnchorStatus(rec.get("status", AnchorStatus.STABLE.value)),
        anchored_text=list(rec.get("anchored_text") or ()),
        content_hash=rec.get("content_hash") or "",
        history=[
            HistoryEntry(
                action=h["action"],
                content=h.get("content") or "",
                author=h.get("author") or "",
                timestamp=str(h["timestamp"]),
            )
            for h in rec.get("history") or ()
        ],
    )


class YamlNoteSetCodec(NoteSetCodec):
    """One YAML document per annotated source file."""

    def encode(self, file_path: str, notes: list[Note]) -> str:
        doc = {
            "version": FORMAT_VERSION,
            "file": file_path,
            "notes": [note_to_record(n) for n in sorted(notes, key=sort_key)],
        }
        buf = io.StringIO()
        yaml.dump(doc, buf, Dumper=_LiteralDumper, sort_keys=False, allow_unicode=True)
        return buf.getvalue()

    def decode(self, text: str) -> tuple[str, list[Note]]:
        doc = yaml.safe_load(io.StringIO(text)) or {}
        if not isinstance(doc, dict) or "file" not in doc:
            raise ValueError("Not a note set document: missing 'file'")
        version = doc.get("version", FORMAT_VERSION)
        if version > FORMAT_VERSION:
            raise ValueError(f"Unsupported note set version {version}")
        file_path = str(doc["file"])
        notes = [record_to_note(file_path, rec) for rec in doc.get("notes") or ()]
        notes.sort(key=sort_key)
        return file_path, notes
