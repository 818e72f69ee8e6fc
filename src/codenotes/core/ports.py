from typing import Any, Callable, Protocol

from .model import LineRange, Note, NoteId


class NoteStore(Protocol):
    """
    File-scoped note persistence. Mutations are atomic per file and
    readers always get copies.
    """

    def load(self, file_path: str) -> list[Note]:
        pass

    def save(self, file_path: str, notes: list[Note]) -> None:
        pass

    def apply(self, file_path: str, mutator: Callable[[list[Note]], Any]) -> list[Note]:
        pass

    def create(
        self,
        file_path: str,
        line_range: LineRange,
        content: str,
        author: str | None = None,
        tags: Any = None,
        category: Any = None,
        anchored_text: list[str] | None = None,
    ) -> Note:
        pass

    def update(self, note_id: NoteId, patch: dict[str, Any]) -> Note:
        pass

    def delete(self, note_id: NoteId) -> None:
        pass

    def get(self, note_id: NoteId) -> Note:
        pass

    def all(self) -> dict[str, list[Note]]:
        pass

    def rename_file(self, old_path: str, new_path: str) -> int:
        pass


class NoteSetCodec(Protocol):
    """
    Round-trip one file's note set to text without losing any attribute.
    """

    def encode(self, file_path: str, notes: list[Note]) -> str:
        pass

    def decode(self, text: str) -> tuple[str, list[Note]]:
        pass


class IdGenerator(Protocol):
    def new_id(self) -> NoteId:
        pass


class AuthorProvider(Protocol):
    def author_name(self) -> str:
        pass
