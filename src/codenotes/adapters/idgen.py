"""Note id generators."""

import secrets
import uuid

from ..core.model import NoteId
from ..core.ports import IdGenerator


class UuidId(IdGenerator):
    """Random UUID4 ids, the default for persisted notes."""

    def new_id(self) -> NoteId:
        return str(uuid.uuid4())


class HexId(IdGenerator):
    """Short hex ids, easier to type on the command line."""

    def __init__(self, nbytes: int = 8):
        if nbytes < 4:
            raise ValueError("nbytes must be >= 4")
        self.nbytes = nbytes

    def new_id(self) -> NoteId:
        return secrets.token_hex(self.nbytes)
