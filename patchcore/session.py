"""Session-scoped owner of the undo history."""
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from .applier import ChangeApplier
from .fs import FileReader, FileWriter
from .models import ChangeResult, DiffPreview, FileChange, PatchToolError
from .parsing import parse_change_document
from .preview import preview_from_reader
from .undo import UndoManager

logger = logging.getLogger(__name__)

class SessionBusyError(PatchToolError):
    """Another apply or undo is still running in this session."""

class SessionClosedError(PatchToolError):
    pass

class EditSession:
    """Wires reader, writer, applier and undo history for one editing session.

    `apply`, `undo_last_batch` and `undo_path` mutate the undo stack and are
    serialized: a call made while another one is in flight raises
    SessionBusyError instead of waiting. Parsing and previews are free to run
    at any time.
    """

    def __init__(self, reader: FileReader, writer: FileWriter, history_path: Path | str | None = None,
                 max_undo_batches: int | None = None, strict: bool = False):
        self.reader = reader
        self.writer = writer
        self.history_path = Path(history_path) if history_path else None
        self.max_undo_batches = max_undo_batches
        self.strict = strict
        self.undo_manager: UndoManager | None = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self.undo_manager is not None

    def open(self) -> "EditSession":
        if self.is_open:
            return self
        if self.history_path is not None:
            self.undo_manager = UndoManager.load(self.history_path, self.writer, self.max_undo_batches)
            logger.debug(f"Loaded {len(self.undo_manager.batches)} undo batch(es) from {self.history_path}")
        else:
            self.undo_manager = UndoManager(self.writer, self.max_undo_batches)
        return self

    def close(self) -> None:
        if not self.is_open:
            return
        with self._lock:
            if self.history_path is not None:
                self.undo_manager.save(self.history_path)
            self.undo_manager = None

    def __enter__(self) -> "EditSession":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    @contextmanager
    def _exclusive(self) -> Iterator[UndoManager]:
        if not self.is_open:
            raise SessionClosedError("Edit session is not open")
        if not self._lock.acquire(blocking=False):
            raise SessionBusyError("Another apply or undo is in progress")
        try:
            yield self.undo_manager
        finally:
            self._lock.release()

    def parse(self, text: str) -> list[FileChange]:
        return parse_change_document(text)

    def preview(self, changes: Sequence[FileChange]) -> list[DiffPreview]:
        return preview_from_reader(changes, self.reader, strict=self.strict)

    def apply(self, changes: Sequence[FileChange], dry_run: bool = False) -> list[ChangeResult]:
        with self._exclusive() as undo:
            applier = ChangeApplier(self.reader, self.writer, undo, strict=self.strict)
            return applier.apply(changes, dry_run=dry_run)

    def undo_last_batch(self) -> str | None:
        with self._exclusive() as undo:
            return undo.undo_last_batch()

    def undo_path(self, path: str) -> bool:
        with self._exclusive() as undo:
            return undo.undo_path(path)
