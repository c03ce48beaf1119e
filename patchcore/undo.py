"""Undo history: a stack of batches plus a per-path latest snapshot map."""
import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable, Sequence

from .config import load_json_file, save_json_file
from .fs import FileStoreError, FileWriter, PathNotFoundError, path_key_for
from .models import UndoBatch, UndoSnapshot

logger = logging.getLogger(__name__)

class UndoManager:
    """Owns the undo stack for one editing session.

    `batches` is ordered oldest first. `_latest` maps a path to the most
    recent snapshot recorded for it, whichever batch that snapshot belongs to.
    The map starts out derived from the stack and drifts from it after
    `undo_path` calls.

    Snapshots are keyed with `key` (by default the writer's own path key),
    so `a.txt`, `./a.txt` and its absolute path all name one entry.
    """

    def __init__(self, writer: FileWriter, max_batches: int | None = None, key: Callable[[str], str] | None = None):
        self.writer = writer
        self.max_batches = max_batches
        self.key = key or path_key_for(writer)
        self.batches: list[UndoBatch] = []
        self._latest: dict[str, UndoSnapshot] = {}

    @property
    def can_undo(self) -> bool:
        return bool(self.batches)

    def has_snapshot(self, path: str) -> bool:
        return self.key(path) in self._latest

    def latest_snapshot(self, path: str) -> UndoSnapshot | None:
        return self._latest.get(self.key(path))

    def record_batch(self, snapshots: Sequence[UndoSnapshot], description: str = "") -> UndoBatch | None:
        if not snapshots:
            return None
        keyed: dict[str, UndoSnapshot] = {}
        for snapshot in snapshots:
            k = self.key(snapshot.path)
            if k not in keyed:
                keyed[k] = snapshot if snapshot.path == k else replace(snapshot, path=k)
        batch = UndoBatch(snapshots=list(keyed.values()), description=description)
        self.batches.append(batch)
        for snapshot in batch.snapshots:
            self._latest[snapshot.path] = snapshot

        if self.max_batches is not None:
            while len(self.batches) > self.max_batches:
                self._forget(self.batches.pop(0))
        return batch

    def _forget(self, batch: UndoBatch) -> None:
        """Drop per-path entries that still point into `batch`."""
        for snapshot in batch.snapshots:
            if self._latest.get(snapshot.path) is snapshot:
                del self._latest[snapshot.path]

    def _restore(self, snapshot: UndoSnapshot) -> None:
        if snapshot.prior_content is not None:
            self.writer.write_file(snapshot.path, snapshot.prior_content)
            return
        try:
            self.writer.delete_file(snapshot.path)
        except PathNotFoundError:
            pass  # Already gone

    def undo_last_batch(self) -> str | None:
        """Revert the most recent batch; None when there is nothing to undo."""
        if not self.batches:
            logger.info("Nothing to undo")
            return None

        batch = self.batches.pop()
        self._forget(batch)

        restored, failed = [], []
        for snapshot in reversed(batch.snapshots):
            try:
                self._restore(snapshot)
                restored.append(snapshot.path)
            except FileStoreError as e:
                logger.error(f"Failed to restore {snapshot.path}: {e}")
                failed.append(f"{snapshot.path} ({e})")

        summary = f"Reverted {batch.description or 'last batch'}: {len(restored)} file(s) restored"
        if failed:
            summary += f"; {len(failed)} failed: " + ", ".join(failed)
        logger.info(summary)
        return summary

    def undo_path(self, path: str) -> bool:
        """Restore the latest snapshot of `path`; False when none is recorded."""
        key = self.key(path)
        snapshot = self._latest.get(key)
        if snapshot is None:
            logger.info(f"Nothing to undo for {path}")
            return False
        self._restore(snapshot)
        del self._latest[key]
        logger.info(f"Reverted {path}")
        return True

    def clear(self) -> None:
        self.batches.clear()
        self._latest.clear()

    def to_dict(self) -> dict:
        # Per-path entries are stored as (batch, snapshot) index pairs so that
        # identity with stack entries survives a reload.
        positions = {}
        for b_idx, batch in enumerate(self.batches):
            for s_idx, snapshot in enumerate(batch.snapshots):
                positions[id(snapshot)] = [b_idx, s_idx]
        latest = {
            path: positions[id(snapshot)]
            for path, snapshot in self._latest.items()
            if id(snapshot) in positions
        }
        return {"batches": [b.to_dict() for b in self.batches], "latest": latest}

    def from_dict(self, data: dict) -> None:
        self.batches = [UndoBatch.from_dict(b) for b in data.get("batches", [])]
        self._latest = {}
        for path, ref in data.get("latest", {}).items():
            try:
                b_idx, s_idx = ref
                self._latest[self.key(path)] = self.batches[b_idx].snapshots[s_idx]
            except (ValueError, TypeError, IndexError):
                logger.warning(f"Dropping invalid undo reference for {path}: {ref}")

    def save(self, path: Path | str) -> bool:
        return save_json_file(path, self.to_dict())

    @classmethod
    def load(cls, path: Path | str, writer: FileWriter, max_batches: int | None = None) -> "UndoManager":
        manager = cls(writer, max_batches=max_batches)
        data = load_json_file(path, {})
        if isinstance(data, dict):
            manager.from_dict(data)
        return manager
