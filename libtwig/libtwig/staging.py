"""The staging area: pending additions and removals for the next commit."""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import StorageError
from .objects import Blob, HashRef
from .plumbing import get_content_path, load_blob, save_blob, store

logger = logging.getLogger(__name__)


@dataclass
class StagingArea:
    """Files staged for addition (name to blob fingerprint) and names staged for removal.

    The bytes of staged blobs live in the staging directory until a commit
    promotes them into the permanent object store. A name is never staged for
    addition and removal at the same time."""

    added: dict[str, HashRef] = field(default_factory=dict)
    removed: set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not self.added and not self.removed

    def stage_add(self, name: str, blob: Blob, staging_dir: Path) -> HashRef:
        """Stage a blob under ``name``, replacing any earlier staging and clearing a removal marking.

        :param name: The file name to stage.
        :param blob: The content to stage.
        :param staging_dir: The directory holding staged blob bytes.
        :return: The fingerprint of the staged blob."""
        blob_hash = save_blob(staging_dir, blob)
        previous = self.added.get(name)
        self.added[name] = blob_hash
        self.removed.discard(name)
        if previous is not None and previous != blob_hash:
            self._drop_unreferenced(previous, staging_dir)

        logger.debug('Staged %s as %s', name, blob_hash)
        return blob_hash

    def unstage(self, name: str, staging_dir: Path) -> HashRef | None:
        """Remove ``name`` from the staged additions, returning its fingerprint if it was staged."""
        blob_hash = self.added.pop(name, None)
        if blob_hash is not None:
            self._drop_unreferenced(blob_hash, staging_dir)
            logger.debug('Unstaged %s', name)
        return blob_hash

    def mark_removed(self, name: str, staging_dir: Path) -> None:
        self.unstage(name, staging_dir)
        self.removed.add(name)
        logger.debug('Staged %s for removal', name)

    def unmark_removed(self, name: str) -> None:
        self.removed.discard(name)

    def clear(self, staging_dir: Path, objects_dir: Path) -> None:
        """Promote every staged blob into the permanent store and empty both collections."""
        for blob_hash in sorted(set(self.added.values())):
            store(objects_dir, load_blob(staging_dir, blob_hash).content)

        self.discard(staging_dir)

    def discard(self, staging_dir: Path) -> None:
        """Empty both collections and drop staged blobs without promoting them."""
        self.added.clear()
        self.removed.clear()
        try:
            for item in staging_dir.iterdir():
                if item.is_dir():
                    shutil.rmtree(item)
                else:
                    item.unlink()
        except OSError as e:
            msg = f'Error clearing staging directory {staging_dir}'
            raise StorageError(msg) from e

    def _drop_unreferenced(self, blob_hash: HashRef, staging_dir: Path) -> None:
        if blob_hash in self.added.values():
            return
        get_content_path(staging_dir, blob_hash).unlink(missing_ok=True)

    def to_dict(self) -> dict[str, Any]:
        return {'added': dict(sorted(self.added.items())), 'removed': sorted(self.removed)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'StagingArea':
        return cls({name: HashRef(blob_hash) for name, blob_hash in data.get('added', {}).items()},
                   set(data.get('removed', [])))
